"""
lecture_relay.api.upload
~~~~~~~~~~~~~~~~~~~~~~~~

课件上传接口 —— ``POST /upload?code=<会话码>&numPages=<页数>``，表单字段 ``pdf``。

流程:
  1. 校验会话码与文件（缺失 → 400）；
  2. 落盘（超限 → 413，失败 → 500，此时房间状态不变）；
  3. 取得房间锁后先应用"切换课件"，紧接着重申当前页，
     让刚换了课件的观众同步到正在讲的那一页；
  4. 房间此时无人连接（先传课件后开课）则保留 ``IDLE_ROOM_TTL`` 秒，期满仍无人则回收；
  5. 返回 ``{url, name, numPages}``。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status

from lecture_relay.api.deps import get_artifact_store, get_registry
from lecture_relay.core.logging import get_logger
from lecture_relay.core.rate_limit import limiter
from lecture_relay.core.settings import settings
from lecture_relay.schemas.events import DeckChangeEvent, PageChangeEvent, coerce_positive_int
from lecture_relay.schemas.session_data import UploadResponseData
from lecture_relay.services.artifact_store import ArtifactStore, ArtifactTooLarge
from lecture_relay.services.session_registry import SessionRegistry

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.post("/upload", summary="上传课件", response_model=UploadResponseData)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_deck(
    request: Request,
    code: str | None = Query(None, description="会话码"),
    num_pages: str | None = Query(None, alias="numPages", description="课件页数（可选）"),
    pdf: UploadFile | None = File(None, description="课件文件"),
    registry: SessionRegistry = Depends(get_registry),
    store: ArtifactStore = Depends(get_artifact_store),
) -> UploadResponseData:
    """上传课件并推送给该会话的所有观众。

    Args:
        code: 会话码（大小写不敏感）。
        num_pages: 前端解析出的页数，非法值忽略。
        pdf: 上传的课件文件。
    """
    session_code = registry.normalize(code)
    if not session_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code")
    if pdf is None or not pdf.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing file")

    try:
        artifact = await store.save(pdf)
    except ArtifactTooLarge:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large",
        )
    except OSError as e:
        logger.error("课件保存失败: %s | room=%s", e, session_code, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed",
        )

    url = store.public_url(artifact, str(request.base_url))
    deck = DeckChangeEvent(
        url=url, name=artifact.display_name, numPages=coerce_positive_int(num_pages),
    )

    async with registry.checkout(session_code) as room:
        await room.apply_update(deck)
        await room.apply_update(PageChangeEvent(page=room.presentation.page))
        page_count = room.presentation.num_pages
        registry.expire_if_unattended(room)

    logger.info(
        "课件已推送 | room=%s | name=%s | pages=%d | 观众: %d",
        session_code, artifact.display_name, page_count, room.viewer_count,
    )
    return UploadResponseData(url=url, name=artifact.display_name, numPages=page_count)
