"""
lecture_relay.services.artifact_store
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

课件文件存储 —— 把上传的 PDF 落盘，并生成可公开访问的稳定 URL。

文件保存在 ``{UPLOAD_DIR}/{uuid}-{原始文件名}``，由静态文件挂载点对外提供，
进程存活期间一直可访问（不做持久化清理）。
"""
from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePath
from urllib.parse import quote

from fastapi import UploadFile

from lecture_relay.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ArtifactTooLarge(ValueError):
    """上传文件超过大小限制。"""


@dataclass(frozen=True)
class StoredArtifact:
    """已落盘的课件。

    Attributes:
        stored_name: 磁盘上的文件名（也是 URL 的最后一段）。
        display_name: 展示给观众的原始文件名。
        size_bytes: 文件大小。
        path: 文件绝对路径。
    """

    stored_name: str
    display_name: str
    size_bytes: int
    path: Path


def display_name_for(filename: str | None) -> str:
    """取原始文件名的最后一段（去掉客户端可能带上的目录）。"""
    name = PurePath((filename or "").replace("\\", "/")).name
    return name or "slides.pdf"


def safe_stored_name(display_name: str) -> str:
    """生成不可猜测且对文件系统安全的存储文件名。"""
    cleaned = _UNSAFE_NAME_CHARS.sub("_", display_name).strip("._") or "slides.pdf"
    return f"{uuid.uuid4().hex}-{cleaned}"


class ArtifactStore:
    """课件存储服务。

    Attributes:
        upload_dir: 落盘目录，构造时自动创建。
        max_bytes: 单文件大小上限。
        files_route: 静态文件挂载路径，用于拼接 URL。
    """

    def __init__(
        self,
        upload_dir: Path,
        max_bytes: int,
        files_route: str = "/files",
        public_base_url: str = "",
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes
        self.files_route = "/" + files_route.strip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def save(self, upload: UploadFile) -> StoredArtifact:
        """读取上传内容并写入磁盘。

        Raises:
            ArtifactTooLarge: 超过 ``max_bytes``。
            OSError: 磁盘写入失败。
        """
        content = await upload.read(self.max_bytes + 1)
        if len(content) > self.max_bytes:
            raise ArtifactTooLarge(
                f"file exceeds limit of {self.max_bytes} bytes",
            )

        display_name = display_name_for(upload.filename)
        stored_name = safe_stored_name(display_name)
        path = self.upload_dir / stored_name

        await asyncio.to_thread(path.write_bytes, content)
        logger.info("课件已保存 | file=%s | %d bytes", stored_name, len(content))

        return StoredArtifact(
            stored_name=stored_name,
            display_name=display_name,
            size_bytes=len(content),
            path=path,
        )

    def public_url(self, artifact: StoredArtifact, request_base_url: str) -> str:
        """拼出课件的可访问地址。配置了 ``PUBLIC_BASE_URL`` 时优先使用。"""
        base = self.public_base_url or request_base_url.rstrip("/")
        return f"{base}{self.files_route}/{quote(artifact.stored_name)}"
