"""
lecture_relay.main
~~~~~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件与静态文件、定义生命周期。
"""
from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from lecture_relay.api import session_endpoints, session_ws, upload
from lecture_relay.core.logging import get_logger, request_id_ctx_var, setup_logging
from lecture_relay.core.rate_limit import limiter
from lecture_relay.core.settings import settings
from lecture_relay.schemas.api_response import ApiResponse
from lecture_relay.services.artifact_store import ArtifactStore
from lecture_relay.services.room_broadcaster import RoomBroadcaster
from lecture_relay.services.session_registry import SessionRegistry

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子：创建进程内唯一的注册表、广播器与课件存储。"""
    # ── 启动 ──
    broadcaster = RoomBroadcaster(
        send_timeout=settings.WS_SEND_TIMEOUT,
        queue_size=settings.WS_SEND_QUEUE_SIZE,
    )
    app.state.registry = SessionRegistry(
        broadcaster=broadcaster,
        code_max_length=settings.SESSION_CODE_MAX_LENGTH,
        idle_ttl=settings.IDLE_ROOM_TTL,
    )
    app.state.artifact_store = ArtifactStore(
        upload_dir=settings.upload_path,
        max_bytes=settings.MAX_UPLOAD_BYTES,
        files_route=settings.FILES_ROUTE,
        public_base_url=settings.PUBLIC_BASE_URL,
    )
    logger.info(
        "🚀 中继服务已启动 | env=%s | uploads=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.upload_path,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    await app.state.registry.aclose()
    await broadcaster.aclose()
    logger.info("👋 中继服务已关闭 | 剩余房间: %d", len(app.state.registry))


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="课堂幻灯片与实时字幕中继服务",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """为每个 HTTP 请求绑定 request_id，并回写到响应头。"""
    req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    token = request_id_ctx_var.set(req_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx_var.reset(token)
    response.headers["X-Request-ID"] = req_id
    return response


# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(session_ws.router, tags=["Session Relay"])
app.include_router(upload.router, tags=["Artifact Ingress"])
app.include_router(session_endpoints.router, prefix="/api", tags=["Sessions"])

# 课件静态文件；目录在 lifespan 中由 ArtifactStore 创建
app.mount(
    settings.FILES_ROUTE,
    StaticFiles(directory=settings.upload_path, check_dir=False),
    name="files",
)


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """把 HTTPException 渲染为统一的 ApiResponse.fail() 格式。"""
    response = ApiResponse.fail(msg=str(exc.detail), code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """存活检查：进程在服务即返回 ok。"""
    registry: SessionRegistry = request.app.state.registry
    return JSONResponse(
        content={
            "ok": True,
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "sessions": len(registry),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lecture_relay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
