"""
lecture_relay.core.settings
~~~~~~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="Lecture Relay", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=5174, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")
    ALLOWED_ORIGINS: list[str] = Field(
        default_factory=list,
        description="prod 环境允许的 CORS 来源",
    )

    # ── 课件上传 ──────────────────────────────────────────────────────
    UPLOAD_DIR: str = Field(
        default="uploads",
        description="上传课件的存放目录（相对路径基于当前工作目录）",
    )
    FILES_ROUTE: str = Field(default="/files", description="课件静态文件的挂载路径")
    PUBLIC_BASE_URL: str = Field(
        default="",
        description="课件对外访问的基础 URL，留空则根据请求推断",
    )
    MAX_UPLOAD_BYTES: int = Field(
        default=50 * 1024 * 1024,
        description="单个课件文件的最大字节数",
    )

    # ── 限流 ──────────────────────────────────────────────────────────
    UPLOAD_RATE_LIMIT: str = Field(default="30/minute", description="上传接口限流规则")
    API_RATE_LIMIT: str = Field(default="20/second", description="会话查询接口限流规则")

    # ── 会话中继 ──────────────────────────────────────────────────────
    SESSION_CODE_MAX_LENGTH: int = Field(
        default=32,
        ge=1,
        description="会话码规范化后的最大长度",
    )
    WS_SEND_TIMEOUT: float = Field(
        default=5.0,
        gt=0,
        description="单条消息的写超时（秒），超时的消息跳过",
    )
    WS_SEND_QUEUE_SIZE: int = Field(
        default=64,
        ge=1,
        description="每个连接最多积压的待发消息数，队列满时丢弃新消息",
    )
    IDLE_ROOM_TTL: float = Field(
        default=600.0,
        gt=0,
        description="只有课件、始终无人连接的房间保留的秒数",
    )

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    # ── 环境差异化行为 ────────────────────────────────────────────────

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")

    @property
    def allow_cors_all_origins(self) -> bool:
        """是否允许所有 CORS 来源。非 prod 环境允许，方便本地调试。"""
        return not self.is_prod

    @property
    def upload_path(self) -> Path:
        """课件目录的绝对路径。"""
        return Path(self.UPLOAD_DIR).expanduser().resolve()


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
