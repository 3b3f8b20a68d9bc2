from __future__ import annotations

from pathlib import Path

import pytest

from lecture_relay.core.settings import Settings


def test_log_level_follows_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    assert Settings(ENVIRONMENT="dev").effective_log_level == "INFO"
    assert Settings(ENVIRONMENT="test").effective_log_level == "DEBUG"
    assert Settings(ENVIRONMENT="prod").effective_log_level == "WARNING"


def test_explicit_log_level_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    assert Settings(ENVIRONMENT="prod").effective_log_level == "ERROR"


def test_prod_disables_open_cors() -> None:
    prod = Settings(ENVIRONMENT="prod")

    assert prod.is_prod
    assert not prod.allow_cors_all_origins
    assert not prod.debug


def test_upload_path_is_absolute(tmp_path: Path) -> None:
    s = Settings(UPLOAD_DIR=str(tmp_path / "decks"))

    assert s.upload_path.is_absolute()
    assert s.upload_path == (tmp_path / "decks").resolve()


def test_env_overrides_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SESSION_CODE_MAX_LENGTH", "8")
    monkeypatch.setenv("WS_SEND_TIMEOUT", "1.5")

    s = Settings()

    assert s.SESSION_CODE_MAX_LENGTH == 8
    assert s.WS_SEND_TIMEOUT == 1.5


def test_delivery_and_expiry_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WS_SEND_QUEUE_SIZE", raising=False)
    monkeypatch.delenv("IDLE_ROOM_TTL", raising=False)

    s = Settings()

    assert s.WS_SEND_QUEUE_SIZE == 64
    assert s.IDLE_ROOM_TTL == 600.0
