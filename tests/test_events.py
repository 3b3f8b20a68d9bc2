"""
tests.test_events
~~~~~~~~~~~~~~~~~

入站消息解析与数值宽松转换测试。
"""
from __future__ import annotations

import json

import pytest

from lecture_relay.schemas.events import (
    DeckChangeEvent,
    PageChangeEvent,
    SlideData,
    SyncEvent,
    TranscriptChangeEvent,
    coerce_positive_int,
    parse_host_update,
)


class TestCoercePositiveInt:
    """页码 / 页数的宽松转换。"""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (5, 5),
            (12.0, 12),
            (3.9, 3),
            ("7", 7),
            (" 10 ", 10),
        ],
    )
    def test_accepts_finite_positive(self, raw: object, expected: int) -> None:
        assert coerce_positive_int(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [None, 0, -3, 0.5, float("nan"), float("inf"), "abc", "", True, [], {}],
    )
    def test_rejects_invalid(self, raw: object) -> None:
        assert coerce_positive_int(raw) is None


class TestParseHostUpdate:
    """测试 ``parse_host_update`` 的分发与容错。"""

    def test_slide_event(self) -> None:
        update = parse_host_update('{"type": "slide", "page": 5, "numPages": 12}')

        assert isinstance(update, PageChangeEvent)
        assert update.page == 5
        assert update.numPages == 12

    def test_pdf_event_from_bytes(self) -> None:
        raw = json.dumps({"type": "pdf", "url": "http://x/a.pdf", "name": "a.pdf", "numPages": "3"})
        update = parse_host_update(raw.encode("utf-8"))

        assert isinstance(update, DeckChangeEvent)
        assert update.url == "http://x/a.pdf"
        assert update.name == "a.pdf"
        assert update.numPages == 3

    def test_transcript_event_stringifies_text(self) -> None:
        update = parse_host_update('{"type": "transcript", "text": 42}')

        assert isinstance(update, TranscriptChangeEvent)
        assert update.text == "42"

    def test_transcript_null_text_becomes_empty(self) -> None:
        update = parse_host_update('{"type": "transcript", "text": null}')

        assert isinstance(update, TranscriptChangeEvent)
        assert update.text == ""

    def test_invalid_numbers_become_none(self) -> None:
        """非法数值不会让整条消息作废，只是字段变为 None（保留原值）。"""
        update = parse_host_update('{"type": "slide", "page": "NaN", "numPages": -1}')

        assert isinstance(update, PageChangeEvent)
        assert update.page is None
        assert update.numPages is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json at all",
            b"\xff\xfe\x00",
            "[1, 2, 3]",
            '{"page": 3}',
            '{"type": "presence", "count": 4}',
            '{"type": "sync"}',
            '{"type": "unknown"}',
        ],
    )
    def test_malformed_or_unknown_is_none(self, raw: str | bytes) -> None:
        assert parse_host_update(raw) is None


def test_sync_event_serialization_shape() -> None:
    """``sync`` 的线上结构与前端约定一致。"""
    event = SyncEvent(pdf=None, slide=SlideData(page=1, numPages=0), transcript="")

    assert json.loads(event.model_dump_json()) == {
        "type": "sync",
        "pdf": None,
        "slide": {"page": 1, "numPages": 0},
        "transcript": "",
    }
