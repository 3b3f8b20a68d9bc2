"""
tests.test_session_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~

SessionRegistry 测试：会话码规范化、懒创建、事件驱动回收、checkout 重试。
"""
from __future__ import annotations

import asyncio

import pytest

from lecture_relay.schemas.events import DeckChangeEvent
from lecture_relay.services.session_registry import SessionRegistry, normalize_code


class TestNormalizeCode:

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("abc123", "ABC123"),
            ("  AbC123 \n", "ABC123"),
            ("ab-c 1.2!3", "ABC123"),
            ("", ""),
            (None, ""),
            ("   ", ""),
            ("***", ""),
        ],
    )
    def test_normalize(self, raw: str | None, expected: str) -> None:
        assert normalize_code(raw) == expected

    def test_truncates_to_max_length(self) -> None:
        assert normalize_code("a" * 50, max_length=8) == "AAAAAAAA"


class TestSessionRegistry:

    def test_get_or_create_is_case_insensitive(self, registry: SessionRegistry) -> None:
        room_a = registry.get_or_create("ABC123")
        room_b = registry.get_or_create("  abc123 ")

        assert room_a is room_b
        assert room_a.code == "ABC123"
        assert len(registry) == 1

    def test_different_codes_are_independent(self, registry: SessionRegistry) -> None:
        assert registry.get_or_create("one") is not registry.get_or_create("two")
        assert len(registry) == 2

    def test_empty_code_is_rejected(self, registry: SessionRegistry) -> None:
        with pytest.raises(ValueError):
            registry.get_or_create(" !! ")

    def test_get_does_not_create(self, registry: SessionRegistry) -> None:
        assert registry.get("nope") is None
        assert "nope" not in registry

    def test_independent_registries(self, broadcaster) -> None:
        first = SessionRegistry(broadcaster=broadcaster)
        second = SessionRegistry(broadcaster=broadcaster)

        first.get_or_create("ABC")

        assert "ABC" in first
        assert "ABC" not in second

    @pytest.mark.asyncio
    async def test_maybe_evict_only_empty_rooms(self, registry: SessionRegistry, make_conn) -> None:
        room = registry.get_or_create("abc")
        viewer = make_conn("viewer")
        await room.attach_viewer(viewer)

        assert registry.maybe_evict("abc") is False
        assert "ABC" in registry

        await room.detach_viewer(viewer)

        assert registry.maybe_evict("abc") is True
        assert "ABC" not in registry
        assert registry.maybe_evict("abc") is False

    @pytest.mark.asyncio
    async def test_host_keeps_room_alive(self, registry: SessionRegistry, make_conn) -> None:
        room = registry.get_or_create("abc")
        host = make_conn("host")
        await room.attach_host(host)

        assert registry.maybe_evict("ABC") is False

        await room.detach_host(host)

        assert registry.maybe_evict("ABC") is True

    @pytest.mark.asyncio
    async def test_checkout_holds_lock(self, registry: SessionRegistry) -> None:
        async with registry.checkout("abc") as room:
            assert room.lock.locked()
            assert registry.get("ABC") is room

        assert not room.lock.locked()

    @pytest.mark.asyncio
    async def test_checkout_retries_after_eviction(self, registry: SessionRegistry) -> None:
        """等锁期间房间被回收时，checkout 拿到的是新登记的房间。"""
        stale = registry.get_or_create("abc")
        await stale.lock.acquire()

        async def enter():
            async with registry.checkout("abc") as room:
                return room

        task = asyncio.create_task(enter())
        await asyncio.sleep(0)

        assert registry.maybe_evict("abc") is True
        stale.lock.release()
        fresh = await task

        assert fresh is not stale
        assert registry.get("abc") is fresh

    @pytest.mark.asyncio
    async def test_list_rooms(self, registry: SessionRegistry, make_conn) -> None:
        await registry.get_or_create("star").attach_host(make_conn("host"))
        registry.get_or_create("moon")

        codes = {info.code for info in registry.list_rooms()}

        assert codes == {"STAR", "MOON"}


class TestUnattendedRooms:
    """只有课件、没人连接的房间按 idle_ttl 过期。"""

    @pytest.mark.asyncio
    async def test_unattended_room_expires(self, broadcaster) -> None:
        registry = SessionRegistry(broadcaster=broadcaster, idle_ttl=0.05)
        async with registry.checkout("zzz") as room:
            await room.apply_update(DeckChangeEvent(url="http://x/z.pdf", name="z.pdf"))
            registry.expire_if_unattended(room)

        assert "ZZZ" in registry
        await asyncio.sleep(0.15)

        assert "ZZZ" not in registry

    @pytest.mark.asyncio
    async def test_room_with_connection_survives_expiry(self, broadcaster, make_conn) -> None:
        registry = SessionRegistry(broadcaster=broadcaster, idle_ttl=0.05)
        async with registry.checkout("zzz") as room:
            registry.expire_if_unattended(room)
        host = make_conn("host")
        async with registry.checkout("zzz") as room:
            await room.attach_host(host)

        await asyncio.sleep(0.15)

        assert registry.get("zzz") is room
        assert room.host is host
        await broadcaster.drain()

    @pytest.mark.asyncio
    async def test_occupied_room_is_not_scheduled(self, registry: SessionRegistry, make_conn) -> None:
        async with registry.checkout("live") as room:
            await room.attach_viewer(make_conn("viewer"))
            registry.expire_if_unattended(room)

        assert registry._expiry_tasks == {}
        await registry.broadcaster.drain()

    @pytest.mark.asyncio
    async def test_aclose_cancels_pending_expiry(self, broadcaster) -> None:
        registry = SessionRegistry(broadcaster=broadcaster, idle_ttl=60)
        async with registry.checkout("later") as room:
            registry.expire_if_unattended(room)

        await registry.aclose()

        assert registry._expiry_tasks == {}
        assert "LATER" in registry
