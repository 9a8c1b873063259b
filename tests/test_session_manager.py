"""
Tests for the session lifecycle manager.
Covers binding, resolution by thread, transcript appends and TTL refresh.
"""
import pytest
import asyncio
from datetime import timedelta

from support_relay.session import (
    ChatMessage,
    ChatSession,
    InMemorySessionStore,
    MessageSender,
    SessionAlreadyBoundError,
    SessionManager,
    ThreadAlreadyBoundError,
    utc_now
)
from support_relay.session.manager import session_key, thread_key


def user_message(message_id: str, content: str = "hello") -> ChatMessage:
    return ChatMessage(id=message_id, content=content, sender=MessageSender.USER)


# ===========================
# Creation and Binding
# ===========================

class TestCreateSession:
    """Binding sessions to messaging threads."""

    async def test_create_new_bound_session(self, session_manager, in_memory_store):
        session = await session_manager.create_session("s1", "T1", user_id="jane@example.com")

        assert session.session_id == "s1"
        assert session.external_thread_id == "T1"
        assert session.user_id == "jane@example.com"
        assert session.messages == []
        assert any("chat_session_created" in line for line in session.debug_log)
        assert await in_memory_store.get(thread_key("T1")) == "s1"

    async def test_bind_existing_unbound_session_keeps_messages(self, session_manager):
        await session_manager.get_or_create_session("s1")
        await session_manager.append_message("s1", user_message("m1"))

        session = await session_manager.create_session("s1", "T1")

        assert session.external_thread_id == "T1"
        assert [m.id for m in session.messages] == ["m1"]

    async def test_repeat_with_same_thread_is_noop(self, session_manager):
        first = await session_manager.create_session("s1", "T1")
        second = await session_manager.create_session("s1", "T1")

        assert second.external_thread_id == "T1"
        assert second.debug_log == first.debug_log

    async def test_session_cannot_rebind_to_other_thread(self, session_manager):
        await session_manager.create_session("s1", "T1")

        with pytest.raises(SessionAlreadyBoundError):
            await session_manager.create_session("s1", "T2")

        session = await session_manager.get_session("s1")
        assert session.external_thread_id == "T1"

    async def test_thread_cannot_bind_second_session(self, session_manager):
        await session_manager.create_session("s1", "T1")

        with pytest.raises(ThreadAlreadyBoundError):
            await session_manager.create_session("s2", "T1")

        assert await session_manager.get_session("s2") is None

    async def test_get_or_create_returns_existing(self, session_manager):
        created = await session_manager.get_or_create_session("s1")
        again = await session_manager.get_or_create_session("s1")

        assert created.session_id == again.session_id
        assert again.external_thread_id is None
        assert len(again.debug_log) == 1


# ===========================
# Thread Resolution
# ===========================

class TestThreadIndex:
    """Resolving sessions by thread id."""

    async def test_resolves_bound_session(self, session_manager):
        await session_manager.create_session("s1", "T1")

        session = await session_manager.get_session_by_thread("T1")

        assert session is not None
        assert session.session_id == "s1"

    async def test_unknown_thread(self, session_manager):
        assert await session_manager.get_session_by_thread("T-unknown") is None

    async def test_binding_to_expired_session(self, session_manager, in_memory_store):
        await session_manager.create_session("s1", "T1")
        await in_memory_store.delete(session_key("s1"))

        assert await session_manager.get_session_by_thread("T1") is None

    async def test_index_disagreeing_with_session_is_ignored(self, session_manager, in_memory_store):
        await session_manager.create_session("s1", "T1")
        await in_memory_store.set(thread_key("T-stray"), "s1", ttl=300)

        assert await session_manager.get_session_by_thread("T-stray") is None

    async def test_every_write_refreshes_binding_ttl(self, session_manager, in_memory_store):
        await session_manager.create_session("s1", "T1")
        in_memory_store.expiry[thread_key("T1")] -= timedelta(seconds=200)

        await session_manager.append_message("s1", user_message("m1"))

        assert await in_memory_store.ttl(thread_key("T1")) > 200

    async def test_capacity_eviction_never_orphans_binding(self):
        manager = SessionManager(InMemorySessionStore(max_keys=3, default_ttl=300), ttl_seconds=300)
        await manager.create_session("s1", "T1")
        await manager.get_or_create_session("s2")

        await manager.get_or_create_session("s3")

        assert await manager.store.get(thread_key("T1")) is None
        assert await manager.get_session_by_thread("T1") is None
        assert await manager.get_session("s3") is not None

    async def test_capacity_prefers_expired_sessions(self):
        store = InMemorySessionStore(max_keys=3, default_ttl=300)
        manager = SessionManager(store, ttl_seconds=300)
        await manager.create_session("s1", "T1")
        await manager.get_or_create_session("idle")
        store.expiry[session_key("idle")] -= timedelta(seconds=301)

        await manager.get_or_create_session("s2")
        stored = await manager.append_message("s1", user_message("m1"))

        assert stored is not None
        assert (await manager.get_session_by_thread("T1")).session_id == "s1"


# ===========================
# Appends
# ===========================

class TestAppendMessage:
    """Transcript appends."""

    async def test_append_assigns_timestamp(self, session_manager):
        await session_manager.get_or_create_session("s1")

        stored = await session_manager.append_message("s1", user_message("m1"))

        assert stored is not None
        assert stored.timestamp is not None
        session = await session_manager.get_session("s1")
        assert session.messages[0].id == "m1"
        assert session.messages[0].timestamp == stored.timestamp

    async def test_append_to_absent_session_is_dropped(self, session_manager):
        assert await session_manager.append_message("missing", user_message("m1")) is None
        assert await session_manager.get_session("missing") is None

    async def test_timestamps_never_go_backwards(self, session_manager, in_memory_store):
        session = ChatSession(session_id="s1")
        future = utc_now() + timedelta(minutes=5)
        session.messages.append(
            ChatMessage(id="m0", content="from the future", sender=MessageSender.BOT, timestamp=future)
        )
        await in_memory_store.set(session_key("s1"), session.to_json(), ttl=300)

        stored = await session_manager.append_message("s1", user_message("m1"))

        assert stored.timestamp >= future

    async def test_concurrent_appends_are_all_kept(self, session_manager):
        await session_manager.get_or_create_session("s1")

        await asyncio.gather(*[
            session_manager.append_message("s1", user_message(f"m{i}"))
            for i in range(20)
        ])

        session = await session_manager.get_session("s1")
        assert sorted(m.id for m in session.messages) == sorted(f"m{i}" for i in range(20))
        timestamps = [m.timestamp for m in session.messages]
        assert timestamps == sorted(timestamps)

    async def test_debug_log_is_capped(self, in_memory_store):
        manager = SessionManager(in_memory_store, ttl_seconds=300, debug_log_max_entries=5)
        await manager.get_or_create_session("s1")

        for i in range(10):
            await manager.append_message("s1", user_message(f"m{i}"))

        session = await manager.get_session("s1")
        assert len(session.debug_log) == 5
        assert "m9" in session.debug_log[-1]

    async def test_record_event(self, session_manager):
        await session_manager.get_or_create_session("s1")

        assert await session_manager.record_event("s1", "slack_forward_failed", {"error": "boom"})
        assert not await session_manager.record_event("missing", "slack_forward_failed", {})

        session = await session_manager.get_session("s1")
        assert "slack_forward_failed" in session.debug_log[-1]


# ===========================
# Read Refresh
# ===========================

class TestReadRefresh:
    """Plain reads with and without TTL refresh."""

    async def test_plain_read_does_not_write(self, session_manager, in_memory_store):
        await session_manager.get_or_create_session("s1")
        before = await in_memory_store.get(session_key("s1"))

        await session_manager.get_session("s1")

        assert await in_memory_store.get(session_key("s1")) == before

    async def test_refreshing_read_extends_ttl(self, refreshing_session_manager, in_memory_store):
        await refreshing_session_manager.create_session("s1", "T1")
        in_memory_store.expiry[session_key("s1")] -= timedelta(seconds=200)
        in_memory_store.expiry[thread_key("T1")] -= timedelta(seconds=200)

        session = await refreshing_session_manager.get_session("s1")

        assert "get_chat_session_success" in session.debug_log[-1]
        assert await in_memory_store.ttl(session_key("s1")) > 200
        assert await in_memory_store.ttl(thread_key("T1")) > 200

    async def test_refreshing_read_of_absent_session(self, refreshing_session_manager):
        assert await refreshing_session_manager.get_session("missing") is None


# ===========================
# Serialization
# ===========================

def test_session_document_uses_camel_case():
    session = ChatSession(session_id="s1", external_thread_id="T1")

    document = session.to_json()

    assert '"sessionId":"s1"' in document
    assert '"externalThreadId":"T1"' in document
    assert ChatSession.from_json(document).external_thread_id == "T1"


def test_blank_identifier_rejected():
    with pytest.raises(ValueError):
        ChatSession(session_id="   ")
