"""
Tests for the widget-side router: AI turns, handoff and relay into threads.
"""
import pytest
import asyncio
from datetime import datetime

from support_relay.routing import (
    HANDOFF_CONNECTED_MESSAGE,
    HANDOFF_FALLBACK_MESSAGE,
    InvalidSenderError,
    RelayError,
    to_completion_history
)
from support_relay.services import CompletionRateLimitError, MessagingError, ServiceUnavailableError
from support_relay.session import (
    ChatMessage,
    MessageSender,
    NoThreadBoundError,
    SessionNotFoundError
)


# ===========================
# AI-Answered Turns
# ===========================

class TestHandleMessage:
    """Widget turns before handoff."""

    async def test_first_message_creates_session_and_replies(self, widget_router, session_manager, fake_completion):
        reply = await widget_router.handle_message("s1", "How much is photo scanning?")

        assert reply.response == "Our Popular package starts at $199."
        assert reply.forwarded is False

        session = await session_manager.get_session("s1")
        assert [m.sender for m in session.messages] == ["user", "bot"]
        assert session.messages[0].id.startswith("user_")
        assert session.messages[1].id.startswith("bot_")
        assert session.messages[1].content == reply.response

        history = fake_completion.complete.await_args.args[0]
        assert history == [{"role": "user", "content": "How much is photo scanning?"}]

    async def test_history_includes_previous_turns(self, widget_router, fake_completion):
        await widget_router.handle_message("s1", "Hi")
        await widget_router.handle_message("s1", "What about slides?")

        history = fake_completion.complete.await_args.args[0]
        assert [h["role"] for h in history] == ["user", "assistant", "user"]
        assert history[-1]["content"] == "What about slides?"

    async def test_system_prompt_comes_from_catalog(self, widget_router, fake_completion):
        await widget_router.handle_message("s1", "Hi")

        assert fake_completion.complete.await_args.args[1] == "You are Helena."

    async def test_order_lookup_answers_without_completion(
        self, widget_router, fake_orders, fake_completion, found_order
    ):
        fake_orders.check_order_status.return_value = found_order

        reply = await widget_router.handle_message("s1", "Where is order #12345?")

        assert reply.response == found_order.message
        fake_completion.complete.assert_not_awaited()

    async def test_completion_failure_propagates_and_keeps_user_message(
        self, widget_router, fake_completion, session_manager
    ):
        fake_completion.complete.side_effect = CompletionRateLimitError("throttled", status_code=429)

        with pytest.raises(CompletionRateLimitError):
            await widget_router.handle_message("s1", "Hello?")

        session = await session_manager.get_session("s1")
        assert [m.sender for m in session.messages] == ["user"]

    async def test_archival_scheduled_when_human_requested(self, widget_router, fake_archiver):
        await widget_router.handle_message("s1", "Can I speak to someone please")

        fake_archiver.schedule.assert_called_once()
        snapshot = fake_archiver.schedule.call_args.args[0]
        assert len(snapshot.messages) == 2

    async def test_archival_not_scheduled_for_plain_question(self, widget_router, fake_archiver):
        await widget_router.handle_message("s1", "What are your hours?")

        fake_archiver.schedule.assert_not_called()


# ===========================
# Handoff Mode
# ===========================

class TestHandoffModeMessages:
    """Widget turns after a human took over."""

    async def test_bound_session_forwards_to_thread(
        self, widget_router, session_manager, fake_slack, fake_completion
    ):
        await widget_router.request_handoff("s1")
        thread_id = (await session_manager.get_session("s1")).external_thread_id

        reply = await widget_router.handle_message("s1", "Are you there?")

        assert reply.forwarded is True
        assert reply.response is None
        fake_completion.complete.assert_not_awaited()
        assert fake_slack.posts[-1]["thread_ts"] == thread_id
        assert "Are you there?" in fake_slack.posts[-1]["text"]

        session = await session_manager.get_session("s1")
        assert session.messages[-1].content == "Are you there?"
        assert session.messages[-1].sender == "user"

    async def test_forward_failure_still_stores_message(self, widget_router, session_manager, fake_slack):
        await widget_router.request_handoff("s1")
        fake_slack.fail_with = ServiceUnavailableError("slack down")

        reply = await widget_router.handle_message("s1", "Hello?")

        assert reply.forwarded is True
        session = await session_manager.get_session("s1")
        assert session.messages[-1].content == "Hello?"
        assert "slack_forward_failed" in session.debug_log[-1]


# ===========================
# Human Handoff
# ===========================

class TestRequestHandoff:
    """Opening and binding handoff threads."""

    async def test_handoff_binds_thread_and_replays_conversation(
        self, widget_router, session_manager, fake_slack, widget_conversation
    ):
        result = await widget_router.request_handoff(
            "s1",
            messages=widget_conversation,
            customer_info={"name": "Jane", "email": "jane@example.com"}
        )

        assert result.success is True
        assert result.outcome == "connected"
        assert result.message == HANDOFF_CONNECTED_MESSAGE

        announcement, details = fake_slack.posts
        assert announcement["thread_ts"] is None
        assert "Jane" in announcement["text"]
        assert details["thread_ts"] == announcement["ts"]
        assert result.thread_id == announcement["ts"]

        session = await session_manager.get_session("s1")
        assert session.external_thread_id == announcement["ts"]
        assert session.user_id == "jane@example.com"
        assert [m.id for m in session.messages] == ["w1", "w2", "w3"]

        by_thread = await session_manager.get_session_by_thread(announcement["ts"])
        assert by_thread.session_id == "s1"

    async def test_handoff_does_not_replay_into_existing_transcript(
        self, widget_router, session_manager, widget_conversation
    ):
        await widget_router.handle_message("s1", "How much for 200 photos?")

        await widget_router.request_handoff("s1", messages=widget_conversation)

        session = await session_manager.get_session("s1")
        assert len(session.messages) == 2
        assert session.is_thread_bound

    async def test_replay_coerces_unknown_sender_and_skips_empty(self, widget_router, session_manager):
        await widget_router.request_handoff(
            "s1",
            messages=[
                {"content": "hello", "sender": "system"},
                {"id": "x", "content": "", "sender": "user"}
            ]
        )

        session = await session_manager.get_session("s1")
        assert len(session.messages) == 1
        assert session.messages[0].sender == "bot"
        assert session.messages[0].id.startswith("msg_")

    async def test_already_connected_opens_no_second_thread(self, widget_router, fake_slack):
        first = await widget_router.request_handoff("s1")
        posts = len(fake_slack.posts)

        second = await widget_router.request_handoff("s1")

        assert second.success is True
        assert second.outcome == "already_connected"
        assert second.thread_id == first.thread_id
        assert len(fake_slack.posts) == posts

    async def test_concurrent_handoffs_open_one_thread(self, widget_router, fake_slack, session_manager):
        results = await asyncio.gather(*[widget_router.request_handoff("s1") for _ in range(5)])

        announcements = [p for p in fake_slack.posts if p["thread_ts"] is None]
        assert len(announcements) == 1
        assert all(r.success for r in results)
        assert {r.thread_id for r in results} == {announcements[0]["ts"]}

    async def test_unconfigured_messaging_degrades(self, widget_router, fake_slack, session_manager):
        fake_slack.is_configured = False

        result = await widget_router.request_handoff("s1")

        assert result.success is False
        assert result.outcome == "degraded"
        assert result.message == HANDOFF_FALLBACK_MESSAGE
        assert await session_manager.get_session("s1") is None

    async def test_announcement_failure_degrades_without_binding(self, widget_router, fake_slack, session_manager):
        fake_slack.fail_with = MessagingError("Slack API error: channel_not_found", error_code="channel_not_found")

        result = await widget_router.request_handoff("s1")

        assert result.success is False
        assert result.message == HANDOFF_FALLBACK_MESSAGE
        assert await session_manager.get_session("s1") is None

    async def test_details_failure_degrades_without_binding(self, widget_router, fake_slack, session_manager):
        fake_slack.fail_with = ServiceUnavailableError("slack down")
        fake_slack.fail_threaded_only = True

        result = await widget_router.request_handoff("s1")

        assert result.outcome == "degraded"
        assert await session_manager.get_session("s1") is None


# ===========================
# Relay To Thread
# ===========================

class TestRelayToThread:
    """Posting widget messages into a bound thread."""

    async def test_relay_posts_and_stores(self, widget_router, session_manager, fake_slack):
        await widget_router.request_handoff("s1")

        result = await widget_router.relay_to_thread("s1", "<strong>Hi</strong> there", "user")

        assert result.message_id.startswith("user_")
        assert result.slack_message_id == fake_slack.posts[-1]["ts"]
        assert "*Hi* there" in fake_slack.posts[-1]["text"]

        session = await session_manager.get_session("s1")
        assert session.messages[-1].id == result.message_id
        assert datetime.fromisoformat(result.timestamp) == session.messages[-1].timestamp

    async def test_invalid_sender(self, widget_router):
        with pytest.raises(InvalidSenderError):
            await widget_router.relay_to_thread("s1", "hi", "agent")

    async def test_unknown_session(self, widget_router):
        with pytest.raises(SessionNotFoundError):
            await widget_router.relay_to_thread("missing", "hi", "user")

    async def test_unbound_session(self, widget_router, session_manager):
        await session_manager.get_or_create_session("s1")

        with pytest.raises(NoThreadBoundError):
            await widget_router.relay_to_thread("s1", "hi", "user")

    async def test_platform_rejection(self, widget_router, fake_slack, session_manager):
        await widget_router.request_handoff("s1")
        fake_slack.fail_with = MessagingError("Slack API error: not_in_channel", error_code="not_in_channel")

        with pytest.raises(RelayError, match="not_in_channel"):
            await widget_router.relay_to_thread("s1", "hi", "bot")

        session = await session_manager.get_session("s1")
        assert session.messages == []


# ===========================
# History Mapping
# ===========================

def test_completion_history_drops_leading_assistant_turns():
    messages = [
        ChatMessage(id="1", content="Welcome!", sender=MessageSender.BOT),
        ChatMessage(id="2", content="Hi", sender=MessageSender.USER),
        ChatMessage(id="3", content="An agent here", sender=MessageSender.AGENT),
        ChatMessage(id="4", content="Thanks", sender=MessageSender.USER)
    ]

    history = to_completion_history(messages, window=10)

    assert [h["role"] for h in history] == ["user", "assistant", "user"]


def test_completion_history_window():
    messages = [
        ChatMessage(id=str(i), content=f"m{i}", sender=MessageSender.USER)
        for i in range(15)
    ]

    history = to_completion_history(messages, window=10)

    assert len(history) == 10
    assert history[0]["content"] == "m5"
