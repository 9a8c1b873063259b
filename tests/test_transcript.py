"""
Tests for the transcript poller.
"""
from support_relay.routing.transcript import dedupe_by_id, messages_after
from support_relay.session import ChatMessage, MessageSender


def message(message_id: str, sender: MessageSender, content: str = "text") -> ChatMessage:
    return ChatMessage(id=message_id, content=content, sender=sender)


async def seed(session_manager, *messages: ChatMessage) -> None:
    await session_manager.get_or_create_session("s1")
    for m in messages:
        await session_manager.append_message("s1", m)


async def test_unknown_session(transcript_poller, session_manager):
    result = await transcript_poller.get_transcript("missing")

    assert result.session_exists is False
    assert result.messages == []
    assert await session_manager.get_session("missing") is None


async def test_no_cursor_returns_all_non_user_messages(transcript_poller, session_manager):
    await seed(
        session_manager,
        message("u1", MessageSender.USER),
        message("b1", MessageSender.BOT),
        message("a1", MessageSender.AGENT)
    )

    result = await transcript_poller.get_transcript("s1")

    assert result.session_exists is True
    assert [m.id for m in result.messages] == ["b1", "a1"]
    assert result.last_activity is not None
    assert result.debug_log


async def test_cursor_returns_only_newer_messages(transcript_poller, session_manager):
    await seed(
        session_manager,
        message("b1", MessageSender.BOT),
        message("u1", MessageSender.USER),
        message("a1", MessageSender.AGENT),
        message("a2", MessageSender.AGENT)
    )

    result = await transcript_poller.get_transcript("s1", last_message_id="a1")

    assert [m.id for m in result.messages] == ["a2"]


async def test_cursor_at_end_returns_nothing(transcript_poller, session_manager):
    await seed(session_manager, message("a1", MessageSender.AGENT))

    result = await transcript_poller.get_transcript("s1", last_message_id="a1")

    assert result.session_exists is True
    assert result.messages == []


async def test_unknown_cursor_returns_everything(transcript_poller, session_manager):
    await seed(session_manager, message("b1", MessageSender.BOT), message("a1", MessageSender.AGENT))

    result = await transcript_poller.get_transcript("s1", last_message_id="gone")

    assert [m.id for m in result.messages] == ["b1", "a1"]


async def test_duplicate_deliveries_collapsed(transcript_poller, session_manager):
    await seed(
        session_manager,
        message("a1", MessageSender.AGENT, "first"),
        message("a1", MessageSender.AGENT, "second"),
        message("a2", MessageSender.AGENT)
    )

    result = await transcript_poller.get_transcript("s1")

    assert [(m.id, m.content) for m in result.messages] == [("a1", "first"), ("a2", "text")]


async def test_polling_does_not_change_transcript(transcript_poller, session_manager):
    await seed(session_manager, message("a1", MessageSender.AGENT))

    await transcript_poller.get_transcript("s1")
    await transcript_poller.get_transcript("s1", last_message_id="a1")

    session = await session_manager.get_session("s1")
    assert [m.id for m in session.messages] == ["a1"]


def test_dedupe_keeps_first_occurrence():
    messages = [
        message("x", MessageSender.BOT, "one"),
        message("y", MessageSender.BOT),
        message("x", MessageSender.BOT, "two")
    ]

    assert [m.content for m in dedupe_by_id(messages)] == ["one", "text"]


def test_messages_after_excludes_user_messages_past_cursor():
    messages = [
        message("b1", MessageSender.BOT),
        message("u1", MessageSender.USER),
        message("a1", MessageSender.AGENT)
    ]

    assert [m.id for m in messages_after(messages, "b1")] == ["a1"]
