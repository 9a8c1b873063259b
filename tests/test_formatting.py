"""
Tests for text formatting and conversation data extraction.
"""
import pytest
from datetime import datetime

from support_relay.routing.formatting import (
    clean_agent_text,
    format_for_thread,
    handoff_announcement,
    handoff_details,
    html_to_mrkdwn
)
from support_relay.services.conversation_extractor import asks_for_human, extract_conversation_data


# ===========================
# Thread Formatting
# ===========================

@pytest.mark.parametrize("html,expected", [
    ("line one<br>line two", "line one\nline two"),
    ("<strong>bold</strong> and <em>italic</em>", "*bold* and _italic_"),
    ('<a href="https://x.y">link</a>', "link"),
    ("  padded  ", "padded")
])
def test_html_to_mrkdwn(html, expected):
    assert html_to_mrkdwn(html) == expected


def test_format_for_thread_prefixes_sender():
    assert format_for_thread("s1", "hello", "user") == "📧 *Session: s1*\n👤 **Customer:** hello"
    assert format_for_thread("s1", "hi there", "bot") == "📧 *Session: s1*\n🤖 **Bot:** hi there"


@pytest.mark.parametrize("text,expected", [
    ("👤 **Customer:** hello", "hello"),
    ("🤖 **Bot:** hello", "hello"),
    ("**Customer:** hello", "hello"),
    ("**Bot:** hello", "hello"),
    ("**Sam**: on it", "on it"),
    ("  plain reply  ", "plain reply")
])
def test_clean_agent_text(text, expected):
    assert clean_agent_text(text) == expected


def test_announcement_defaults():
    text = handoff_announcement("s1", None)

    assert "Customer: Anonymous" in text
    assert "Email: Not provided" in text
    assert "Session: `s1`" in text


def test_details_preview_last_three_truncated():
    messages = [{"sender": "user", "content": f"message {i}"} for i in range(5)]
    messages[-1]["content"] = "x" * 250

    text = handoff_details(messages, {"email": "a@b.com"}, "https://heritagebox.com", datetime(2024, 1, 15, 10, 30))

    assert "message 0" not in text
    assert "message 2" in text
    assert "x" * 200 + "..." in text
    assert "• Email: a@b.com" in text
    assert "**Time:** 2024-01-15 10:30:00 UTC" in text
    assert "**Website:** https://heritagebox.com" in text


def test_details_without_history():
    text = handoff_details([], None, "https://heritagebox.com", datetime(2024, 1, 15))

    assert "No conversation history available" in text


# ===========================
# Conversation Extraction
# ===========================

def test_extracts_contact_details():
    data = extract_conversation_data([
        "Hi, my name is jane doe.",
        "You can reach me at 555-123-4567 or jane@example.com"
    ])

    assert data.email == "jane@example.com"
    assert data.name == "jane doe"
    assert data.phone == "555-123-4567"


def test_full_name_fallback():
    data = extract_conversation_data(["Hello from Jane Doe about slides"])

    assert data.name == "Jane Doe"


def test_media_inquiry_and_quantities():
    data = extract_conversation_data([
        "How much would it cost for 300 photos and 4 vhs tapes?",
        "We also have a box of slides"
    ])

    assert set(data.media_types) >= {"Photos", "VHS Tapes", "Slides"}
    assert "Pricing Information" in data.inquiry_types
    assert "300 photos" in data.quantities


def test_notes_capture_key_details():
    data = extract_conversation_data(["I have 50 video tapes and need them by christmas"])

    assert any("50 video" in note for note in data.notes)


@pytest.mark.parametrize("text,expected", [
    ("Can I speak to someone?", True),
    ("I'd like a real human", True),
    ("What does scanning cost?", False)
])
def test_asks_for_human(text, expected):
    assert asks_for_human(text) is expected
