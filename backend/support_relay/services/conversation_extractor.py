"""
Structured data extraction from chat transcripts.
Pulls contact details, media types, quantities and inquiry categories out
of free text for the record store.

Version: 1.0.0
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .order_service import EMAIL_PATTERN

NAME_INTRO_PATTERN = re.compile(r"(?:my name is|i'm|i am|this is) ([a-z\s]+)", re.IGNORECASE)
FULL_NAME_PATTERN = re.compile(r"(?:^|\s)([A-Z][a-z]+ [A-Z][a-z]+)(?:\s|$)")
PHONE_PATTERN = re.compile(r"(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})")

QUANTITY_PATTERNS = [
    re.compile(r"(\d+)\s*(photo|picture|image|slide|tape|reel|negative|video)", re.IGNORECASE),
    re.compile(r"(hundred|thousand|dozens?|lots?)\s+of\s+(photo|picture|image|slide|tape|reel)", re.IGNORECASE)
]

NOTABLE_PATTERNS = [
    re.compile(r"(?:i have|we have|there are) (\d+.*?(?:photo|video|slide|tape|reel|negative))", re.IGNORECASE),
    re.compile(r"(?:need|want|looking for) (.*?(?:digitiz|transfer|convert))", re.IGNORECASE),
    re.compile(r"(?:deadline|need by|required by) (.*)", re.IGNORECASE)
]

MEDIA_KEYWORDS: Dict[str, List[str]] = {
    "Photos": ["photo", "picture", "image", "snapshot"],
    "Slides": ["slide", "kodachrome", "35mm slide"],
    "Negatives": ["negative", "film strip"],
    "VHS Tapes": ["vhs", "video tape", "vcr"],
    "8mm Film": ["8mm", "super 8", "film reel"],
    "16mm Film": ["16mm"],
    "MiniDV": ["minidv", "mini dv", "digital video"],
    "Hi8": ["hi8", "hi-8"],
    "Betamax": ["betamax", "beta"],
    "Documents": ["document", "paper", "certificate"]
}

INQUIRY_KEYWORDS: Dict[str, List[str]] = {
    "Pricing Information": ["price", "cost", "how much", "pricing", "quote", "estimate"],
    "Service Details": ["service", "process", "how do", "what do you"],
    "Timeline Questions": ["how long", "turnaround", "when", "timeline", "rush", "fast"],
    "Shipping Info": ["ship", "mail", "send", "delivery", "address"],
    "Technical Support": ["problem", "issue", "not working", "error"],
    "Bulk Quote": ["bulk", "large", "many", "hundreds", "thousands"],
    "Rush Processing": ["rush", "urgent", "asap", "quickly", "fast", "express"]
}

HUMAN_REQUEST_PHRASES = ("speak to someone", "human", "representative", "agent")


@dataclass
class ExtractedConversationData:
    """Structured facts found in a conversation."""
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    media_types: List[str] = field(default_factory=list)
    quantities: List[str] = field(default_factory=list)
    inquiry_types: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


def extract_email(text: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(text)
    return match.group(0) if match else None


def asks_for_human(text: str) -> bool:
    """Whether the text asks for a person rather than the assistant."""
    lowered = text.lower()
    return any(phrase in lowered for phrase in HUMAN_REQUEST_PHRASES)


def _matching_labels(text: str, keyword_map: Dict[str, List[str]]) -> List[str]:
    return [label for label, keywords in keyword_map.items() if any(k in text for k in keywords)]


def extract_conversation_data(contents: Iterable[str]) -> ExtractedConversationData:
    """
    Extract structured data from message contents.

    Args:
        contents: Message texts, oldest first

    Returns:
        ExtractedConversationData
    """
    contents = list(contents)
    original = " ".join(contents)
    conversation = original.lower()
    data = ExtractedConversationData()

    for content in contents:
        email = extract_email(content)
        if email:
            data.email = email
            break

    intro = NAME_INTRO_PATTERN.search(conversation)
    if intro and intro.group(1).strip():
        data.name = intro.group(1).strip()
    else:
        full_name = FULL_NAME_PATTERN.search(original)
        if full_name:
            data.name = full_name.group(1).strip()

    phone = PHONE_PATTERN.search(conversation)
    if phone:
        data.phone = phone.group(1)

    data.media_types = _matching_labels(conversation, MEDIA_KEYWORDS)
    data.inquiry_types = _matching_labels(conversation, INQUIRY_KEYWORDS)

    for pattern in QUANTITY_PATTERNS:
        for match in pattern.finditer(conversation):
            data.quantities.append(f"{match.group(1)} {match.group(2)}s")

    for pattern in NOTABLE_PATTERNS:
        for match in pattern.finditer(conversation):
            data.notes.append(match.group(1).strip())

    return data


__all__ = [
    'ExtractedConversationData',
    'extract_conversation_data',
    'extract_email',
    'asks_for_human',
    'MEDIA_KEYWORDS',
    'INQUIRY_KEYWORDS'
]
