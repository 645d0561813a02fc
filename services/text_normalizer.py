"""
Text normalization for OCR snippets.

Strips messaging-app chrome (timestamps, delivery receipts, date stamps,
bullet markers) from a recognized line and extracts structured metadata.
Every function here is a pure function of its input text.
"""
import re
from datetime import time
from typing import List, Optional, Tuple

from models.data_models import MessageMetadata


# H:MM[:SS][ AM|PM]
TIME_OF_DAY_PATTERN = re.compile(
    r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AP]M\b)?",
    re.IGNORECASE,
)
STANDALONE_TIME_PATTERN = re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?\s*(?:am|pm)?$")

CHROME_TOKENS = [
    "iMessage",
    "Message",
    "Text Message",
    "SMS",
    "MMS",
    "Delivered",
    "Read",
    "Sent",
    "Not Delivered",
    "Today",
    "Yesterday",
    "Last week",
]
# Longer tokens first so "Not Delivered" goes as a whole instead of leaving "Not"
_CHROME_REMOVAL_ORDER = sorted(CHROME_TOKENS, key=len, reverse=True)
_CHROME_PATTERNS = [(tok, re.compile(re.escape(tok), re.IGNORECASE)) for tok in _CHROME_REMOVAL_ORDER]

BULLET_PATTERN = re.compile(r"^[•*\-\s]+")
DATE_PATTERN = re.compile(
    r"\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\.?\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{2,4})?"
)

METADATA_KEYWORDS = [
    "imessage", "message", "text message", "sms", "mms", "delivered", "read", "sent",
    "today", "yesterday", "last week", "now", "edited", "delete", "notification",
    "typing", "seen", "read receipt", "read at", "received", "sent with", "via",
]


def parse_time_of_day(raw: Optional[str]) -> Optional[time]:
    """Parse ``H:MM[:SS][ AM|PM]`` into a time of day.

    12 AM maps to hour 0 and PM adds 12 to hours below 12. Seconds are
    ignored. Returns None when the text does not hold a valid time.
    """
    if not raw:
        return None
    match = TIME_OF_DAY_PATTERN.search(raw)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2))
    period = (match.group(4) or "").lower()
    if period == "pm" and hour < 12:
        hour += 12
    elif period == "am" and hour == 12:
        hour = 0
    try:
        return time(hour, minute)
    except ValueError:
        return None


def is_system_text(text: str) -> bool:
    """Return True when the text looks like app chrome rather than a message."""
    lowered = (text or "").lower()
    if any(keyword in lowered for keyword in METADATA_KEYWORDS):
        return True
    return bool(STANDALONE_TIME_PATTERN.match(lowered.strip()))


def _strip_once(text: str, artifacts: List[str]) -> Tuple[str, Optional[str]]:
    """Run one round of the cleaning steps; returns (text, first timestamp seen)."""
    result = text.strip()
    timestamp_raw = None

    match = TIME_OF_DAY_PATTERN.search(result)
    if match:
        timestamp_raw = match.group(0).strip()
        result = TIME_OF_DAY_PATTERN.sub("", result)
        artifacts.append(f"timestamp: {timestamp_raw}")

    for token, pattern in _CHROME_PATTERNS:
        if pattern.search(result):
            result = pattern.sub("", result)
            artifacts.append(token)

    bullet = BULLET_PATTERN.match(result)
    if bullet and bullet.group(0):
        result = result[bullet.end():]
        if bullet.group(0).strip():
            artifacts.append("bullet or list marker")

    if DATE_PATTERN.search(result):
        result = DATE_PATTERN.sub("", result)
        artifacts.append("date")

    return result.strip(), timestamp_raw


def clean(raw_text: str) -> Tuple[str, MessageMetadata]:
    """Clean a raw snippet and extract its metadata.

    Never raises. The cleaning round is repeated until the text stops
    changing, so removals that expose more chrome are handled and
    ``clean(clean(x)[0])[0] == clean(x)[0]`` holds.
    """
    original = raw_text or ""
    artifacts: List[str] = []
    timestamp_raw: Optional[str] = None

    current = original
    while True:
        cleaned, found = _strip_once(current, artifacts)
        if timestamp_raw is None and found:
            timestamp_raw = found
        if cleaned == current:
            break
        current = cleaned

    metadata = MessageMetadata(
        timestamp=parse_time_of_day(timestamp_raw),
        timestamp_raw=timestamp_raw,
        is_system_message=is_system_text(original),
        artifacts_removed=artifacts,
    )
    return current, metadata


def clean_text(raw_text: str) -> str:
    return clean(raw_text)[0]


def normalize_key(text: str) -> str:
    """Deduplication key: lowercased and trimmed."""
    return (text or "").strip().lower()


def normalize_for_match(text: str) -> str:
    """Cleaned, lowercased text with whitespace runs collapsed."""
    return " ".join(clean_text(text).lower().split())


def texts_match(a: str, b: str) -> bool:
    """Permissive equality-or-containment test tolerant of OCR edge noise.

    Empty text (for example a snippet that was pure chrome) never matches.
    """
    na = normalize_for_match(a)
    nb = normalize_for_match(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na
