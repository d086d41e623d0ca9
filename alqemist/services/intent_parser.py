"""
Reminder intent extraction from chat text.

Recognised forms (case-insensitive):
- "remind me to <X> in <N> minutes|hours|days"
- "remind me to <X> tomorrow [at HH:MM]"
- "remind me to <X> at HH:MM"          (today, or tomorrow if the time has passed)
- "... meeting ... at HH:MM"           (kind "meeting")

Times accept 24h "14:30" and 12h "2pm" / "2:30 pm". Times are taken as UTC.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from alqemist.utils.clock import utcnow


@dataclass
class ParsedIntent:
    title: str
    due_at: datetime
    kind: str  # "reminder" | "meeting"


class IntentParser(Protocol):
    def __call__(self, text: str, now: Optional[datetime] = None) -> Optional[ParsedIntent]: ...


_TIME = r"(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<ampm>am|pm)?"

_RELATIVE = re.compile(
    r"remind me to (?P<title>.+?) in (?P<amount>\d+) (?P<unit>minutes?|mins?|hours?|hrs?|days?)\b",
    re.IGNORECASE,
)
_TOMORROW = re.compile(
    r"remind me to (?P<title>.+?) tomorrow(?: at " + _TIME + r")?\b",
    re.IGNORECASE,
)
_AT_TIME = re.compile(r"remind me to (?P<title>.+?) at " + _TIME + r"\b", re.IGNORECASE)
_MEETING = re.compile(
    r"(?P<title>[^.!?\n]*\bmeeting\b[^.!?\n]*?) at " + _TIME + r"\b",
    re.IGNORECASE,
)

_UNITS = {"min": "minutes", "hour": "hours", "hr": "hours", "day": "days"}

# Default time for "tomorrow" without a time
_DEFAULT_HOUR = 9


def _unit(raw: str) -> str:
    raw = raw.lower()
    for prefix, unit in _UNITS.items():
        if raw.startswith(prefix):
            return unit
    return "minutes"


def _clock(match: re.Match) -> Optional[tuple[int, int]]:
    if match.group("hour") is None:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    ampm = (match.group("ampm") or "").lower()
    if ampm == "pm" and hour < 12:
        hour += 12
    elif ampm == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def _at_next(now: datetime, hour: int, minute: int) -> datetime:
    due = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if due <= now:
        due += timedelta(days=1)
    return due


def _clean_title(raw: str) -> str:
    return raw.strip().strip(",;:").strip()


def parse_intent(text: str, now: Optional[datetime] = None) -> Optional[ParsedIntent]:
    """Return the first reminder/meeting intent found in text, or None."""
    if not text:
        return None
    now = now or utcnow()

    m = _RELATIVE.search(text)
    if m:
        amount = int(m.group("amount"))
        try:
            due = now + timedelta(**{_unit(m.group("unit")): amount})
        except OverflowError:
            # past datetime.max
            return None
        return ParsedIntent(_clean_title(m.group("title")), due, "reminder")

    m = _TOMORROW.search(text)
    if m:
        clock = _clock(m) or (_DEFAULT_HOUR, 0)
        due = (now + timedelta(days=1)).replace(hour=clock[0], minute=clock[1], second=0, microsecond=0)
        return ParsedIntent(_clean_title(m.group("title")), due, "reminder")

    m = _AT_TIME.search(text)
    if m:
        clock = _clock(m)
        if clock:
            return ParsedIntent(_clean_title(m.group("title")), _at_next(now, *clock), "reminder")

    m = _MEETING.search(text)
    if m:
        clock = _clock(m)
        if clock:
            title = _clean_title(m.group("title"))
            return ParsedIntent(title[:1].upper() + title[1:], _at_next(now, *clock), "meeting")

    return None


# Topic keywords for activity logging; first match wins
_TOPICS = [
    ("python", re.compile(r"\b(python|django|fastapi|pandas|pip)\b", re.I)),
    ("javascript", re.compile(r"\b(javascript|typescript|node(js)?|npm)\b", re.I)),
    ("react", re.compile(r"\b(react|next\.?js|jsx|tsx)\b", re.I)),
    ("sql", re.compile(r"\b(sql|postgres(ql)?|mysql|sqlite|query)\b", re.I)),
    ("devops", re.compile(r"\b(docker|kubernetes|k8s|ci/cd|deploy(ment)?|terraform)\b", re.I)),
    ("machine-learning", re.compile(r"\b(machine learning|neural|llm|model training|embeddings?)\b", re.I)),
    ("writing", re.compile(r"\b(essay|blog post|article|copywriting|email draft)\b", re.I)),
    ("marketing", re.compile(r"\b(marketing|seo|campaign|social media)\b", re.I)),
]


def detect_topic(text: str) -> Optional[str]:
    """Coarse topic label for a chat message, or None."""
    for topic, pattern in _TOPICS:
        if text and pattern.search(text):
            return topic
    return None


def count_questions(text: str) -> int:
    return (text or "").count("?")
