"""
Calendar event classification.

Every title-pattern decision in the registry lives here: the category
cascade shown on the calendar, the surgery-seed test used to build the
registry, and the control-title parser used for description notes.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from .data_models import Category, RawEvent
from ..utils.date_labels import parse_datetime
from ..utils.normalizers import SCALPEL, turkish_lower

TimeLike = Union[datetime, str, None]

# Google Calendar event palette (colorId -> hex)
GOOGLE_COLOR_PALETTE = {
    '1': '#a4bdfc', '2': '#46a67a', '3': '#dbadff', '4': '#ff887c',
    '5': '#fbd75b', '6': '#ffb878', '7': '#46d6db', '8': '#e1e1e1',
    '9': '#5484ed', '10': '#3d8b3d', '11': '#dc2127',
}

# Red (Tomato) marks cancelled events, Flamingo marks surgeries
RED_COLOR_TOKENS = {'11', '#dc2127'}
SURGERY_COLOR_TOKENS = {'4', '#ff887c'}

CANCELLATION_PREFIXES = ('ipt', 'ert', 'iptal', 'ertelendi', 'bilgi', 'ℹ️', 'ℹ')
NOT_RELEVANT_PHRASES = [
    'hasta görebiliriz', 'hasta görme', 'hasta görelim', 'çıkış', 'yok', 'gitmem', 'vizite',
]
BLOCKED_KEYWORDS = ['xxx', 'izin', 'kongre', 'toplantı', 'off', 'yokum', 'cumartesi', 'pazar']
SURGERY_KEYWORDS = ['ameliyat', 'surgery']
APPOINTMENT_KEYWORDS = ['online', 'muayene', 'exam']
DESCRIPTION_EXEMPT_KEYWORDS = ['ameliyat', 'ilk muayene']

CONTROL_KEYWORD = 'kontrol'
EXAMINATION_KEYWORD = 'muayene'
SURGERY_MIN_DURATION_MINUTES = 60

_CLOCK_PREFIX = re.compile(r'^\d{1,2}[:.]\d{2}')
_CONTROL_MARKER = re.compile(r'^[kK]\d?')
_MONTH_MARKER = re.compile(r'^\d+\.?\d*m\s')
_LETTER_MARKER = re.compile(r'^[mM]\s')
_OPERATION_MARKER = re.compile(r'^op\s', re.IGNORECASE)

_PROCEDURE_PATTERN = re.compile(
    r'rino|revizyon|otoplasti|blef|tiplasti|septorin|septum|^op\s', re.IGNORECASE)
_SEED_EXCLUDE_PATTERN = re.compile(r'^k\d|^kontrol|botoks|dolgu', re.IGNORECASE)

# k, k1, K2, 1m, 3M, 1.5m, 1,5m followed by the patient name
_CONTROL_TITLE_PATTERN = re.compile(r'^([kK]\d*|\d+(?:[,.]\d+)?[mM])\s+(.*\S)\s*$')


@dataclass(frozen=True)
class ControlTitle:
    """A control-visit title split into its marker and name fragment."""
    prefix: str
    name: str


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _color_token(color: Optional[str]) -> str:
    return color.strip().lower() if color else ''


def is_red_color(color: Optional[str]) -> bool:
    """True for the reserved cancellation color, as colorId or hex."""
    return _color_token(color) in RED_COLOR_TOKENS


def is_surgery_color(color: Optional[str]) -> bool:
    """True for the color used to mark surgeries, as colorId or hex."""
    return _color_token(color) in SURGERY_COLOR_TOKENS


def resolve_color(color_id: Optional[str]) -> Optional[str]:
    """Map a Google colorId to its hex value; hex input passes through."""
    if not color_id:
        return None
    if color_id.startswith('#'):
        return color_id
    return GOOGLE_COLOR_PALETTE.get(color_id)


def _duration_minutes(start: TimeLike, end: TimeLike) -> Optional[float]:
    """Event duration, or None when it cannot be determined."""
    if not start or not end:
        return None
    try:
        start_dt = parse_datetime(start) if isinstance(start, str) else start
        end_dt = parse_datetime(end) if isinstance(end, str) else end
        return (end_dt - start_dt).total_seconds() / 60
    except (TypeError, ValueError):
        # Unparseable or mixed naive/aware values disable the duration rule
        return None


def classify(title: str,
             color: Optional[str] = None,
             start: TimeLike = None,
             end: TimeLike = None) -> Category:
    """
    Categorize a calendar event.

    Rules are evaluated in priority order and the first match wins:
    ignore, blocked, surgery, checkup, appointment. Anything left over is
    an appointment, so the function never fails.

    Args:
        title: Event title
        color: Google colorId or hex color
        start: Event start (datetime or RFC 3339 string)
        end: Event end (datetime or RFC 3339 string)

    Returns:
        Event category
    """
    title = title or ''
    folded = turkish_lower(title)

    if (is_red_color(color)
            or folded.startswith(CANCELLATION_PREFIXES)
            or _contains_any(folded, NOT_RELEVANT_PHRASES)):
        return Category.IGNORE

    if _contains_any(folded, BLOCKED_KEYWORDS):
        return Category.BLOCKED

    if SCALPEL in title or _contains_any(folded, SURGERY_KEYWORDS):
        return Category.SURGERY

    if _CLOCK_PREFIX.match(title):
        # "07:15 muayene" is an appointment note, not an operation slot
        if EXAMINATION_KEYWORD in folded:
            return Category.APPOINTMENT
        return Category.SURGERY

    duration = _duration_minutes(start, end)
    if (duration is not None and duration >= SURGERY_MIN_DURATION_MINUTES
            and CONTROL_KEYWORD not in folded and EXAMINATION_KEYWORD not in folded):
        return Category.SURGERY

    if (_CONTROL_MARKER.match(title)
            or _MONTH_MARKER.match(title.lower())
            or CONTROL_KEYWORD in folded):
        return Category.CHECKUP

    if (_LETTER_MARKER.match(title)
            or _OPERATION_MARKER.match(title)
            or _contains_any(folded, APPOINTMENT_KEYWORDS)):
        return Category.APPOINTMENT

    return Category.APPOINTMENT


def is_surgery_seed(title: str, color: Optional[str] = None) -> bool:
    """
    Decide whether an event marks the surgery that starts a patient record.

    Strong signals are the surgery color, the scalpel glyph or a named
    procedure. Control and cosmetic-injection titles are excluded unless
    they carry the scalpel glyph.
    """
    title = title or ''
    has_scalpel = SCALPEL in title
    is_candidate = is_surgery_color(color) or has_scalpel or bool(_PROCEDURE_PATTERN.search(title))

    if not is_candidate:
        return False
    if has_scalpel:
        return True
    return not _SEED_EXCLUDE_PATTERN.search(title)


def parse_control_title(title: str) -> Optional[ControlTitle]:
    """Split "k1 Ahmet Yılmaz" / "1.5m Fatma Demir" into marker and name."""
    match = _CONTROL_TITLE_PATTERN.match((title or '').strip())
    if not match:
        return None
    return ControlTitle(prefix=match.group(1), name=match.group(2).strip())


def is_description_exempt(title: str) -> bool:
    """Surgeries and first examinations never get an automated note."""
    return _contains_any(turkish_lower(title or ''), DESCRIPTION_EXEMPT_KEYWORDS)


def categorize_events(events: Iterable[RawEvent]) -> List[Dict[str, Any]]:
    """
    Classify a batch of events into the shape the calendar view renders.

    Ignored events (cancellations, not-relevant notes) are dropped. Each
    remaining entry carries its category and the resolved hex color.

    Args:
        events: Validated calendar events

    Returns:
        Processed event dicts, in input order
    """
    processed = []
    for event in events:
        category = classify(event.title, event.color_id, event.start, event.end)
        if category == Category.IGNORE:
            continue

        entry = event.to_dict()
        entry['colorHex'] = resolve_color(event.color_id)
        entry['category'] = category.value
        processed.append(entry)

    return processed
