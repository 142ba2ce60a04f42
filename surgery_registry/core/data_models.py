"""
Surgery Registry Data Models

This module defines the core data structures used throughout the registry:
validated calendar events, patient and control records, match outcomes and
per-session statistics.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from .exceptions import MalformedEventError
from ..utils.date_labels import parse_date, parse_datetime

# Title Google Calendar shows for events without a summary
DEFAULT_EVENT_TITLE = "Müsait Değil"


class Category(Enum):
    """Calendar event categories, in no particular priority order."""
    SURGERY = "surgery"
    CHECKUP = "checkup"
    APPOINTMENT = "appointment"
    BLOCKED = "blocked"
    IGNORE = "ignore"


class ControlStatus(Enum):
    """Status of a post-operative control visit."""
    ATTENDED = "attended"
    CANCELLED = "cancelled"
    PLANNED = "planned"


class MatchKind(Enum):
    """How many registry patients a free-text name resolved to."""
    NO_MATCH = "NO_MATCH"
    SINGLE = "SINGLE"
    AMBIGUOUS = "AMBIGUOUS"


def _extract_time(value: Any) -> Optional[str]:
    """Pull the raw timestamp out of a Google ``start``/``end`` object or a plain string."""
    if isinstance(value, dict):
        return value.get('dateTime') or value.get('date')
    if isinstance(value, str):
        return value
    return None


@dataclass(frozen=True)
class RawEvent:
    """A validated calendar event. Instances are never mutated by the registry."""
    id: str
    title: str
    start: datetime
    end: datetime
    color_id: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None

    @property
    def start_date(self) -> date:
        """Calendar date of the event start, in the event's own offset."""
        return self.start.date()

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> 'RawEvent':
        """
        Build a RawEvent from a Google Calendar item or a processed snapshot entry.

        Args:
            item: Dictionary with either the Google shape (``summary``,
                ``start.dateTime``/``start.date``, ``colorId``) or the snapshot
                shape (``title``, ``start``, ``end``, ``color``)

        Returns:
            Validated RawEvent

        Raises:
            MalformedEventError: If start or end is missing or cannot be parsed
        """
        event_id = str(item.get('id') or '')
        title = item.get('summary') or item.get('title') or DEFAULT_EVENT_TITLE

        start_raw = _extract_time(item.get('start'))
        end_raw = _extract_time(item.get('end'))
        if not start_raw or not end_raw:
            raise MalformedEventError(
                f"Event '{event_id or title}' is missing start or end", event_id)

        try:
            start = parse_datetime(start_raw)
            end = parse_datetime(end_raw)
        except ValueError as e:
            raise MalformedEventError(
                f"Event '{event_id or title}' has an unparseable time: {e}", event_id) from e

        return cls(
            id=event_id,
            title=title,
            start=start,
            end=end,
            color_id=item.get('colorId') or item.get('color'),
            location=item.get('location'),
            description=item.get('description'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the processed snapshot representation."""
        return {
            'id': self.id,
            'title': self.title,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'color': self.color_id,
            'location': self.location,
            'description': self.description,
        }


@dataclass
class ControlRecord:
    """A follow-up visit linked to exactly one patient."""
    date: date
    status: ControlStatus
    title: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'status': self.status.value,
            'title': self.title,
            'label': self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ControlRecord':
        return cls(
            date=parse_date(data['date']),
            status=ControlStatus(data.get('status', ControlStatus.ATTENDED.value)),
            title=data.get('title', ''),
            label=data.get('label', ''),
        )


@dataclass
class PatientRecord:
    """Registry entry keyed by canonical name."""
    name: str
    surgery_date: date
    hospital: Optional[str] = None
    controls: List[ControlRecord] = field(default_factory=list)

    def has_control_on(self, day: date) -> bool:
        return any(control.date == day for control in self.controls)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON representation served to the panel."""
        return {
            'name': self.name,
            'surgeryDate': self.surgery_date.isoformat(),
            'hospital': self.hospital,
            'controls': [control.to_dict() for control in self.controls],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatientRecord':
        """
        Build a patient from the panel JSON shape.

        Accepts ``surgeryDate``, ``surgery_date`` or ``date`` for the surgery
        date, since older patient exports used the shorter key.

        Raises:
            ValueError: If the name or surgery date is missing or invalid
        """
        name = (data.get('name') or '').strip()
        raw_date = data.get('surgeryDate') or data.get('surgery_date') or data.get('date')
        if not name or not raw_date:
            raise ValueError(f"Patient record requires name and surgery date: {data}")

        return cls(
            name=name,
            surgery_date=parse_date(raw_date),
            hospital=data.get('hospital') or None,
            controls=[ControlRecord.from_dict(c) for c in data.get('controls') or []],
        )


@dataclass
class MatchOutcome:
    """
    Result of resolving a free-text name against known patients.

    ``candidates`` are references into the caller's patient list; the outcome
    never owns them.
    """
    query: str
    candidates: List[Any] = field(default_factory=list)
    distance: Optional[int] = None
    is_exact: bool = False

    @property
    def match_kind(self) -> MatchKind:
        if not self.candidates:
            return MatchKind.NO_MATCH
        if len(self.candidates) == 1:
            return MatchKind.SINGLE
        return MatchKind.AMBIGUOUS

    @property
    def best(self) -> Optional[Any]:
        return self.candidates[0] if self.candidates else None


@dataclass
class RegistryStatistics:
    """Statistics for a registry build session."""
    events_processed: int = 0
    malformed_events: int = 0
    surgery_seeds: int = 0
    seed_patients: int = 0
    short_names_discarded: int = 0
    controls_linked: int = 0
    duplicate_controls_skipped: int = 0

    # Same canonical name seen again with a different surgery date
    duplicate_seeds: List[Dict[str, str]] = field(default_factory=list)

    def get_controls_per_patient(self, patient_count: int) -> float:
        """Average linked controls per patient."""
        if patient_count == 0:
            return 0.0
        return self.controls_linked / patient_count


@dataclass
class UpdateStatistics:
    """Statistics for a description update session."""
    total_processed: int = 0
    skipped: int = 0

    # Match outcome distribution
    single_matches: int = 0
    ambiguous: int = 0
    no_matches: int = 0

    # Write-back distribution
    updated: int = 0
    unchanged: int = 0

    def get_resolution_rate(self) -> float:
        """Share of control visits that resolved to exactly one patient."""
        controls = self.single_matches + self.ambiguous + self.no_matches
        if controls == 0:
            return 0.0
        return self.single_matches / controls
