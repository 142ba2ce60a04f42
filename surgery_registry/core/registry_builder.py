"""
Patient Registry Builder - turns a calendar snapshot into patient records.

The registry is rebuilt from scratch on every run:

1. Surgery extraction: events that look like operations seed one patient
   record per canonical name (first occurrence wins).
2. Control correlation: any later event whose title contains a patient's
   name becomes a control visit for that patient.
3. Ordering: controls oldest first, patients most recent surgery first.
"""

import logging
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .data_models import (
    ControlRecord,
    ControlStatus,
    PatientRecord,
    RawEvent,
    RegistryStatistics
)
from .event_classifier import is_red_color, is_surgery_seed
from ..utils.date_labels import control_label
from ..utils.normalizers import fold_text, normalize_name, token_count

DEFAULT_HOSPITAL = "Asya"

SEED_MODE_SUPPLEMENT = "supplement"
SEED_MODE_SUBSTITUTE = "substitute"
SEED_MODES = (SEED_MODE_SUPPLEMENT, SEED_MODE_SUBSTITUTE)

# Names need a given name and a surname to be trusted as registry keys
MIN_NAME_TOKENS = 2

# (hospital, location pattern, title pattern), matched against folded text
HOSPITAL_RULES = [
    ("BHT", re.compile(r'\bbht\b'), re.compile(r'\bbht\b')),
    ("Bağcılar", re.compile(r'bagcilar|medipol'), re.compile(r'bagcilar')),
    ("ICH", re.compile(r'\bich\b'), re.compile(r'\bich\b')),
    ("Medistanbul", re.compile(r'medistanbul'), re.compile(r'medistanbul')),
]

_SEED_TIME_PREFIX = re.compile(r'^\d{1,2}[:.]\d{2}\s*(?:🔪)?')
_OPERATION_PREFIX = re.compile(r'^op\s+', re.IGNORECASE)
_NAME_SEPARATORS = re.compile(r'[/|]')


def extract_seed_name(title: str) -> str:
    """
    Pull the canonical patient name out of a surgery title.

    "08.00 🔪 Ahmet Yılmaz / rino | BHT" -> "Ahmet Yılmaz"
    """
    cleaned = _SEED_TIME_PREFIX.sub('', (title or '').strip())
    cleaned = _OPERATION_PREFIX.sub('', cleaned.strip())
    name_part = _NAME_SEPARATORS.split(cleaned, maxsplit=1)[0]
    return normalize_name(name_part.strip())


def detect_hospital(location: Optional[str], title: str, default: str = DEFAULT_HOSPITAL) -> str:
    """Infer the operating hospital from the event location or title."""
    folded_location = fold_text(location or '')
    folded_title = fold_text(title or '')

    for hospital, location_pattern, title_pattern in HOSPITAL_RULES:
        if location_pattern.search(folded_location) or title_pattern.search(folded_title):
            return hospital
    return default


class RegistryBuilder:
    """
    Builds the ordered patient registry from calendar events.

    The builder holds no state between builds apart from the statistics of
    the most recent one, so the same snapshot always yields the same
    registry.
    """

    def __init__(self,
                 default_hospital: str = DEFAULT_HOSPITAL,
                 now: Optional[Union[datetime, date]] = None):
        """
        Initialize the registry builder.

        Args:
            default_hospital: Hospital assigned when no keyword matches
            now: Reference time for planned vs attended controls (default: current time)
        """
        self.default_hospital = default_hospital
        self.now = now
        self.logger = logging.getLogger(__name__)
        self.stats = RegistryStatistics()

    def build(self,
              events: Sequence[RawEvent],
              seed_patients: Optional[Iterable[PatientRecord]] = None,
              seed_mode: str = SEED_MODE_SUPPLEMENT) -> List[PatientRecord]:
        """
        Build the registry from a calendar snapshot.

        Args:
            events: Validated calendar events
            seed_patients: Optional patient-source records
            seed_mode: "supplement" registers seeds before calendar-derived
                surgeries; "substitute" uses the seeds only

        Returns:
            Patients sorted by surgery date (most recent first), each with
            controls sorted oldest first
        """
        if seed_mode not in SEED_MODES:
            raise ValueError(f"seed_mode must be one of {SEED_MODES}, got '{seed_mode}'")

        self.stats = RegistryStatistics(events_processed=len(events))
        patients: Dict[str, PatientRecord] = {}

        if seed_patients:
            self._register_seed_patients(seed_patients, patients)

        if seed_mode == SEED_MODE_SUPPLEMENT:
            self._extract_surgeries(events, patients)

        self._link_controls(events, patients)

        patient_list = list(patients.values())
        for patient in patient_list:
            patient.controls.sort(key=lambda control: control.date)
        # Stable sort keeps first-seen order for equal surgery dates
        patient_list.sort(key=lambda patient: patient.surgery_date, reverse=True)

        self.logger.info(
            f"REGISTRY_BUILT - {len(patient_list)} patients, "
            f"{self.stats.controls_linked} controls from {len(events)} events")
        return patient_list

    def get_statistics(self) -> RegistryStatistics:
        """Get statistics of the most recent build."""
        return self.stats

    def _register_seed_patients(self,
                                seed_patients: Iterable[PatientRecord],
                                patients: Dict[str, PatientRecord]):
        """Register patient-source records; their stored controls are recomputed."""
        for seed in seed_patients:
            name = normalize_name(seed.name)
            if token_count(name) < MIN_NAME_TOKENS:
                self.stats.short_names_discarded += 1
                self.logger.warning(f"Skipping seed patient with incomplete name: '{seed.name}'")
                continue

            if name in patients:
                self._note_duplicate(patients[name], seed.surgery_date, source="patient source")
                continue

            patients[name] = PatientRecord(
                name=name,
                surgery_date=seed.surgery_date,
                hospital=seed.hospital or self.default_hospital,
            )
            self.stats.seed_patients += 1

    def _extract_surgeries(self, events: Sequence[RawEvent], patients: Dict[str, PatientRecord]):
        """Pass 1: create one patient per surgery-seed event name."""
        for event in events:
            if not is_surgery_seed(event.title, event.color_id):
                continue

            name = extract_seed_name(event.title)
            if token_count(name) < MIN_NAME_TOKENS:
                self.stats.short_names_discarded += 1
                self.logger.debug(f"Skipping single-token surgery title: '{event.title}'")
                continue

            surgery_date = event.start_date
            if name in patients:
                self._note_duplicate(patients[name], surgery_date, source=f"event {event.id}")
                continue

            hospital = detect_hospital(event.location, event.title, self.default_hospital)
            patients[name] = PatientRecord(name=name, surgery_date=surgery_date, hospital=hospital)
            self.stats.surgery_seeds += 1
            self.logger.debug(f"SURGERY_SEED: {name} on {surgery_date.isoformat()} ({hospital})")

    def _note_duplicate(self, existing: PatientRecord, other_date: date, source: str):
        """Surface a repeated surgery for an already-registered name; never merge."""
        if other_date == existing.surgery_date:
            return

        self.stats.duplicate_seeds.append({
            'name': existing.name,
            'kept_date': existing.surgery_date.isoformat(),
            'ignored_date': other_date.isoformat(),
            'source': source,
        })
        self.logger.warning(
            f"DUPLICATE_SURGERY_SEED - {existing.name}: keeping "
            f"{existing.surgery_date.isoformat()}, ignoring {other_date.isoformat()} "
            f"from {source} (re-operation or duplicate entry?)")

    def _link_controls(self, events: Sequence[RawEvent], patients: Dict[str, PatientRecord]):
        """Pass 2: attach later events mentioning a patient as controls."""
        today = self._today()
        folded_names = [(fold_text(name), patient) for name, patient in patients.items()]

        for event in events:
            folded_title = fold_text(event.title)
            event_date = event.start_date

            for folded_name, patient in folded_names:
                if folded_name not in folded_title:
                    continue
                if event_date <= patient.surgery_date:
                    continue
                if patient.has_control_on(event_date):
                    self.stats.duplicate_controls_skipped += 1
                    continue

                if is_red_color(event.color_id):
                    status = ControlStatus.CANCELLED
                elif event_date > today:
                    status = ControlStatus.PLANNED
                else:
                    status = ControlStatus.ATTENDED

                patient.controls.append(ControlRecord(
                    date=event_date,
                    status=status,
                    title=event.title,
                    label=control_label(patient.surgery_date, event_date),
                ))
                self.stats.controls_linked += 1

    def _today(self) -> date:
        now = self.now or datetime.now()
        return now.date() if isinstance(now, datetime) else now


def build_registry(events: Sequence[RawEvent],
                   seed_patients: Optional[Iterable[PatientRecord]] = None,
                   *,
                   now: Optional[Union[datetime, date]] = None,
                   default_hospital: str = DEFAULT_HOSPITAL,
                   seed_mode: str = SEED_MODE_SUPPLEMENT) -> List[PatientRecord]:
    """Build the ordered patient registry from a calendar snapshot."""
    builder = RegistryBuilder(default_hospital=default_hospital, now=now)
    return builder.build(events, seed_patients, seed_mode=seed_mode)
