"""
Description Synthesizer

Renders the status note written into control-visit events and merges it
into the event description between fixed marker lines, so repeated runs
replace the previous note instead of stacking copies and never touch what
the staff typed around it.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from .data_models import MatchKind, MatchOutcome, PatientRecord, RawEvent, UpdateStatistics
from .event_classifier import is_description_exempt, parse_control_title
from .exceptions import UpstreamFetchError
from .fuzzy_matcher import edit_distance, find_all_matches
from ..reporting.audit_logger import RegistryAuditLogger
from ..utils.date_labels import control_label, elapsed_text, format_turkish_date
from ..utils.normalizers import fold_text

AUTOMATION_START_MARKER = "--- otomatik not başlangıcı ---"
AUTOMATION_END_MARKER = "--- otomatik not sonu ---"
AUTOMATION_SIGNATURE = "Bu bilgiler otomasyon tarafından oluşturulmuştur"

AMBIGUITY_DISCLAIMER = (
    "Bu isimle birden fazla hasta eşleşti, otomatik seçim yapılmadı. "
    "Lütfen doğru hastayı kontrol ediniz."
)
NO_PRIOR_CONTROL = "Yok"

# Looser than patient matching: prior controls are compared title to title
PRIOR_CONTROL_MAX_DISTANCE = 2


@dataclass
class DescriptionContext:
    """What the synthesizer needs besides the match: the visit and earlier controls."""
    visit_date: date
    prior_controls: List[RawEvent] = field(default_factory=list)  # most recent first


@dataclass
class DescriptionUpdate:
    """Audit record of one event handled by the update service."""
    event_id: str
    title: str
    match_kind: MatchKind
    patient_names: List[str] = field(default_factory=list)
    changed: bool = False


def find_prior_controls(name_fragment: str,
                        events: Sequence[RawEvent],
                        visit_date: date,
                        exclude_id: Optional[str] = None,
                        max_distance: int = PRIOR_CONTROL_MAX_DISTANCE) -> List[RawEvent]:
    """
    Find earlier control visits for the same name fragment.

    Args:
        name_fragment: Name part of the current control title
        events: Calendar snapshot to search
        visit_date: Date of the current visit; only strictly earlier events count
        exclude_id: Event id of the current visit
        max_distance: Largest edit distance between name fragments

    Returns:
        Matching control events, most recent first
    """
    target = fold_text(name_fragment)
    found = []

    for event in events:
        if exclude_id and event.id == exclude_id:
            continue
        if event.start_date >= visit_date:
            continue

        control = parse_control_title(event.title)
        if control and edit_distance(fold_text(control.name), target) <= max_distance:
            found.append(event)

    found.sort(key=lambda event: (event.start_date, event.start.time()), reverse=True)
    return found


def _render_single(patient: PatientRecord, context: DescriptionContext) -> str:
    surgery = patient.surgery_date
    elapsed = f"{elapsed_text(surgery, context.visit_date)} ({control_label(surgery, context.visit_date)})"

    if context.prior_controls:
        previous = context.prior_controls[0].start_date
        prior = f"{format_turkish_date(previous)} ({control_label(surgery, previous)})"
    else:
        prior = NO_PRIOR_CONTROL

    return "\n".join([
        f"👉🏻 Hastanın ameliyat tarihi: {format_turkish_date(surgery)}",
        f"👉🏻 Kontrol süresi: {elapsed}",
        f"👉🏻 Bir önceki kontrol zamanı: {prior}",
    ])


def _render_ambiguous(candidates: Sequence[PatientRecord]) -> str:
    lines = ["⚠️ Birden fazla hasta kaydı bulundu:"]
    for i, patient in enumerate(candidates, 1):
        lines.append(f"{i}. {format_turkish_date(patient.surgery_date)} - {patient.name}")
    lines.append(AMBIGUITY_DISCLAIMER)
    return "\n".join(lines)


def wrap_block(body: str) -> str:
    """Wrap a note between the automation markers."""
    return "\n".join([AUTOMATION_START_MARKER, body, "", AUTOMATION_SIGNATURE, AUTOMATION_END_MARKER])


def synthesize_description(outcome: MatchOutcome, context: DescriptionContext) -> Optional[str]:
    """
    Render the automation note for a control visit.

    Args:
        outcome: Match of the visit's name fragment against known patients
        context: Visit date and earlier controls for the same name

    Returns:
        Marker-wrapped note, or None when nothing matched
    """
    kind = outcome.match_kind
    if kind == MatchKind.NO_MATCH:
        return None
    if kind == MatchKind.SINGLE:
        return wrap_block(_render_single(outcome.best, context))
    return wrap_block(_render_ambiguous(outcome.candidates))


def split_automation_block(text: str) -> Tuple[str, Optional[str], str]:
    """
    Split text into (before, block, after).

    A start marker without a matching end marker is not a block; the text
    is returned whole as ``before``.
    """
    text = text or ''
    start = text.find(AUTOMATION_START_MARKER)
    if start == -1:
        return text, None, ''

    end = text.find(AUTOMATION_END_MARKER, start + len(AUTOMATION_START_MARKER))
    if end == -1:
        return text, None, ''

    end += len(AUTOMATION_END_MARKER)
    return text[:start], text[start:end], text[end:]


def strip_automation_block(text: str) -> str:
    """
    Remove every complete automation block.

    Only the blank lines at each seam are collapsed; the surrounding text
    is otherwise left exactly as written.
    """
    text = text or ''
    while True:
        before, block, after = split_automation_block(text)
        if block is None:
            return text
        before, after = before.rstrip('\n'), after.lstrip('\n')
        text = f"{before}\n\n{after}" if before and after else before or after


def merge_description(existing: Optional[str], block: str) -> str:
    """
    Replace any previous automation block with the new one.

    Text outside the markers is preserved; the new block always goes last.
    """
    base = strip_automation_block(existing or '').rstrip('\n')
    if not base.strip():
        return block
    return f"{base}\n\n{block}"


class DescriptionUpdateService:
    """Writes status notes into today's control-visit events."""

    def __init__(self, calendar_source, patient_source,
                 timezone: str = "Europe/Istanbul", dry_run: bool = False):
        """
        Initialize the description update service.

        Args:
            calendar_source: EventSource providing the snapshot (and write-back
                unless dry_run)
            patient_source: PatientSource providing the patient list
            timezone: Timezone that defines "today"
            dry_run: Compute notes without writing them back
        """
        if not dry_run and not calendar_source.supports_updates:
            raise ValueError(
                f"{type(calendar_source).__name__} cannot write descriptions; use dry_run")

        self.calendar_source = calendar_source
        self.patient_source = patient_source
        self.timezone = timezone
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)
        self.audit_logger = RegistryAuditLogger()
        self.decisions: List[DescriptionUpdate] = []

    def run(self, target_date: Optional[date] = None) -> UpdateStatistics:
        """
        Update descriptions for control visits on the target date.

        Args:
            target_date: Day to process (default: today in the service timezone)

        Returns:
            Update statistics

        Raises:
            UpstreamFetchError: If the patient list or calendar cannot be fetched
        """
        stats = UpdateStatistics()
        self.decisions = []

        # Patients first: without them no visit can be identified
        patients = self.patient_source.fetch_patients()
        if not patients:
            raise UpstreamFetchError("Patient source returned no patients",
                                     source=type(self.patient_source).__name__)
        self.logger.info(f"Loaded {len(patients)} patient records")

        events = self.calendar_source.fetch_events()
        target = target_date or datetime.now(ZoneInfo(self.timezone)).date()
        target_events = [event for event in events if event.start_date == target]
        self.logger.info(f"Found {len(target_events)} events for {target.isoformat()}")

        for event in target_events:
            stats.total_processed += 1
            decision = self._process_event(event, events, patients, target, stats)
            if decision is not None:
                self.decisions.append(decision)
                self.audit_logger.log_description_decision(decision)

        self.audit_logger.log_update_summary(stats)
        return stats

    def get_decisions(self) -> List[DescriptionUpdate]:
        """Get the per-event decisions of the last run."""
        return self.decisions.copy()

    def _process_event(self, event: RawEvent, events: Sequence[RawEvent],
                       patients: Sequence[PatientRecord], target: date,
                       stats: UpdateStatistics) -> Optional[DescriptionUpdate]:
        """Match, render and write back one event."""
        if is_description_exempt(event.title):
            stats.skipped += 1
            return None

        control = parse_control_title(event.title)
        if control is None:
            stats.skipped += 1
            return None

        outcome = find_all_matches(control.name, patients)
        kind = outcome.match_kind
        decision = DescriptionUpdate(
            event_id=event.id,
            title=event.title,
            match_kind=kind,
            patient_names=[patient.name for patient in outcome.candidates],
        )

        if kind == MatchKind.NO_MATCH:
            stats.no_matches += 1
            return decision

        if kind == MatchKind.SINGLE:
            stats.single_matches += 1
            prior = find_prior_controls(control.name, events, target, exclude_id=event.id)
        else:
            stats.ambiguous += 1
            prior = []

        block = synthesize_description(outcome, DescriptionContext(visit_date=target, prior_controls=prior))
        current = event.description or ''
        merged = merge_description(current, block)

        if merged == current:
            stats.unchanged += 1
            return decision

        if not self.dry_run:
            self.calendar_source.update_event_description(event.id, merged)
        stats.updated += 1
        decision.changed = True
        return decision
