"""
Audit logging and reporting for registry builds and description updates.

Produces structured log lines for every automated decision so staff can
trace why a note was (or was not) written into an event.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..core.data_models import MatchKind, PatientRecord, RegistryStatistics, UpdateStatistics


class RegistryAuditLogger:
    """
    Audit logging for automated calendar decisions.

    Ambiguous and unmatched visits are logged at WARNING since they need a
    human to look at them; everything else is INFO.
    """

    def __init__(self, logger_name: str = "surgery_registry.audit"):
        """
        Initialize the audit logger.

        Args:
            logger_name: Name for the logger instance
        """
        self.logger = logging.getLogger(logger_name)
        self.session_start_time = datetime.now()

    def log_description_decision(self, decision) -> None:
        """
        Log one description update decision.

        Args:
            decision: DescriptionUpdate produced by the update service
        """
        if decision.match_kind == MatchKind.NO_MATCH:
            self.logger.warning(f"NO_MATCH - Event {decision.event_id} - '{decision.title}'")
            return

        if decision.match_kind == MatchKind.AMBIGUOUS:
            self.logger.warning(
                f"AMBIGUOUS_MATCH - Event {decision.event_id} - '{decision.title}' - "
                f"Candidates: {', '.join(decision.patient_names)}")
            return

        action = "DESCRIPTION_UPDATED" if decision.changed else "DESCRIPTION_UNCHANGED"
        self.logger.info(
            f"{action} - Event {decision.event_id} - '{decision.title}' - "
            f"Patient: {decision.patient_names[0]}")

    def log_update_summary(self, stats: UpdateStatistics) -> None:
        """Log summary statistics for a description update session."""
        session_duration = datetime.now() - self.session_start_time

        self.logger.info(f"DESCRIPTION_SESSION_COMPLETE - Duration: {session_duration}")
        self.logger.info(f"TOTAL_PROCESSED: {stats.total_processed}")
        self.logger.info(f"SKIPPED: {stats.skipped}")
        self.logger.info(f"SINGLE_MATCHES: {stats.single_matches}")
        self.logger.info(f"AMBIGUOUS: {stats.ambiguous}")
        self.logger.info(f"NO_MATCHES: {stats.no_matches}")
        self.logger.info(f"UPDATED: {stats.updated} / UNCHANGED: {stats.unchanged}")

    def log_registry_summary(self, patients: List[PatientRecord], stats: RegistryStatistics) -> None:
        """Log summary statistics for a registry build."""
        self.logger.info(f"REGISTRY_SESSION_COMPLETE - {len(patients)} patients")
        self.logger.info(f"EVENTS_PROCESSED: {stats.events_processed}")
        self.logger.info(f"MALFORMED_EVENTS: {stats.malformed_events}")
        self.logger.info(f"SURGERY_SEEDS: {stats.surgery_seeds} / SEED_PATIENTS: {stats.seed_patients}")
        self.logger.info(f"CONTROLS_LINKED: {stats.controls_linked}")

        for duplicate in stats.duplicate_seeds:
            self.logger.warning(
                f"NEEDS_CLARIFICATION - {duplicate['name']}: surgery on "
                f"{duplicate['kept_date']} kept, {duplicate['ignored_date']} ignored")


def generate_registry_report(patients: List[PatientRecord],
                             stats: RegistryStatistics,
                             hospital: Optional[str] = None) -> str:
    """
    Generate a plain-text registry report.

    Args:
        patients: Registry as returned by the builder
        stats: Statistics of the build
        hospital: Only list patients of this hospital (default: all)

    Returns:
        Formatted report
    """
    report_lines = [
        "=" * 70,
        "SURGERY REGISTRY REPORT",
        "=" * 70,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
        "OVERALL STATISTICS:",
        f"  Events processed: {stats.events_processed:,}",
        f"  Malformed events skipped: {stats.malformed_events:,}",
        f"  Patients: {len(patients):,} "
        f"({stats.surgery_seeds:,} from calendar, {stats.seed_patients:,} from patient source)",
        f"  Controls linked: {stats.controls_linked:,} "
        f"({stats.get_controls_per_patient(len(patients)):.1f} per patient)",
        f"  Incomplete names discarded: {stats.short_names_discarded:,}",
        "",
    ]

    if stats.duplicate_seeds:
        report_lines.append(f"SURGERIES NEEDING CLARIFICATION ({len(stats.duplicate_seeds)}):")
        report_lines.append("-" * 50)
        for duplicate in stats.duplicate_seeds:
            report_lines.append(
                f"  {duplicate['name']}: kept {duplicate['kept_date']}, "
                f"ignored {duplicate['ignored_date']} ({duplicate['source']})")
        report_lines.append("")

    listed = [p for p in patients if hospital is None or p.hospital == hospital]
    report_lines.append(f"PATIENTS ({len(listed)}):")
    report_lines.append("-" * 50)
    for patient in listed:
        controls = ", ".join(f"{c.label} {c.status.value}" for c in patient.controls) or "-"
        report_lines.append(
            f"  {patient.surgery_date.isoformat()} | {patient.name:<25} | "
            f"{patient.hospital or '':<12} | {controls}")

    report_lines.extend(["", "=" * 70])
    return "\n".join(report_lines)
