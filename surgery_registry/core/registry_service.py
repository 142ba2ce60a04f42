"""
Registry Service

Service layer that loads events and seed patients from their sources,
builds the registry and writes it out.
"""

import json
import logging
from typing import List, Optional, Tuple

from .data_models import PatientRecord, RegistryStatistics
from .registry_builder import DEFAULT_HOSPITAL, SEED_MODE_SUPPLEMENT, RegistryBuilder
from ..reporting.audit_logger import RegistryAuditLogger
from ..sources.calendar_source import save_snapshot


class RegistryService:
    """Service for registry build operations."""

    def __init__(self, default_hospital: str = DEFAULT_HOSPITAL, now=None):
        """
        Initialize the registry service.

        Args:
            default_hospital: Hospital assigned when no keyword matches
            now: Reference time for planned vs attended controls
        """
        self.builder = RegistryBuilder(default_hospital=default_hospital, now=now)
        self.audit_logger = RegistryAuditLogger()
        self.logger = logging.getLogger(__name__)

    def build_from_sources(self,
                           event_source,
                           patient_source=None,
                           seed_mode: str = SEED_MODE_SUPPLEMENT,
                           snapshot_file: Optional[str] = None) -> Tuple[List[PatientRecord], RegistryStatistics]:
        """
        Fetch events (and optional seed patients) and build the registry.

        Args:
            event_source: EventSource to read the calendar from
            patient_source: Optional PatientSource providing seed patients
            seed_mode: How seed patients combine with calendar surgeries
            snapshot_file: Also save the fetched events here, for offline rebuilds

        Returns:
            Tuple of (patients, statistics)

        Raises:
            UpstreamFetchError: If a source cannot be read
        """
        events = event_source.fetch_events()
        if snapshot_file:
            save_snapshot(events, snapshot_file)

        seeds = None
        if patient_source is not None:
            seeds = patient_source.fetch_patients()
            self.logger.info(f"Using {len(seeds)} seed patients ({seed_mode})")

        patients = self.builder.build(events, seeds, seed_mode=seed_mode)

        stats = self.builder.get_statistics()
        stats.malformed_events = event_source.skipped_events
        stats.events_processed += event_source.skipped_events

        self.audit_logger.log_registry_summary(patients, stats)
        return patients, stats

    def write_registry(self, patients: List[PatientRecord], output_file: Optional[str] = None) -> str:
        """
        Serialize the registry as JSON.

        Args:
            patients: Registry to write
            output_file: Target path (default: return the text only)

        Returns:
            The JSON text
        """
        text = json.dumps({'patients': [p.to_dict() for p in patients]},
                          ensure_ascii=False, indent=2)
        if output_file:
            with open(output_file, 'w', encoding='utf-8') as f:
                f.write(text + "\n")
            self.logger.info(f"Registry written to: {output_file}")
        return text
