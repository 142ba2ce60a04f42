"""Calendar and patient data sources."""

from .calendar_source import (
    EventSource,
    GoogleCalendarSource,
    LocalSnapshotSource,
    parse_events,
    save_snapshot
)
from .patient_source import CsvPatientSource, PatientSource, RemotePatientSource
from .status_probe import ServiceStatus, probe_status

__all__ = [
    'EventSource',
    'GoogleCalendarSource',
    'LocalSnapshotSource',
    'parse_events',
    'save_snapshot',
    'PatientSource',
    'RemotePatientSource',
    'CsvPatientSource',
    'ServiceStatus',
    'probe_status'
]
