"""Core registry framework."""

# Import main classes for easier access
from .data_models import (
    Category,
    ControlStatus,
    MatchKind,
    RawEvent,
    ControlRecord,
    PatientRecord,
    MatchOutcome,
    RegistryStatistics,
    UpdateStatistics
)
from .exceptions import MalformedEventError, RegistryError, UpstreamFetchError
from .event_classifier import categorize_events, classify
from .fuzzy_matcher import edit_distance, find_all_matches, find_best_match
from .registry_builder import RegistryBuilder, build_registry

__all__ = [
    'Category',
    'ControlStatus',
    'MatchKind',
    'RawEvent',
    'ControlRecord',
    'PatientRecord',
    'MatchOutcome',
    'RegistryStatistics',
    'UpdateStatistics',
    'MalformedEventError',
    'RegistryError',
    'UpstreamFetchError',
    'categorize_events',
    'classify',
    'edit_distance',
    'find_all_matches',
    'find_best_match',
    'RegistryBuilder',
    'build_registry'
]
