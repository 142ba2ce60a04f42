"""
Surgery Registry

Builds a patient registry from a clinic's appointment calendar: operations
seed patient records, later visits mentioning the patient become controls,
and control-visit events get an automated status note.
"""

from .core.data_models import Category, MatchKind, PatientRecord, RawEvent
from .core.event_classifier import classify
from .core.fuzzy_matcher import find_all_matches, find_best_match
from .core.registry_builder import build_registry
from .utils.date_labels import control_label
from .utils.normalizers import normalize_name

__version__ = "1.0.0"

__all__ = [
    'Category',
    'MatchKind',
    'PatientRecord',
    'RawEvent',
    'classify',
    'find_all_matches',
    'find_best_match',
    'build_registry',
    'control_label',
    'normalize_name'
]
