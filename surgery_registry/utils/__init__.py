"""Utility functions for the surgery registry."""

# Import key functions for easier access
from .normalizers import fold_text, normalize_name, token_count, turkish_lower, turkish_upper
from .date_labels import (
    INVALID_LABEL,
    control_label,
    days_between,
    elapsed_text,
    format_turkish_date,
    months_between,
    parse_date,
    parse_datetime
)

__all__ = [
    'fold_text',
    'normalize_name',
    'token_count',
    'turkish_lower',
    'turkish_upper',
    'INVALID_LABEL',
    'control_label',
    'days_between',
    'elapsed_text',
    'format_turkish_date',
    'months_between',
    'parse_date',
    'parse_datetime'
]
