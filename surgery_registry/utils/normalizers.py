"""
String normalization utilities for calendar-derived patient names.

Event titles are typed in Turkish, so case folding follows Turkish rules
(``I`` lowers to ``ı``, ``İ`` lowers to ``i``). This module provides the
canonical display name used as the registry key, and the folded form used
wherever two names are compared.
"""

import re
import unicodedata

# Clinical technique words typed next to patient names; longest first so
# "rev rino" wins over "rino".
TECHNIQUE_KEYWORDS = [
    'septorinoplasti', 'rinoplasti', 'otoplasti', 'revizyon', 'rev rino',
    'upper blef', 'rino', 'kostalı', 'kostali', 'kostal', 'kosta',
    'ortak vaka', 'ortak', 'iy',
]

SCALPEL = '🔪'

_TECHNIQUE_PATTERN = re.compile(
    r'\b(?:' + '|'.join(re.escape(k) for k in TECHNIQUE_KEYWORDS) + r')\b',
    re.IGNORECASE,
)
_PARENTHETICAL_PATTERN = re.compile(r'\([^)]*\)')
_AGE_PATTERN = re.compile(r'yaş\s*\d+', re.IGNORECASE)
_CLOCK_TIME_PATTERN = re.compile(r'\d{1,2}[:.]\d{2}')
_NON_WORD_PATTERN = re.compile(r'[^\w\s]')
_WHITESPACE_PATTERN = re.compile(r'\s+')

# Turkish letters that NFKD does not decompose
_DOTLESS_FOLD = str.maketrans({'ı': 'i'})


def turkish_lower(s: str) -> str:
    """Lower-case with Turkish dotted/dotless I rules."""
    if not s:
        return ""
    return s.replace('I', 'ı').replace('İ', 'i').lower()


def turkish_upper(s: str) -> str:
    """Upper-case with Turkish dotted/dotless I rules."""
    if not s:
        return ""
    return s.replace('i', 'İ').replace('ı', 'I').upper()


def fold_text(s: str) -> str:
    """
    Fold case and diacritics for name comparison.

    "Ahmet YILMAZ", "ahmet yılmaz" and "Ahmet Yilmaz" all fold to
    "ahmet yilmaz". Whitespace is collapsed but kept.

    Args:
        s: Input string

    Returns:
        Folded string, or empty string for empty input
    """
    if not s:
        return ""

    lowered = turkish_lower(s).translate(_DOTLESS_FOLD)
    decomposed = unicodedata.normalize('NFKD', lowered)
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return _WHITESPACE_PATTERN.sub(' ', stripped).strip()


def _title_token(token: str) -> str:
    return turkish_upper(token[:1]) + token[1:]


def normalize_name(raw: str) -> str:
    """
    Produce the canonical display name from a free-text title fragment.

    Strips technique keywords, parenthetical notes, the scalpel glyph, age
    annotations and clock times, then title-cases each remaining token.

    Example:
        "AHMET yılmaz (rev) yaş 34 🔪" -> "Ahmet Yılmaz"

    Args:
        raw: Name fragment taken from an event title

    Returns:
        Canonical name, or empty string when nothing usable remains
    """
    if not raw:
        return ""

    name = turkish_lower(raw)
    name = _TECHNIQUE_PATTERN.sub(' ', name)
    name = _PARENTHETICAL_PATTERN.sub(' ', name)
    name = name.replace(SCALPEL, ' ')
    name = _AGE_PATTERN.sub(' ', name)
    name = _CLOCK_TIME_PATTERN.sub(' ', name)
    name = _NON_WORD_PATTERN.sub(' ', name)
    name = name.replace('_', ' ')

    tokens = name.split()
    return ' '.join(_title_token(token) for token in tokens)


def token_count(name: str) -> int:
    """Number of whitespace-separated tokens in a name."""
    if not name:
        return 0
    return len(name.split())
