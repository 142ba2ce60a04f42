"""
Fuzzy patient name matching.

Calendar titles are typed by hand, so the same patient shows up as
"Ahmet Yılmaz", "ahmet yilmaz" or "Ahmet Yılmz". Names are compared after
case and diacritic folding using the Levenshtein edit distance with unit
costs. There is no index: every lookup scans the candidate list, which is
fine for a practice-sized registry of a few thousand patients.
"""

import logging
from operator import attrgetter
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .data_models import MatchOutcome
from ..utils.normalizers import fold_text

# Maximum edits for a name to still count as the same patient
DEFAULT_MAX_DISTANCE = 3

NameKey = Callable[[Any], str]

logger = logging.getLogger(__name__)


def edit_distance(a: str, b: str) -> int:
    """
    Classic Levenshtein distance (insert, delete and substitute all cost 1).

    Args:
        a: First string
        b: Second string

    Returns:
        Minimum number of single-character edits turning a into b
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Keep the shorter string in the inner loop
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def _clean(name: str) -> str:
    return fold_text(name or '').strip()


def _rank_candidates(query: str,
                     candidates: Sequence[Any],
                     key: NameKey) -> List[Tuple[int, str, int, Any]]:
    """Score every candidate as (distance, folded name, input index, candidate)."""
    ranked = []
    for index, candidate in enumerate(candidates):
        folded = _clean(key(candidate))
        ranked.append((edit_distance(query, folded), folded, index, candidate))
    # Ties on distance resolve alphabetically, then by input order
    ranked.sort(key=lambda item: (item[0], item[1], item[2]))
    return ranked


def find_best_match(name: str,
                    candidates: Sequence[Any],
                    key: NameKey = attrgetter('name'),
                    max_distance: int = DEFAULT_MAX_DISTANCE) -> Optional[Any]:
    """
    Resolve a name to a single candidate.

    An exact (folded) match short-circuits and returns the first exact
    candidate in input order. Otherwise the closest candidate within
    ``max_distance`` wins; equal distances are broken alphabetically by
    folded name, then by input order.

    Args:
        name: Free-text name to resolve
        candidates: Patients (or any objects) to search
        key: Function returning a candidate's name
        max_distance: Largest accepted edit distance

    Returns:
        Matching candidate, or None
    """
    query = _clean(name)
    if not query or not candidates:
        return None

    for candidate in candidates:
        if _clean(key(candidate)) == query:
            return candidate

    ranked = _rank_candidates(query, candidates, key)
    distance, folded, _, candidate = ranked[0]
    if distance > max_distance:
        return None

    logger.debug(f"FUZZY_BEST_MATCH: '{name}' -> '{folded}' (distance: {distance})")
    return candidate


def find_all_matches(name: str,
                     candidates: Sequence[Any],
                     key: NameKey = attrgetter('name'),
                     max_distance: int = DEFAULT_MAX_DISTANCE) -> MatchOutcome:
    """
    Resolve a name to every plausible candidate.

    Exact matches win outright: when any exist, only they are returned and
    fuzzy candidates are suppressed. Otherwise every candidate within
    ``max_distance`` is returned, closest first.

    Args:
        name: Free-text name to resolve
        candidates: Patients (or any objects) to search
        key: Function returning a candidate's name
        max_distance: Largest accepted edit distance

    Returns:
        MatchOutcome with zero, one or many candidates
    """
    query = _clean(name)
    if not query or not candidates:
        return MatchOutcome(query=name or '')

    exact = [candidate for candidate in candidates if _clean(key(candidate)) == query]
    if exact:
        return MatchOutcome(query=name, candidates=exact, distance=0, is_exact=True)

    within = [item for item in _rank_candidates(query, candidates, key) if item[0] <= max_distance]
    if not within:
        return MatchOutcome(query=name)

    return MatchOutcome(
        query=name,
        candidates=[item[3] for item in within],
        distance=within[0][0],
        is_exact=False,
    )
