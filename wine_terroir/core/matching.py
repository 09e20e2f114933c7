"""
Approximate String Matching
===========================

Levenshtein edit distance and candidate ranking used by every resolver.
Comparison is case-insensitive and ignores combining accents, so
"Château" and "chateau" are considered equal.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def fold(value: str | None) -> str:
    """
    Normalize a string for comparison.

    Trims, strips combining marks (after NFD decomposition), recomposes
    and lower-cases.

    Args:
        value: Raw string, may be None

    Returns:
        Folded string ("" for blank input)
    """
    if value is None or not value.strip():
        return ""

    decomposed = unicodedata.normalize("NFD", value.strip())
    stripped = "".join(
        c for c in decomposed if unicodedata.category(c) not in ("Mn", "Mc")
    )
    return unicodedata.normalize("NFC", stripped).lower()


def _levenshtein(s1: str, s2: str) -> int:
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def edit_distance(a: str | None, b: str | None) -> int:
    """
    Calculate the Levenshtein distance between two strings.

    Both inputs are folded first, so the distance is case-insensitive
    and symmetric, and zero exactly when the folded strings are equal.

    Args:
        a: First string
        b: Second string

    Returns:
        Edit distance
    """
    return _levenshtein(fold(a), fold(b))


def normalized_distance(a: str | None, b: str | None) -> float:
    """
    Edit distance divided by the longer folded length.

    Returns 0.0 when both strings are blank, approaching 1.0 for
    completely dissimilar strings.
    """
    folded_a = fold(a)
    folded_b = fold(b)
    max_len = max(len(folded_a), len(folded_b))
    if max_len == 0:
        return 0.0
    return _levenshtein(folded_a, folded_b) / max_len


def rank_candidates(
    candidates: Iterable[T],
    query: str | None,
    name_selector: Callable[[T], str | None],
    max_results: int = 5,
    max_normalized_distance: float = 0.45,
) -> list[T]:
    """
    Rank candidates by closeness to a query.

    A candidate is kept when its folded name contains the folded query or
    its normalized distance is within ``max_normalized_distance``. Results
    are ordered by containment first, then edit distance, then name length,
    then name (case-insensitive), and truncated to ``max_results``.

    An empty query skips filtering and returns the first ``max_results``
    candidates alphabetically.

    Args:
        candidates: Items to rank
        query: Search string
        name_selector: Extracts the comparable name from an item
        max_results: Maximum number of items returned
        max_normalized_distance: Inclusion threshold for non-containing names

    Returns:
        Ranked list of at most ``max_results`` items

    Raises:
        ValueError: If ``max_normalized_distance`` is negative or NaN
    """
    if max_normalized_distance != max_normalized_distance or max_normalized_distance < 0:
        raise ValueError("max_normalized_distance must be a non-negative number")
    if max_results <= 0:
        return []

    folded_query = fold(query)

    if not folded_query:
        ordered = sorted(candidates, key=lambda item: (name_selector(item) or "").lower())
        return ordered[:max_results]

    scored: list[tuple[bool, int, int, str, T]] = []
    for item in candidates:
        name = name_selector(item) or ""
        folded_name = fold(name)
        contains = folded_query in folded_name
        distance = _levenshtein(folded_query, folded_name)
        max_len = max(len(folded_query), len(folded_name))
        score = distance / max_len if max_len else 0.0

        if contains or score <= max_normalized_distance:
            scored.append((contains, distance, len(name.strip()), name.lower(), item))

    scored.sort(key=lambda entry: (not entry[0], entry[1], entry[2], entry[3]))
    return [entry[4] for entry in scored[:max_results]]
