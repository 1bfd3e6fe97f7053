"""Fuzzy matching of new statement descriptions against recorded history."""

from dataclasses import replace
from typing import Optional, Sequence

from pocketledger.domain.entities import PastTransaction, Suggestion

SIMILARITY_THRESHOLD = 0.7
HISTORY_WINDOW = 100
AUTO_MATCH_CONFIDENCE = 0.95


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with unit insert/delete/substitute costs."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized, case-insensitive Levenshtein similarity in [0, 1]."""
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def match(
    candidate: str,
    history: Sequence[PastTransaction],
    threshold: float = SIMILARITY_THRESHOLD,
) -> Optional[PastTransaction]:
    """Find the first history item strictly above the similarity threshold.

    First-match rather than best-match: history is newest-first and capped at
    HISTORY_WINDOW items, so the first hit is also the most recent one.

    Args:
        candidate: New transaction description
        history: Recorded transactions, newest first
        threshold: Exclusive similarity threshold

    Returns:
        Matching history item, or None
    """
    for past in history[:HISTORY_WINDOW]:
        if similarity(candidate, past.description) > threshold:
            return past
    return None


def apply_match(suggestion: Suggestion, past: Optional[PastTransaction]) -> Suggestion:
    """Overlay a history match on a suggestion, flagging provenance.

    Without a match the suggestion is returned untouched apart from an
    explicit ``auto_matched=False``.
    """
    if past is None:
        return replace(suggestion, auto_matched=False)
    return replace(
        suggestion,
        narration=past.narration or suggestion.narration,
        ledger_name=past.ledger_name or suggestion.ledger_name,
        ledger_id=past.ledger_id if past.ledger_id is not None else suggestion.ledger_id,
        confidence=max(suggestion.confidence, AUTO_MATCH_CONFIDENCE),
        auto_matched=True,
        source="history",
    )
