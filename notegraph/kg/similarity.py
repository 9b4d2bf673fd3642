"""
Note similarity for duplicate detection.

Similarity is the Jaccard index over the content tokens (whitespace-split,
lowercase, longer than 3 characters) of ``summary + " " + content``.

Two surfacing thresholds exist on purpose: the dashboard uses 0.4 and shows
the top 3 pairs as a glance-level nudge, the review audit uses 0.6 and lists
every pair. The dashboard comparison is inclusive (score >= 0.4), the
review comparison strict (score > 0.6).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from pydantic import BaseModel

from notegraph.kg.models import Note
from notegraph.kg.normalization import content_tokens

DASHBOARD_THRESHOLD = 0.4
REVIEW_THRESHOLD = 0.6
DASHBOARD_LIMIT = 3


class DuplicatePair(BaseModel):
    """Two notes whose token sets overlap enough to be surfaced."""

    note_a_id: str
    note_b_id: str
    score: float


def jaccard(set_a: set[str], set_b: set[str]) -> float:
    """
    Jaccard index |A ∩ B| / |A ∪ B|; two empty sets score 0.0.

    Examples:
        >>> jaccard({"a", "b"}, {"b", "c"})
        0.3333333333333333
    """
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def note_tokens(note: Note) -> set[str]:
    return content_tokens(f"{note.summary} {note.content}")


def note_similarity(note_a: Note, note_b: Note) -> float:
    """Jaccard similarity of two notes' summary and content."""
    return jaccard(note_tokens(note_a), note_tokens(note_b))


def find_duplicate_notes(
    notes: Sequence[Note],
    threshold: float,
    limit: int | None = None,
    inclusive: bool = True,
) -> list[DuplicatePair]:
    """
    Score every unordered note pair and keep those passing the threshold.

    Args:
        notes: Notes to compare
        threshold: Minimum Jaccard score
        limit: Optional cap on the number of pairs returned
        inclusive: Whether a score equal to the threshold passes

    Returns:
        Pairs sorted by score descending (stable for equal scores)
    """
    tokens = [note_tokens(n) for n in notes]
    pairs: list[DuplicatePair] = []

    for i, note_a in enumerate(notes):
        for j in range(i + 1, len(notes)):
            score = jaccard(tokens[i], tokens[j])
            if score > threshold or (inclusive and score == threshold):
                pairs.append(
                    DuplicatePair(note_a_id=note_a.id, note_b_id=notes[j].id, score=score)
                )

    pairs.sort(key=lambda p: p.score, reverse=True)
    return pairs if limit is None else pairs[:limit]


def dashboard_duplicates(
    notes: Sequence[Note],
    threshold: float = DASHBOARD_THRESHOLD,
    limit: int = DASHBOARD_LIMIT,
) -> list[DuplicatePair]:
    """Top duplicate pairs for the dashboard nudge."""
    return find_duplicate_notes(notes, threshold, limit)


def review_duplicates(
    notes: Sequence[Note], threshold: float = REVIEW_THRESHOLD
) -> list[DuplicatePair]:
    """Every duplicate pair strictly above the review threshold."""
    return find_duplicate_notes(notes, threshold, inclusive=False)


def related_notes_by_keywords(
    keywords: Iterable[str], notes: Sequence[Note], limit: int = 4
) -> list[Note]:
    """
    Notes sharing a keyword with a fresh analysis.

    A keyword longer than 3 characters matches when it equals one of the
    note's summary words or occurs in its content (case-insensitive).
    """
    usable = [k for k in keywords if len(k) > 3]
    if not usable:
        return []

    related: list[Note] = []
    for note in notes:
        summary_words = note.summary.split(" ")
        content_lower = note.content.lower()
        if any(k in summary_words or k.lower() in content_lower for k in usable):
            related.append(note)
            if len(related) >= limit:
                break
    return related
