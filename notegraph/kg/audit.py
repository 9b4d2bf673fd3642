"""
Similarity & Audit Engine — read-only views over the knowledge base.

Everything here is derived and recomputed on demand; nothing is persisted.

Audits:
- Stale entities: active entities with no referencing note, or whose newest
  referencing note is older than ``stale_after_days``
- Context-less tasks: incomplete tasks without ``related_entity_id``
- Orphan projects: Project entities without ``parent_id``
- Incomplete entities: status ``incomplete``
- Duplicate notes: Jaccard similarity (see similarity.py)

Suggestions (CREATE_ENTITY, ARCHIVE_ENTITY, MERGE_NOTES) carry stable ids
derived from their subject, so a dismissed suggestion can be recognised when
the list is recomputed.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from notegraph.core.config import Settings, get_settings
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityStatus, EntityType, Note, Task, TaskPriority
from notegraph.kg.normalization import capitalized_words, name_key
from notegraph.kg.similarity import DuplicatePair, find_duplicate_notes

logger = logging.getLogger(__name__)

UNCLASSIFIED_CATEGORIES = frozenset({"", "General", "Personal"})


def _utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class SuggestionType(str, Enum):
    CREATE_ENTITY = "CREATE_ENTITY"
    ARCHIVE_ENTITY = "ARCHIVE_ENTITY"
    MERGE_NOTES = "MERGE_NOTES"


class Suggestion(BaseModel):
    """
    An actionable, ephemeral recommendation.

    Attributes:
        id: Stable id derived from the suggestion's subject
        type: What applying the suggestion does
        title: Short headline
        reason: Why it was suggested
        data: Type-specific payload (name, entity_id, keep_id/drop_id)
    """

    id: str
    type: SuggestionType
    title: str
    reason: str
    data: dict[str, Any] = Field(default_factory=dict)


class DashboardSummary(BaseModel):
    """Glance-level overview shown on the dashboard."""

    unclassified_notes: list[Note] = Field(default_factory=list)
    urgent_tasks: list[Task] = Field(default_factory=list)
    recent_entities: list[Entity] = Field(default_factory=list)
    duplicates: list[DuplicatePair] = Field(default_factory=list)
    incomplete_entities: list[Entity] = Field(default_factory=list)
    context_less_tasks: list[Task] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)


class ReviewReport(BaseModel):
    """Exhaustive audit shown on the review screen."""

    incomplete_entities: list[Entity] = Field(default_factory=list)
    context_less_tasks: list[Task] = Field(default_factory=list)
    orphan_projects: list[Entity] = Field(default_factory=list)
    duplicates: list[DuplicatePair] = Field(default_factory=list)

    @property
    def total_issues(self) -> int:
        return (
            len(self.incomplete_entities)
            + len(self.context_less_tasks)
            + len(self.orphan_projects)
            + len(self.duplicates)
        )


class AuditEngine:
    """
    Computes audits and suggestions for a KnowledgeBase.

    Example:
        audit = AuditEngine(kb)
        report = audit.review()
        print(report.total_issues)
    """

    def __init__(
        self,
        kb: KnowledgeBase,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.kb = kb
        self.settings = settings or get_settings()
        self._clock = clock

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # AUDITS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def stale_entities(self, now: datetime | None = None) -> list[Entity]:
        """
        Active entities that are candidates for archiving.

        An entity is stale when no note references it, or when the newest
        referencing note was created more than ``stale_after_days`` ago.
        """
        now = now or self._clock()
        cutoff = now - timedelta(days=self.settings.stale_after_days)

        latest: dict[str, datetime] = {}
        for note in self.kb.list_notes():
            for entity_id in note.related_entity_ids:
                seen = latest.get(entity_id)
                if seen is None or note.created_at > seen:
                    latest[entity_id] = note.created_at

        stale = []
        for entity in self.kb.list_entities():
            if entity.status != EntityStatus.ACTIVE:
                continue
            newest = latest.get(entity.id)
            if newest is None or newest < cutoff:
                stale.append(entity)
        return stale

    def context_less_tasks(self) -> list[Task]:
        return [t for t in self.kb.list_tasks() if not t.completed and not t.related_entity_id]

    def orphan_projects(self) -> list[Entity]:
        return [
            e for e in self.kb.list_entities()
            if e.type == EntityType.PROJECT and not e.parent_id
        ]

    def incomplete_entities(self) -> list[Entity]:
        return [e for e in self.kb.list_entities() if e.status == EntityStatus.INCOMPLETE]

    def unclassified_notes(self) -> list[Note]:
        return [n for n in self.kb.list_notes() if n.category in UNCLASSIFIED_CATEGORIES]

    def urgent_tasks(self) -> list[Task]:
        return [
            t for t in self.kb.list_tasks()
            if not t.completed and t.priority == TaskPriority.HIGH
        ]

    def recent_entities(self, now: datetime | None = None) -> list[Entity]:
        """Entities with a back-referenced note created within the recent window."""
        now = now or self._clock()
        since = now - timedelta(hours=self.settings.recent_activity_hours)
        fresh = {n.id for n in self.kb.list_notes() if n.created_at >= since}
        return [e for e in self.kb.list_entities() if any(i in fresh for i in e.notes)]

    def dashboard_duplicates(self) -> list[DuplicatePair]:
        return find_duplicate_notes(
            self.kb.list_notes(),
            self.settings.dashboard_similarity_threshold,
            self.settings.dashboard_duplicate_limit,
        )

    def review_duplicates(self) -> list[DuplicatePair]:
        return find_duplicate_notes(
            self.kb.list_notes(), self.settings.review_similarity_threshold, inclusive=False
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # SUGGESTIONS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def pattern_candidates(self) -> list[tuple[str, int]]:
        """
        Capitalized words seen in enough distinct notes to deserve an entity.

        Words matching an existing entity name (case-insensitive) are skipped.

        Returns:
            (word, note_count) pairs, most frequent first
        """
        known = {name_key(e.name) for e in self.kb.list_entities()}
        counts: Counter[str] = Counter()
        for note in self.kb.list_notes():
            words = capitalized_words(note.content, self.settings.pattern_min_word_length)
            counts.update({w for w in words if name_key(w) not in known})
        return [
            (word, count)
            for word, count in counts.most_common()
            if count >= self.settings.pattern_min_notes
        ]

    def suggestions(self, now: datetime | None = None) -> list[Suggestion]:
        """All current suggestions: entity creation, archiving, note merges."""
        found: list[Suggestion] = []

        for word, count in self.pattern_candidates():
            found.append(
                Suggestion(
                    id=f"create:{name_key(word)}",
                    type=SuggestionType.CREATE_ENTITY,
                    title=f'Create "{word}"?',
                    reason=f"Mentioned in {count} notes but not registered as an entity.",
                    data={"name": word, "note_count": count},
                )
            )

        for entity in self.stale_entities(now):
            found.append(
                Suggestion(
                    id=f"archive:{entity.id}",
                    type=SuggestionType.ARCHIVE_ENTITY,
                    title=f'Archive "{entity.name}"?',
                    reason=(
                        f"No activity in the last {self.settings.stale_after_days} days."
                    ),
                    data={"entity_id": entity.id},
                )
            )

        notes = {n.id: n for n in self.kb.list_notes()}
        for pair in self.review_duplicates():
            keep, drop = _older_first(notes[pair.note_a_id], notes[pair.note_b_id])
            found.append(
                Suggestion(
                    id=f"merge:{pair.note_a_id}:{pair.note_b_id}",
                    type=SuggestionType.MERGE_NOTES,
                    title="Merge similar notes?",
                    reason=f'"{keep.summary}" and "{drop.summary}" look like duplicates.',
                    data={"keep_id": keep.id, "drop_id": drop.id, "score": pair.score},
                )
            )
        return found

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # REPORTS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def dashboard(self, now: datetime | None = None) -> DashboardSummary:
        now = now or self._clock()
        return DashboardSummary(
            unclassified_notes=self.unclassified_notes(),
            urgent_tasks=self.urgent_tasks(),
            recent_entities=self.recent_entities(now),
            duplicates=self.dashboard_duplicates(),
            incomplete_entities=self.incomplete_entities(),
            context_less_tasks=self.context_less_tasks(),
            suggestions=self.suggestions(now)[: self.settings.suggestion_limit],
        )

    def review(self) -> ReviewReport:
        report = ReviewReport(
            incomplete_entities=self.incomplete_entities(),
            context_less_tasks=self.context_less_tasks(),
            orphan_projects=self.orphan_projects(),
            duplicates=self.review_duplicates(),
        )
        logger.debug(f"Review found {report.total_issues} issues")
        return report


def _older_first(note_a: Note, note_b: Note) -> tuple[Note, Note]:
    """Order a pair as (keep, drop): the older note survives a merge."""
    if note_b.created_at < note_a.created_at:
        return note_b, note_a
    return note_a, note_b


class SuggestionQueue:
    """
    Pending suggestions surfaced to the user, capped at ``limit``.

    Dismissed ids are remembered so a recompute does not resurface them;
    applying a suggestion removes it from the pending list.

    Usage:
        queue = SuggestionQueue()
        queue.refresh(audit.suggestions())
        suggestion = queue.take(queue.pending[0].id)
    """

    def __init__(self, limit: int = 3) -> None:
        self.limit = limit
        self._pending: list[Suggestion] = []
        self._dismissed: set[str] = set()

    @property
    def pending(self) -> list[Suggestion]:
        return list(self._pending)

    @property
    def dismissed_ids(self) -> frozenset[str]:
        return frozenset(self._dismissed)

    def refresh(self, suggestions: Iterable[Suggestion]) -> list[Suggestion]:
        """Replace the pending list with the top undismissed suggestions."""
        fresh = [s for s in suggestions if s.id not in self._dismissed]
        self._pending = fresh[: self.limit]
        return self.pending

    def get(self, suggestion_id: str) -> Suggestion | None:
        for suggestion in self._pending:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    def take(self, suggestion_id: str) -> Suggestion | None:
        """Remove a suggestion for applying; returns None if it is not pending."""
        suggestion = self.get(suggestion_id)
        if suggestion is not None:
            self._pending = [s for s in self._pending if s.id != suggestion_id]
        return suggestion

    def dismiss(self, suggestion_id: str) -> None:
        self._dismissed.add(suggestion_id)
        self._pending = [s for s in self._pending if s.id != suggestion_id]
