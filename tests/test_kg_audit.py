"""
Tests for the Similarity & Audit Engine and the suggestion queue.

Tests cover:
- Stale, context-less, orphan and incomplete audits
- Pattern-based entity suggestions
- Suggestion generation and queue behaviour
- Dashboard and review reports
"""

from __future__ import annotations

from datetime import datetime

import pytest

from notegraph.kg.audit import AuditEngine, Suggestion, SuggestionQueue, SuggestionType
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityStatus, EntityType, Task, TaskPriority


@pytest.fixture
def audit(kb: KnowledgeBase, settings, clock) -> AuditEngine:
    return AuditEngine(kb, settings, clock=clock)


class TestStaleEntities:
    """Active entities without recent referencing notes."""

    def test_entity_without_notes_is_stale(self, kb, audit, entity_factory) -> None:
        kb.put_entity(entity_factory("acme", "Acme"))
        assert [e.id for e in audit.stale_entities()] == ["acme"]

    def test_recent_note_keeps_entity_fresh(self, kb, audit, entity_factory, note_factory, days_ago) -> None:
        kb.put_entity(entity_factory("acme", "Acme"))
        kb.put_note(note_factory("old", entity_ids=["acme"], created_at=days_ago(90)))
        kb.put_note(note_factory("new", entity_ids=["acme"], created_at=days_ago(2)))

        assert audit.stale_entities() == []

    def test_only_old_notes_is_stale(self, kb, audit, entity_factory, note_factory, days_ago) -> None:
        kb.put_entity(entity_factory("acme", "Acme"))
        kb.put_note(note_factory("old", entity_ids=["acme"], created_at=days_ago(31)))

        assert [e.id for e in audit.stale_entities()] == ["acme"]

    def test_naive_note_timestamps_compared_as_utc(
        self, kb, audit, entity_factory, note_factory
    ) -> None:
        kb.put_entities([entity_factory("acme", "Acme"), entity_factory("globex", "Globex")])
        kb.put_note(note_factory("fresh", entity_ids=["acme"], created_at=datetime(2024, 6, 14, 12)))
        kb.put_note(note_factory("old", entity_ids=["globex"], created_at=datetime(2024, 1, 1)))

        assert [e.id for e in audit.stale_entities()] == ["globex"]

    def test_archived_and_incomplete_ignored(self, kb, audit) -> None:
        kb.put_entity(Entity(id="a", name="Archived Co", status=EntityStatus.ARCHIVED))
        kb.put_entity(Entity(id="b", name="??", status=EntityStatus.INCOMPLETE))

        assert audit.stale_entities() == []


class TestSimpleAudits:
    def test_context_less_tasks(self, kb, audit) -> None:
        kb.put_tasks(
            [
                Task(id="t1", description="No context"),
                Task(id="t2", description="Done", completed=True),
                Task(id="t3", description="Has context", related_entity_id="acme"),
            ]
        )
        assert [t.id for t in audit.context_less_tasks()] == ["t1"]

    def test_orphan_projects(self, kb, audit, entity_factory) -> None:
        kb.put_entities(
            [
                entity_factory("acme", "Acme"),
                entity_factory("apollo", "Apollo", EntityType.PROJECT, parent_id="acme"),
                entity_factory("zeus", "Zeus", EntityType.PROJECT),
            ]
        )
        assert [e.id for e in audit.orphan_projects()] == ["zeus"]

    def test_incomplete_entities(self, kb, audit) -> None:
        kb.put_entity(Entity(id="x", name="X", status=EntityStatus.INCOMPLETE))
        kb.put_entity(Entity(id="acme", name="Acme"))
        assert [e.id for e in audit.incomplete_entities()] == ["x"]

    def test_unclassified_notes(self, kb, audit, note_factory) -> None:
        kb.put_notes(
            [
                note_factory("n1", category=""),
                note_factory("n2", category="General"),
                note_factory("n3", category="Personal"),
                note_factory("n4", category="Meeting"),
            ]
        )
        assert [n.id for n in audit.unclassified_notes()] == ["n1", "n2", "n3"]

    def test_urgent_tasks(self, kb, audit) -> None:
        kb.put_tasks(
            [
                Task(id="t1", description="Urgent", priority=TaskPriority.HIGH),
                Task(id="t2", description="Done", priority=TaskPriority.HIGH, completed=True),
                Task(id="t3", description="Later", priority=TaskPriority.LOW),
            ]
        )
        assert [t.id for t in audit.urgent_tasks()] == ["t1"]

    def test_recent_entities(self, kb, audit, note_factory, days_ago) -> None:
        kb.put_note(note_factory("fresh", created_at=days_ago(0)))
        kb.put_note(note_factory("old", created_at=days_ago(3)))
        kb.put_entities(
            [
                Entity(id="a", name="Active", notes=["fresh"]),
                Entity(id="b", name="Quiet", notes=["old"]),
            ]
        )
        assert [e.id for e in audit.recent_entities()] == ["a"]


class TestPatternSuggestions:
    """Capitalized words across at least three distinct notes."""

    def test_word_in_three_notes_suggested(self, kb, audit, note_factory) -> None:
        kb.put_notes(
            [
                note_factory("n1", "Meeting with Globex about pricing"),
                note_factory("n2", "Globex sent the contract. Globex again."),
                note_factory("n3", "Call Globex tomorrow"),
            ]
        )

        candidates = dict(audit.pattern_candidates())
        assert candidates["Globex"] == 3

    def test_repeats_in_one_note_count_once(self, kb, audit, note_factory) -> None:
        kb.put_notes(
            [
                note_factory("n1", "Globex Globex Globex"),
                note_factory("n2", "Globex"),
            ]
        )
        assert "Globex" not in dict(audit.pattern_candidates())

    def test_existing_entity_excluded(self, kb, audit, note_factory) -> None:
        kb.put_entity(Entity(name="globex"))
        kb.put_notes([note_factory(f"n{i}", "Globex update") for i in range(3)])

        assert "Globex" not in dict(audit.pattern_candidates())

    def test_short_and_lowercase_words_ignored(self, kb, audit, note_factory) -> None:
        kb.put_notes([note_factory(f"n{i}", "IBM and globex") for i in range(3)])
        assert audit.pattern_candidates() == []


class TestSuggestions:
    def test_all_suggestion_types(self, kb, audit, note_factory, days_ago) -> None:
        kb.put_entity(Entity(id="old", name="Old Client", type=EntityType.COMPANY))
        kb.put_notes(
            [
                note_factory("n1", "Initech roadmap review", created_at=days_ago(2)),
                note_factory("n2", "Initech roadmap review", created_at=days_ago(1)),
                note_factory("n3", "Initech hiring"),
            ]
        )

        by_type = {s.type: s for s in audit.suggestions()}

        assert by_type[SuggestionType.CREATE_ENTITY].data["name"] == "Initech"
        assert by_type[SuggestionType.ARCHIVE_ENTITY].data == {"entity_id": "old"}
        merge = by_type[SuggestionType.MERGE_NOTES]
        assert merge.data["keep_id"] == "n1"
        assert merge.data["drop_id"] == "n2"

    def test_ids_are_stable(self, kb, audit) -> None:
        kb.put_entity(Entity(id="old", name="Old Client"))
        first = [s.id for s in audit.suggestions()]
        second = [s.id for s in audit.suggestions()]
        assert first == second == ["archive:old"]


class TestReports:
    def test_review_totals(self, kb, audit, note_factory) -> None:
        kb.put_entity(Entity(id="x", name="X", status=EntityStatus.INCOMPLETE))
        kb.put_entity(Entity(id="p", name="Apollo", type=EntityType.PROJECT))
        kb.put_task(Task(id="t1", description="No context"))
        kb.put_notes(
            [note_factory("n1", "alpha bravo charlie"), note_factory("n2", "alpha bravo charlie")]
        )

        report = audit.review()

        assert len(report.incomplete_entities) == 1
        assert len(report.orphan_projects) == 1
        assert len(report.context_less_tasks) == 1
        assert len(report.duplicates) == 1
        assert report.total_issues == 4

    def test_review_excludes_pair_on_threshold(self, kb, audit, note_factory) -> None:
        kb.put_notes(
            [
                note_factory("n1", "alpha bravo charlie delta"),
                note_factory("n2", "alpha bravo charlie echo"),
            ]
        )

        assert audit.review().duplicates == []
        assert len(audit.dashboard_duplicates()) == 1

    def test_dashboard_caps_suggestions(self, kb, audit) -> None:
        kb.put_entities([Entity(id=f"e{i}", name=f"Client {i}") for i in range(5)])

        summary = audit.dashboard()

        assert len(summary.suggestions) == 3


class TestSuggestionQueue:
    @pytest.fixture
    def suggestions(self) -> list[Suggestion]:
        return [
            Suggestion(id=f"s{i}", type=SuggestionType.ARCHIVE_ENTITY, title="t", reason="r")
            for i in range(5)
        ]

    def test_refresh_caps_pending(self, suggestions) -> None:
        queue = SuggestionQueue(limit=3)
        assert [s.id for s in queue.refresh(suggestions)] == ["s0", "s1", "s2"]

    def test_take_removes_from_pending(self, suggestions) -> None:
        queue = SuggestionQueue()
        queue.refresh(suggestions)

        taken = queue.take("s1")

        assert taken.id == "s1"
        assert [s.id for s in queue.pending] == ["s0", "s2"]
        assert queue.take("s1") is None

    def test_dismissed_not_resurfaced(self, suggestions) -> None:
        queue = SuggestionQueue()
        queue.refresh(suggestions)

        queue.dismiss("s0")
        pending = queue.refresh(suggestions)

        assert [s.id for s in pending] == ["s1", "s2", "s3"]
        assert queue.dismissed_ids == frozenset({"s0"})
