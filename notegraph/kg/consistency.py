"""
Graph Consistency Engine — referential integrity for deletes and merges.

Destructive operations are two-phase:

    report = engine.preview_impact(DeleteEntity(entity_id))
    # ... caller shows report.message() and asks the user ...
    engine.execute(DeleteEntity(entity_id), confirmed=True)

``execute`` without confirmation raises ConfirmationRequiredError carrying
the same report, so a caller can never skip the impact computation. A
report without dependents only needs a light confirmation; one with
dependents needs an explicit override (and, for entities, suggests
archiving instead).

Cascades only rewrite references; dependents are never deleted:
- Deleting a note leaves its tasks and knowledge items untouched (their
  ``source_note_id`` dangles and reads as unknown provenance).
- Deleting an entity strips its id from notes and knowledge items, clears
  task contexts and un-parents child entities.

Entity and note merges are unconditional and irreversible; each one is
documented by a MergeHistory record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityStatus, MergeHistory, Note, _dedupe
from notegraph.models.errors import (
    ConfirmationRequiredError,
    HierarchyCycleError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


# ============================================================================
# Operations & Impact Reports
# ============================================================================


@dataclass(frozen=True)
class DeleteNote:
    note_id: str


@dataclass(frozen=True)
class DeleteEntity:
    entity_id: str


@dataclass(frozen=True)
class DeleteTask:
    task_id: str


@dataclass(frozen=True)
class DeleteKnowledge:
    item_id: str


@dataclass(frozen=True)
class DeleteCategory:
    category_id: str


DestructiveOp = DeleteNote | DeleteEntity | DeleteTask | DeleteKnowledge | DeleteCategory


class ImpactReport(BaseModel):
    """
    Records affected by a destructive operation.

    Attributes:
        operation: Kind of operation the report was computed for
        target_id: Record to be deleted
        target_label: Name/summary/description of the target, for display
        note_ids: Notes that reference the target
        task_ids: Tasks that reference the target
        knowledge_ids: Knowledge items that reference the target
        child_entity_ids: Entities whose parent is the target
    """

    operation: Literal[
        "delete_note", "delete_entity", "delete_task", "delete_knowledge", "delete_category"
    ]
    target_id: str
    target_label: str = ""
    note_ids: list[str] = Field(default_factory=list)
    task_ids: list[str] = Field(default_factory=list)
    knowledge_ids: list[str] = Field(default_factory=list)
    child_entity_ids: list[str] = Field(default_factory=list)

    @property
    def has_dependents(self) -> bool:
        return bool(
            self.note_ids or self.task_ids or self.knowledge_ids or self.child_entity_ids
        )

    @property
    def suggest_archive(self) -> bool:
        return self.operation == "delete_entity" and self.has_dependents

    def counts(self) -> dict[str, int]:
        return {
            "notes": len(self.note_ids),
            "tasks": len(self.task_ids),
            "knowledge": len(self.knowledge_ids),
            "child_entities": len(self.child_entity_ids),
        }

    def impact_lines(self) -> list[str]:
        """One line per non-empty dependent set."""
        if self.operation == "delete_note":
            if not self.has_dependents:
                return []
            return [
                f"- {len(self.task_ids)} tasks",
                f"- {len(self.knowledge_ids)} knowledge articles",
            ]

        lines: list[str] = []
        if self.note_ids:
            verb = "lose this classification" if self.operation == "delete_category" else "lose context"
            lines.append(f"- {len(self.note_ids)} notes will {verb}")
        if self.task_ids:
            lines.append(f"- {len(self.task_ids)} tasks will be left without context")
        if self.knowledge_ids:
            lines.append(f"- {len(self.knowledge_ids)} knowledge articles will lose context")
        if self.child_entity_ids:
            lines.append(
                f"- {len(self.child_entity_ids)} sub-entities (projects/people) will lose their parent"
            )
        return lines

    def message(self) -> str:
        """Confirmation prompt for the user."""
        label = self.target_label or self.target_id
        if not self.has_dependents:
            return f'Delete "{label}"?'

        impact = "\n".join(self.impact_lines())
        if self.operation == "delete_note":
            return (
                "IMPACT DETECTED\n\nThis note is the source of:\n"
                f"{impact}\n\n"
                "If you delete it, these items lose their provenance. Proceed?"
            )
        if self.operation == "delete_entity":
            return (
                f'SAFETY STOP\n\n"{label}" cannot be deleted without explicit '
                f"permission because of the following impact:\n\n{impact}\n\n"
                'Suggestion: use "Archive" instead.\n\n'
                "Permanently delete anyway?"
            )
        return f'Delete "{label}"?\n\n{impact}'


# ============================================================================
# Consistency Engine
# ============================================================================


class ConsistencyEngine:
    """
    Executes deletes, merges and hierarchy edits against a KnowledgeBase
    without leaving references that point at removed records.

    Example:
        engine = ConsistencyEngine(kb)
        report = engine.preview_impact(DeleteNote(note_id))
        engine.execute(DeleteNote(note_id), confirmed=True)
        engine.merge_entities(source_id="dup", target_id="canonical")
    """

    def __init__(
        self,
        kb: KnowledgeBase,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.kb = kb
        self._clock = clock

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # IMPACT PREVIEW
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def preview_impact(self, op: DestructiveOp) -> ImpactReport:
        """
        Compute the full impact of a destructive operation.

        Raises:
            RecordNotFoundError: If the target does not exist
        """
        if isinstance(op, DeleteNote):
            return self._note_impact(op.note_id)
        if isinstance(op, DeleteEntity):
            return self._entity_impact(op.entity_id)
        if isinstance(op, DeleteTask):
            task = self.kb.get_task(op.task_id)
            if task is None:
                raise RecordNotFoundError("Task", op.task_id)
            return ImpactReport(
                operation="delete_task", target_id=task.id, target_label=task.description
            )
        if isinstance(op, DeleteKnowledge):
            item = self.kb.get_knowledge(op.item_id)
            if item is None:
                raise RecordNotFoundError("KnowledgeItem", op.item_id)
            return ImpactReport(
                operation="delete_knowledge", target_id=item.id, target_label=item.topic
            )
        if isinstance(op, DeleteCategory):
            return self._category_impact(op.category_id)
        raise TypeError(f"Unsupported operation: {op!r}")

    def _note_impact(self, note_id: str) -> ImpactReport:
        note = self.kb.get_note(note_id)
        if note is None:
            raise RecordNotFoundError("Note", note_id)
        return ImpactReport(
            operation="delete_note",
            target_id=note.id,
            target_label=note.summary,
            task_ids=[t.id for t in self.kb.list_tasks() if t.source_note_id == note_id],
            knowledge_ids=[
                k.id for k in self.kb.list_knowledge() if k.source_note_id == note_id
            ],
        )

    def _entity_impact(self, entity_id: str) -> ImpactReport:
        entity = self.kb.get_entity(entity_id)
        if entity is None:
            raise RecordNotFoundError("Entity", entity_id)
        return ImpactReport(
            operation="delete_entity",
            target_id=entity.id,
            target_label=entity.name,
            note_ids=[n.id for n in self.kb.list_notes() if entity_id in n.related_entity_ids],
            task_ids=[t.id for t in self.kb.list_tasks() if t.related_entity_id == entity_id],
            knowledge_ids=[
                k.id for k in self.kb.list_knowledge() if entity_id in k.related_entity_ids
            ],
            child_entity_ids=[e.id for e in self.kb.children_of(entity_id)],
        )

    def _category_impact(self, category_id: str) -> ImpactReport:
        category = self.kb.config.get_category(category_id)
        if category is None:
            raise RecordNotFoundError("Category", category_id)
        return ImpactReport(
            operation="delete_category",
            target_id=category.id,
            target_label=category.name,
            note_ids=[n.id for n in self.kb.list_notes() if n.category == category.name],
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # EXECUTION
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def execute(self, op: DestructiveOp, confirmed: bool = False) -> ImpactReport:
        """
        Run a destructive operation after recomputing its impact.

        Args:
            op: Operation to run
            confirmed: Whether the user confirmed the operation

        Returns:
            The impact report the operation was executed under

        Raises:
            ConfirmationRequiredError: If ``confirmed`` is False
            RecordNotFoundError: If the target does not exist
        """
        report = self.preview_impact(op)
        if not confirmed:
            raise ConfirmationRequiredError(report)

        if isinstance(op, DeleteNote):
            self._delete_note(report)
        elif isinstance(op, DeleteEntity):
            self._delete_entity(report)
        elif isinstance(op, DeleteTask):
            self.kb.remove_task(op.task_id)
            logger.info(f"Deleted task {op.task_id}")
        elif isinstance(op, DeleteKnowledge):
            self.kb.remove_knowledge(op.item_id)
            logger.info(f"Deleted knowledge item {op.item_id}")
        elif isinstance(op, DeleteCategory):
            self._delete_category(report)
        return report

    def delete_note(self, note_id: str, confirmed: bool = False) -> ImpactReport:
        return self.execute(DeleteNote(note_id), confirmed=confirmed)

    def delete_entity(self, entity_id: str, confirmed: bool = False) -> ImpactReport:
        return self.execute(DeleteEntity(entity_id), confirmed=confirmed)

    def delete_task(self, task_id: str, confirmed: bool = False) -> ImpactReport:
        return self.execute(DeleteTask(task_id), confirmed=confirmed)

    def delete_knowledge(self, item_id: str, confirmed: bool = False) -> ImpactReport:
        return self.execute(DeleteKnowledge(item_id), confirmed=confirmed)

    def delete_category(self, category_id: str, confirmed: bool = False) -> ImpactReport:
        return self.execute(DeleteCategory(category_id), confirmed=confirmed)

    def _delete_note(self, report: ImpactReport) -> None:
        note_id = report.target_id
        self.kb.remove_note(note_id)

        # Dependent tasks and knowledge keep their dangling source_note_id;
        # only back-references and cross-links are cleaned up
        linked = [n for n in self.kb.list_notes() if note_id in n.related_note_ids]
        for note in linked:
            note.related_note_ids = [i for i in note.related_note_ids if i != note_id]
        if linked:
            self.kb.put_notes(linked)

        mentioned = [e for e in self.kb.list_entities() if note_id in e.notes]
        for entity in mentioned:
            entity.notes = [i for i in entity.notes if i != note_id]
        if mentioned:
            self.kb.put_entities(mentioned)

        logger.info(
            f"Deleted note {note_id}: {len(report.task_ids)} tasks and "
            f"{len(report.knowledge_ids)} knowledge items lost provenance"
        )

    def _delete_entity(self, report: ImpactReport) -> None:
        entity_id = report.target_id
        self.kb.remove_entity(entity_id)

        notes = [n for n in self.kb.list_notes() if n.id in report.note_ids]
        for note in notes:
            note.related_entity_ids = [i for i in note.related_entity_ids if i != entity_id]
        if notes:
            self.kb.put_notes(notes)

        tasks = [t for t in self.kb.list_tasks() if t.related_entity_id == entity_id]
        for task in tasks:
            task.related_entity_id = None
        if tasks:
            self.kb.put_tasks(tasks)

        items = [k for k in self.kb.list_knowledge() if entity_id in k.related_entity_ids]
        for item in items:
            item.related_entity_ids = [i for i in item.related_entity_ids if i != entity_id]
        if items:
            self.kb.put_knowledge_items(items)

        children = self.kb.children_of(entity_id)
        for child in children:
            child.parent_id = None
        if children:
            self.kb.put_entities(children)

        logger.info(
            f"Deleted entity {entity_id} ({report.target_label!r}): "
            f"cleaned {len(notes)} notes, {len(tasks)} tasks, "
            f"{len(items)} knowledge items, {len(children)} children"
        )

    def _delete_category(self, report: ImpactReport) -> None:
        config = self.kb.config
        config.categories = [c for c in config.categories if c.id != report.target_id]
        self.kb.set_config(config)
        logger.info(
            f"Deleted category {report.target_label!r}; "
            f"{len(report.note_ids)} notes keep the unlisted name"
        )

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # MERGES
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def merge_entities(self, source_id: str, target_id: str) -> MergeHistory | None:
        """
        Merge the source entity into the target and remove the source.

        Every reference to the source becomes a reference to the target,
        with set semantics: a note that referenced both ends up referencing
        the target exactly once. If the rewrite would put the target inside
        its own parent chain (source was an ancestor of target), the
        target's parent link is cleared to keep the hierarchy acyclic.

        Returns:
            MergeHistory record, or None when source and target are equal

        Raises:
            RecordNotFoundError: If either entity does not exist
        """
        if source_id == target_id:
            return None

        source = self.kb.get_entity(source_id)
        target = self.kb.get_entity(target_id)
        if source is None:
            raise RecordNotFoundError("Entity", source_id)
        if target is None:
            raise RecordNotFoundError("Entity", target_id)

        def _swap(ids: list[str]) -> list[str]:
            return _dedupe([target_id if i == source_id else i for i in ids])

        notes = [n for n in self.kb.list_notes() if source_id in n.related_entity_ids]
        for note in notes:
            note.related_entity_ids = _swap(note.related_entity_ids)

        tasks = [t for t in self.kb.list_tasks() if t.related_entity_id == source_id]
        for task in tasks:
            task.related_entity_id = target_id

        items = [k for k in self.kb.list_knowledge() if source_id in k.related_entity_ids]
        for item in items:
            item.related_entity_ids = _swap(item.related_entity_ids)

        # Remove the source first so the hierarchy below only sees survivors
        self.kb.remove_entity(source_id)
        entities = {e.id: e for e in self.kb.list_entities()}
        rewired: list[Entity] = []
        for entity in entities.values():
            if entity.parent_id == source_id:
                entity.parent_id = target_id
                rewired.append(entity)

        survivor = entities[target_id]
        survivor.notes = _dedupe([*survivor.notes, *source.notes])
        if survivor.parent_id == target_id:
            survivor.parent_id = None
        if survivor not in rewired:
            rewired.append(survivor)

        if notes:
            self.kb.put_notes(notes)
        if tasks:
            self.kb.put_tasks(tasks)
        if items:
            self.kb.put_knowledge_items(items)
        self.kb.put_entities(rewired)
        self._break_cycle_at(target_id)

        record = MergeHistory(
            kind="entity",
            source_id=source_id,
            source_label=source.name,
            target_id=target_id,
            references_rewritten=len(notes) + len(tasks) + len(items) + len(rewired) - 1,
            merged_at=self._clock(),
        )
        self.kb.record_merge(record)
        logger.info(
            f"Merged entity {source_id} ({source.name!r}) into {target_id} "
            f"({target.name!r}): {record.references_rewritten} references rewritten"
        )
        return record

    def _break_cycle_at(self, entity_id: str) -> None:
        """Clear the entity's parent link if its parent chain leads back to it."""
        entity = self.kb.get_entity(entity_id)
        if entity is None or entity.parent_id is None:
            return
        if self.kb.would_create_cycle(entity_id, entity.parent_id):
            logger.warning(
                f"Clearing parent of {entity_id}: merge made it its own ancestor"
            )
            entity.parent_id = None
            self.kb.put_entity(entity)

    def merge_notes(self, keep_id: str, drop_id: str) -> MergeHistory | None:
        """
        Merge the drop note into the keep note and remove the drop note.

        The drop note's content is appended beneath a dated separator and the
        entity references are unioned. Tasks and knowledge items sourced from
        the drop note are repointed to the keep note. The keep note's summary,
        category and creation time are preserved.

        Returns:
            MergeHistory record, or None when both ids are equal

        Raises:
            RecordNotFoundError: If either note does not exist
        """
        if keep_id == drop_id:
            return None

        keep = self.kb.get_note(keep_id)
        drop = self.kb.get_note(drop_id)
        if keep is None:
            raise RecordNotFoundError("Note", keep_id)
        if drop is None:
            raise RecordNotFoundError("Note", drop_id)

        now = self._clock()
        merged = keep.model_copy(
            update={
                "content": (
                    f"{keep.content}\n\n--- Merged content ({now.date().isoformat()}) ---\n"
                    f"{drop.content}"
                ),
                "related_entity_ids": _dedupe(
                    [*keep.related_entity_ids, *drop.related_entity_ids]
                ),
                "related_note_ids": [
                    i
                    for i in _dedupe([*keep.related_note_ids, *drop.related_note_ids])
                    if i not in (keep_id, drop_id)
                ],
                "extracted_task_ids": _dedupe(
                    [*keep.extracted_task_ids, *drop.extracted_task_ids]
                ),
                "extracted_knowledge_ids": _dedupe(
                    [*keep.extracted_knowledge_ids, *drop.extracted_knowledge_ids]
                ),
            },
            deep=True,
        )

        tasks = [t for t in self.kb.list_tasks() if t.source_note_id == drop_id]
        for task in tasks:
            task.source_note_id = keep_id
        if tasks:
            self.kb.put_tasks(tasks)

        items = [k for k in self.kb.list_knowledge() if k.source_note_id == drop_id]
        for item in items:
            item.source_note_id = keep_id
        if items:
            self.kb.put_knowledge_items(items)

        self.kb.remove_note(drop_id)
        others = self._repoint_note_links(drop_id, keep_id)
        self.kb.put_notes([merged, *others])
        self._repoint_entity_backrefs(drop_id, keep_id)

        record = MergeHistory(
            kind="note",
            source_id=drop_id,
            source_label=drop.summary,
            target_id=keep_id,
            references_rewritten=len(tasks) + len(items) + len(others),
            merged_at=now,
        )
        self.kb.record_merge(record)
        logger.info(
            f"Merged note {drop_id} into {keep_id}: {len(tasks)} tasks and "
            f"{len(items)} knowledge items repointed"
        )
        return record

    def _repoint_note_links(self, old_id: str, new_id: str) -> list[Note]:
        """Rewrite other notes' cross-links from old_id to new_id (not yet saved)."""
        changed: list[Note] = []
        for note in self.kb.list_notes():
            if note.id == new_id or old_id not in note.related_note_ids:
                continue
            note.related_note_ids = _dedupe(
                [new_id if i == old_id else i for i in note.related_note_ids]
            )
            changed.append(note)
        return changed

    def _repoint_entity_backrefs(self, old_id: str, new_id: str) -> None:
        entities = [e for e in self.kb.list_entities() if old_id in e.notes]
        for entity in entities:
            entity.notes = _dedupe([new_id if i == old_id else i for i in entity.notes])
        if entities:
            self.kb.put_entities(entities)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # ARCHIVE & HIERARCHY
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def archive_entity(self, entity_id: str) -> Entity:
        """Archive an entity: the non-destructive alternative to deletion."""
        return self._set_status(entity_id, EntityStatus.ARCHIVED)

    def restore_entity(self, entity_id: str) -> Entity:
        return self._set_status(entity_id, EntityStatus.ACTIVE)

    def _set_status(self, entity_id: str, status: EntityStatus) -> Entity:
        entity = self.kb.get_entity(entity_id)
        if entity is None:
            raise RecordNotFoundError("Entity", entity_id)
        if entity.status != status:
            entity.status = status
            self.kb.put_entity(entity)
            logger.info(f"Entity {entity_id} ({entity.name!r}) is now {status.value}")
        return entity

    def validate_parent(self, entity_id: str, parent_id: str | None) -> None:
        """
        Check a parent assignment without applying it.

        Raises:
            RecordNotFoundError: If the parent does not exist
            HierarchyCycleError: If the assignment would create a cycle
        """
        if parent_id is None:
            return
        if self.kb.get_entity(parent_id) is None:
            raise RecordNotFoundError("Entity", parent_id)
        if self.kb.would_create_cycle(entity_id, parent_id):
            raise HierarchyCycleError(
                "An entity cannot belong to itself or to one of its descendants",
                detail=f"entity={entity_id} parent={parent_id}",
            )

    def set_entity_parent(self, entity_id: str, parent_id: str | None) -> Entity:
        """Assign or clear an entity's parent, rejecting cycles."""
        entity = self.kb.get_entity(entity_id)
        if entity is None:
            raise RecordNotFoundError("Entity", entity_id)
        self.validate_parent(entity_id, parent_id)
        entity.parent_id = parent_id
        self.kb.put_entity(entity)
        return entity

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # CATEGORIES
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def merge_categories(self, from_id: str, to_id: str) -> int:
        """
        Move every note from one category to another and drop the source category.

        Returns:
            Number of notes re-categorised
        """
        if from_id == to_id:
            return 0
        config = self.kb.config
        source = config.get_category(from_id)
        target = config.get_category(to_id)
        if source is None:
            raise RecordNotFoundError("Category", from_id)
        if target is None:
            raise RecordNotFoundError("Category", to_id)

        notes = [n for n in self.kb.list_notes() if n.category == source.name]
        for note in notes:
            note.category = target.name
        if notes:
            self.kb.put_notes(notes)

        config.categories = [c for c in config.categories if c.id != from_id]
        self.kb.set_config(config)
        logger.info(
            f"Merged category {source.name!r} into {target.name!r} ({len(notes)} notes)"
        )
        return len(notes)
