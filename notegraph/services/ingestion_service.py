"""
Ingestion Pipeline — commits one analysis result into the knowledge base.

A commit processes the whole batch extracted from one note:

1. A note id is generated up front; every derived record points at it.
2. Entities are resolved with Companies first, so a same-batch company can
   parent a Project or Person that names it in ``associated_with``.
3. Tasks get an automatic context: the single Company/Project of the batch,
   else the single entity of the batch, else none.
4. Knowledge fragments update a matching article or create a new one.
5. Chosen existing notes are cross-linked to the new note.
6. The note is stored, then a post-commit audit produces a notification.

The steps run in order without a transaction: a failure halfway leaves
earlier steps committed. The post-commit audit never undoes anything.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone

from notegraph.kg.domain import Notification, NotificationLevel
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.knowledge_dedup import apply_update, classify, new_article
from notegraph.kg.models import CONTEXT_TYPES, Entity, EntityType, Note, Task, _dedupe, _generate_id
from notegraph.kg.normalization import name_key, normalize_entity_name
from notegraph.kg.resolution import EntityResolver
from notegraph.kg.rules import is_vague_entity_name
from notegraph.kg.schemas import AnalysisResult, ExtractedEntity

logger = logging.getLogger(__name__)

Notifier = Callable[[Notification], None]

CONTENT_PREVIEW_LENGTH = 60


def _utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def _companies_first(entities: Sequence[ExtractedEntity]) -> list[ExtractedEntity]:
    """Stable reorder placing Company entities before everything else."""
    return sorted(entities, key=lambda e: e.type != EntityType.COMPANY)


def _normalize_merges(merges: Mapping[int | str, str] | None) -> dict[int, str] | None:
    """Accept index keys as ints or numeric strings."""
    if merges is None:
        return None
    return {int(index): item_id for index, item_id in merges.items() if item_id}


class IngestionPipeline:
    """
    Commits AnalysisResults, wiring entities, tasks, knowledge and notes.

    Example:
        pipeline = IngestionPipeline(kb, notifier=toasts.append)
        note = pipeline.commit(result, content="Met Jane from Acme ...")
    """

    def __init__(
        self,
        kb: KnowledgeBase,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.kb = kb
        self.resolver = EntityResolver(kb)
        self._notifier = notifier
        self._clock = clock
        self.last_notification: Notification | None = None

    def commit(
        self,
        result: AnalysisResult,
        link_to_note_ids: Sequence[str] | None = None,
        knowledge_merges: Mapping[int | str, str] | None = None,
        *,
        content: str = "",
    ) -> Note:
        """
        Commit one analysis result as a new note and its derived records.

        Args:
            result: Extractor output, already filtered by the user's choices
            link_to_note_ids: Existing notes to cross-link with the new note
            knowledge_merges: Knowledge index -> id of the article to update.
                None classifies every fragment automatically; an explicit
                mapping is taken as the user's decision (missing index = create)
            content: Original input text stored as the note content

        Returns:
            The stored Note
        """
        now = self._clock()
        note_id = _generate_id()

        entity_ids, created, extracted_types = self._resolve_entities(result.entities)
        task_ids = self._create_tasks(result, note_id, entity_ids, extracted_types)
        knowledge_ids = self._apply_knowledge(
            result, note_id, entity_ids, _normalize_merges(knowledge_merges), now
        )
        linked_ids = self._link_notes(link_to_note_ids or [], note_id)

        note = Note(
            id=note_id,
            content=content,
            summary=result.summary,
            category=result.category,
            is_sensitive=result.is_sensitive,
            created_at=now,
            related_entity_ids=entity_ids,
            related_note_ids=linked_ids,
            extracted_task_ids=task_ids,
            extracted_knowledge_ids=knowledge_ids,
        )
        self.kb.put_note(note)
        self._add_backrefs(entity_ids, note_id)

        logger.info(
            "Committed note %s (%d entities, %d tasks, %d knowledge): %s",
            note_id,
            len(entity_ids),
            len(task_ids),
            len(knowledge_ids),
            content[:CONTENT_PREVIEW_LENGTH],
            extra={"sensitive": note.is_sensitive},
        )

        self._post_commit_audit(created, task_ids)
        return note

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # PIPELINE STEPS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _resolve_entities(
        self, extracted: Sequence[ExtractedEntity]
    ) -> tuple[list[str], list[str], dict[str, EntityType]]:
        """
        Resolve the batch entities.

        Returns:
            (ids for the note in resolution order, ids of entities that did
            not exist before this commit, extracted type per resolved id)
        """
        before = {e.id for e in self.kb.list_entities()}
        batch: dict[str, str] = {}
        related: list[str] = []
        extracted_types: dict[str, EntityType] = {}

        for candidate in _companies_first(extracted):
            parent_id = None
            if candidate.associated_with:
                parent_id = self._resolve_parent(candidate.associated_with, batch)

            entity_id = self.resolver.resolve(
                candidate.name, candidate.type, candidate, parent_id
            )
            related.append(entity_id)
            extracted_types.setdefault(entity_id, candidate.type)
            batch[name_key(normalize_entity_name(candidate.name))] = entity_id

        related = _dedupe(related)
        created = [i for i in related if i not in before]
        return related, created, extracted_types

    def _resolve_parent(self, parent_name: str, batch: dict[str, str]) -> str:
        """Existing entity, then same-batch entity, then a new Company."""
        key = name_key(parent_name)
        existing = self.kb.get_entity_by_name(parent_name)
        if existing is not None:
            return existing.id
        if key in batch:
            return batch[key]

        parent_id = self.resolver.resolve(parent_name, EntityType.COMPANY)
        batch[key] = parent_id
        logger.debug(f"Created parent company {parent_id} for {parent_name!r}")
        return parent_id

    def _task_context(
        self, entity_ids: Sequence[str], extracted_types: Mapping[str, EntityType]
    ) -> str | None:
        """Sole Company/Project of the batch (as extracted), else the sole entity."""
        contexts = [i for i in entity_ids if extracted_types.get(i) in CONTEXT_TYPES]
        if len(contexts) == 1:
            return contexts[0]
        if len(entity_ids) == 1:
            return entity_ids[0]
        return None

    def _create_tasks(
        self,
        result: AnalysisResult,
        note_id: str,
        entity_ids: Sequence[str],
        extracted_types: Mapping[str, EntityType],
    ) -> list[str]:
        context_id = self._task_context(entity_ids, extracted_types)
        tasks = [
            Task(
                description=extracted.description,
                priority=extracted.priority,
                suggested_date=extracted.date,
                completed=False,
                source_note_id=note_id,
                related_entity_id=context_id,
            )
            for extracted in result.tasks
        ]
        if tasks:
            self.kb.put_tasks(tasks)
        return [t.id for t in tasks]

    def _apply_knowledge(
        self,
        result: AnalysisResult,
        note_id: str,
        entity_ids: Sequence[str],
        merges: dict[int, str] | None,
        now: datetime,
    ) -> list[str]:
        knowledge_ids: list[str] = []
        for index, fragment in enumerate(result.knowledge):
            if merges is None:
                target_id = classify(fragment.topic, self.kb.list_knowledge())
            else:
                target_id = merges.get(index)

            target = self.kb.get_knowledge(target_id)
            if target_id is not None and target is None:
                logger.warning(
                    f"Knowledge merge target {target_id} no longer exists; "
                    f"creating {fragment.topic!r} instead"
                )

            if target is not None:
                self.kb.put_knowledge(apply_update(target, fragment.content, note_id, now))
                knowledge_ids.append(target.id)
                logger.debug(f"Appended knowledge to {target.id} ({target.topic!r})")
            else:
                item = new_article(
                    fragment.topic,
                    fragment.content,
                    note_id,
                    tags=result.keywords,
                    related_entity_ids=entity_ids,
                    when=now,
                )
                self.kb.put_knowledge(item)
                knowledge_ids.append(item.id)
        return _dedupe(knowledge_ids)

    def _link_notes(self, link_to_note_ids: Sequence[str], note_id: str) -> list[str]:
        """Append the new note id to each chosen note; returns the ids linked."""
        linked: list[Note] = []
        for other_id in _dedupe(list(link_to_note_ids)):
            other = self.kb.get_note(other_id)
            if other is None:
                logger.warning(f"Cannot link unknown note {other_id}")
                continue
            other.related_note_ids = _dedupe([*other.related_note_ids, note_id])
            linked.append(other)
        if linked:
            self.kb.put_notes(linked)
        return [n.id for n in linked]

    def _add_backrefs(self, entity_ids: Sequence[str], note_id: str) -> None:
        entities: list[Entity] = []
        for entity_id in entity_ids:
            entity = self.kb.get_entity(entity_id)
            if entity is not None and note_id not in entity.notes:
                entity.notes.append(note_id)
                entities.append(entity)
        if entities:
            self.kb.put_entities(entities)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # POST-COMMIT AUDIT
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _post_commit_audit(
        self, created_entity_ids: Sequence[str], task_ids: Sequence[str]
    ) -> Notification:
        vague = [
            e for e in (self.kb.get_entity(i) for i in created_entity_ids)
            if e is not None and is_vague_entity_name(e.name)
        ]
        context_less = [
            t for t in (self.kb.get_task(i) for i in task_ids)
            if t is not None and not t.related_entity_id
        ]

        if vague or context_less:
            problems = []
            if vague:
                problems.append(f"{len(vague)} vague entities")
            if context_less:
                problems.append(f"{len(context_less)} tasks without context")
            notification = Notification(
                level=NotificationLevel.WARNING,
                message=(
                    f"Note saved, but inconsistencies were detected: "
                    f"{', '.join(problems)}. Check the review panel."
                ),
            )
            logger.warning(notification.message)
        else:
            notification = Notification(
                level=NotificationLevel.SUCCESS,
                message="Note saved and processed. All information is linked.",
            )

        self.last_notification = notification
        if self._notifier is not None:
            self._notifier(notification)
        return notification
