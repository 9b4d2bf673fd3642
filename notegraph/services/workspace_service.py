"""
Workspace Service — the façade a UI layer talks to.

Wires the knowledge base to its store and exposes every engine operation:
resolution, ingestion, record edits behind the rule gate, two-phase deletes,
merges, archive/restore, hierarchy edits, category administration, audits,
suggestions and export.

Every mutation is flushed to the store collection by collection through a
knowledge base listener. Persistence failures raise PersistenceError to the
caller; nothing is retried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from notegraph.core.config import Settings, get_settings
from notegraph.core.storage import InMemoryStore, JsonFileStore, KeyValueStore
from notegraph.kg.audit import (
    AuditEngine,
    DashboardSummary,
    ReviewReport,
    Suggestion,
    SuggestionQueue,
    SuggestionType,
)
from notegraph.kg.consistency import (
    ConsistencyEngine,
    DeleteCategory,
    DestructiveOp,
    ImpactReport,
)
from notegraph.kg.domain import AppConfig, CategoryDefinition, Notification, RuleCode
from notegraph.kg.knowledge_dedup import classify
from notegraph.kg.models import (
    Entity,
    EntityType,
    KnowledgeItem,
    MergeHistory,
    Note,
    Task,
)
from notegraph.kg.persistence import StorePersister, export_graphml, load_knowledge_base
from notegraph.kg.resolution import EntityResolver
from notegraph.kg.rules import RuleGate
from notegraph.kg.schemas import AnalysisResult
from notegraph.models.errors import RecordNotFoundError
from notegraph.services.analysis_service import AnalysisSession, Extractor
from notegraph.services.ingestion_service import IngestionPipeline

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class WorkspaceService:
    """
    One user's notes workspace backed by a key-value store.

    Usage:
        workspace = WorkspaceService(JsonFileStore(Path("data")))
        note = workspace.commit(result, content="Met Jane from Acme")
        report = workspace.preview_impact(DeleteEntity(acme_id))
        workspace.execute(DeleteEntity(acme_id), confirmed=True)
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        extractor: Extractor | None = None,
        settings: Settings | None = None,
        notifier: Callable[[Notification], None] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else JsonFileStore(self.settings.data_path)
        self.kb = load_knowledge_base(self.store)
        self.kb.subscribe(StorePersister(self.kb, self.store))

        self._extractor = extractor
        self._notifier = notifier
        self.notifications: list[Notification] = []

        self.resolver = EntityResolver(self.kb)
        self.consistency = ConsistencyEngine(self.kb, clock=clock)
        self.pipeline = IngestionPipeline(self.kb, notifier=self._notify, clock=clock)
        self.audit = AuditEngine(self.kb, self.settings, clock=clock)
        self.suggestion_queue = SuggestionQueue(self.settings.suggestion_limit)

    @classmethod
    def in_memory(
        cls,
        initial: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> WorkspaceService:
        """Workspace over an InMemoryStore, optionally seeded with documents."""
        return cls(InMemoryStore(initial), **kwargs)

    def _notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self._notifier is not None:
            self._notifier(notification)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # RESOLUTION & INGESTION
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def resolve(
        self,
        name: str | None,
        entity_type: EntityType | str,
        details: Any = None,
        parent_id_candidate: str | None = None,
    ) -> str:
        return self.resolver.resolve(name, entity_type, details, parent_id_candidate)

    def commit(
        self,
        result: AnalysisResult,
        link_to_note_ids: Sequence[str] | None = None,
        knowledge_merges: Mapping[int | str, str] | None = None,
        *,
        content: str = "",
    ) -> Note:
        return self.pipeline.commit(result, link_to_note_ids, knowledge_merges, content=content)

    def classify_knowledge(self, topic: str) -> str | None:
        return classify(topic, self.kb.list_knowledge())

    def analysis_session(self) -> AnalysisSession:
        """Create an analysis session bound to this workspace's extractor."""
        if self._extractor is None:
            raise RuntimeError("No extractor configured for this workspace")
        return AnalysisSession(self.kb, self._extractor, self.pipeline, self.settings)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # RECORD EDITS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def save_note(self, note: Note) -> Note:
        return self.kb.put_note(note)

    def save_entity(self, entity: Entity) -> Entity:
        """
        Save an entity edit.

        Raises:
            RecordNotFoundError: If the parent does not exist
            HierarchyCycleError: If the parent would create a cycle
        """
        self.consistency.validate_parent(entity.id, entity.parent_id)
        return self.kb.put_entity(entity)

    def save_task(self, task: Task) -> Task:
        """
        Save a task edit; the store is left unchanged on rejection.

        Raises:
            RuleViolationError: If an active automation rule rejects the task
        """
        RuleGate(self.kb.config).check_task(task)
        return self.kb.put_task(task)

    def save_knowledge(self, item: KnowledgeItem) -> KnowledgeItem:
        return self.kb.put_knowledge(item)

    def toggle_task(self, task_id: str) -> Task:
        task = self.kb.get_task(task_id)
        if task is None:
            raise RecordNotFoundError("Task", task_id)
        task.completed = not task.completed
        return self.kb.put_task(task)

    def create_entity(
        self,
        name: str,
        entity_type: EntityType | str,
        parent_id: str | None = None,
    ) -> Entity:
        """Manual entity creation; an existing name resolves to that entity."""
        entity_id = self.resolver.resolve(name, entity_type, None, parent_id)
        entity = self.kb.get_entity(entity_id)
        if entity is None:
            raise RecordNotFoundError("Entity", entity_id)
        return entity

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # DESTRUCTIVE OPERATIONS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def preview_impact(self, op: DestructiveOp) -> ImpactReport:
        return self.consistency.preview_impact(op)

    def execute(self, op: DestructiveOp, confirmed: bool = False) -> ImpactReport:
        return self.consistency.execute(op, confirmed=confirmed)

    def delete_note(self, note_id: str, confirmed: bool = False) -> ImpactReport:
        return self.consistency.delete_note(note_id, confirmed)

    def delete_entity(self, entity_id: str, confirmed: bool = False) -> ImpactReport:
        return self.consistency.delete_entity(entity_id, confirmed)

    def delete_task(self, task_id: str, confirmed: bool = False) -> ImpactReport:
        return self.consistency.delete_task(task_id, confirmed)

    def delete_knowledge(self, item_id: str, confirmed: bool = False) -> ImpactReport:
        return self.consistency.delete_knowledge(item_id, confirmed)

    def merge_entities(self, source_id: str, target_id: str) -> MergeHistory | None:
        return self.consistency.merge_entities(source_id, target_id)

    def merge_notes(self, keep_id: str, drop_id: str) -> MergeHistory | None:
        return self.consistency.merge_notes(keep_id, drop_id)

    def archive_entity(self, entity_id: str) -> Entity:
        return self.consistency.archive_entity(entity_id)

    def restore_entity(self, entity_id: str) -> Entity:
        return self.consistency.restore_entity(entity_id)

    def set_entity_parent(self, entity_id: str, parent_id: str | None) -> Entity:
        return self.consistency.set_entity_parent(entity_id, parent_id)

    def children_of(self, entity_id: str) -> list[Entity]:
        return self.kb.children_of(entity_id)

    def ancestors_of(self, entity_id: str) -> list[Entity]:
        return self.kb.ancestors_of(entity_id)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # APP CONFIG
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @property
    def config(self) -> AppConfig:
        return self.kb.config

    def update_config(self, config: AppConfig) -> None:
        self.kb.set_config(config)

    def set_rule_active(self, code: RuleCode | str, active: bool) -> None:
        """Toggle every automation rule carrying the given code."""
        value = code.value if isinstance(code, RuleCode) else code
        config = self.kb.config
        matched = [r for r in config.automation_rules if r.code == value]
        if not matched:
            raise RecordNotFoundError("AutomationRule", value)
        for rule in matched:
            rule.is_active = active
        self.kb.set_config(config)
        logger.info(f"Rule {value} {'activated' if active else 'deactivated'}")

    def add_category(self, name: str) -> CategoryDefinition:
        category = CategoryDefinition(name=name.strip())
        config = self.kb.config
        config.categories.append(category)
        self.kb.set_config(config)
        return category

    def preview_category_delete(self, category_id: str) -> int:
        """Number of notes that would lose their classification."""
        return len(self.consistency.preview_impact(DeleteCategory(category_id)).note_ids)

    def delete_category(self, category_id: str, confirmed: bool = False) -> ImpactReport:
        return self.consistency.delete_category(category_id, confirmed)

    def merge_categories(self, from_id: str, to_id: str) -> int:
        return self.consistency.merge_categories(from_id, to_id)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # AUDITS & SUGGESTIONS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def dashboard(self) -> DashboardSummary:
        summary = self.audit.dashboard()
        summary.suggestions = self.refresh_suggestions()
        return summary

    def review(self) -> ReviewReport:
        return self.audit.review()

    def stale_entities(self) -> list[Entity]:
        return self.audit.stale_entities()

    def refresh_suggestions(self) -> list[Suggestion]:
        return self.suggestion_queue.refresh(self.audit.suggestions())

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        self.suggestion_queue.dismiss(suggestion_id)

    def apply_suggestion(self, suggestion_id: str) -> Suggestion:
        """
        Apply a pending suggestion and remove it from the queue.

        Raises:
            RecordNotFoundError: If the suggestion is not pending
        """
        suggestion = self.suggestion_queue.take(suggestion_id)
        if suggestion is None:
            raise RecordNotFoundError("Suggestion", suggestion_id)

        if suggestion.type == SuggestionType.CREATE_ENTITY:
            self.resolver.resolve(suggestion.data["name"], EntityType.PROJECT)
        elif suggestion.type == SuggestionType.ARCHIVE_ENTITY:
            self.consistency.archive_entity(suggestion.data["entity_id"])
        elif suggestion.type == SuggestionType.MERGE_NOTES:
            self.consistency.merge_notes(suggestion.data["keep_id"], suggestion.data["drop_id"])

        logger.info(f"Applied suggestion {suggestion.id} ({suggestion.type.value})")
        return suggestion

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # EXPORT
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def stats(self) -> dict[str, Any]:
        return self.kb.stats()

    def export_graphml(self, output_path: Path) -> Path:
        export_graphml(self.kb, output_path)
        logger.info(f"Exported graph to {output_path}")
        return output_path
