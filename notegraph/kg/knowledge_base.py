"""
KnowledgeBase — the record store.

Owns every Note, Entity, Task and KnowledgeItem plus the AppConfig and the
merge history. All mutations go through methods on this class; after each
mutation registered listeners are told which collection changed, which is
how persistence and derived views stay current.

Design Decisions:
- In-memory ordered dicts keyed by id; insertion order is the natural order
  used by "first match wins" scans
- Reads return copies (snapshots); callers mutate through the store only
- Lookups by id return None for missing records, never raise
- The entity parent hierarchy is exposed as a NetworkX DiGraph
  (child -> parent) for cycle and ancestor queries
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

import networkx as nx  # type: ignore[import-untyped]

from notegraph.kg.domain import AppConfig, default_app_config
from notegraph.kg.models import Entity, KnowledgeItem, MergeHistory, Note, Task
from notegraph.kg.normalization import name_key

logger = logging.getLogger(__name__)

NOTES = "notes"
ENTITIES = "entities"
TASKS = "tasks"
KNOWLEDGE = "knowledge"
CONFIG = "config"
MERGE_HISTORY = "merge_history"

COLLECTIONS = (NOTES, ENTITIES, TASKS, KNOWLEDGE, CONFIG, MERGE_HISTORY)

Listener = Callable[[str], None]


class KnowledgeBase:
    """
    In-memory record store with change notification.

    Usage:
        kb = KnowledgeBase()
        kb.subscribe(lambda collection: print("changed", collection))
        kb.add_entity(Entity(name="Acme", type=EntityType.COMPANY))
        kb.get_entity_by_name("ACME")

    Attributes:
        config: AppConfig consumed by the rule gate and the extractor
        merge_history: Audit trail of completed merges
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self._notes: dict[str, Note] = {}
        self._entities: dict[str, Entity] = {}
        self._tasks: dict[str, Task] = {}
        self._knowledge: dict[str, KnowledgeItem] = {}
        self._config: AppConfig = config or default_app_config()
        self._merge_history: list[MergeHistory] = []
        self._listeners: list[Listener] = []

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # OBSERVATION
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked with the collection name after each mutation."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self, *collections: str) -> None:
        for collection in collections:
            for listener in list(self._listeners):
                listener(collection)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # CONFIG & HISTORY
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    @property
    def config(self) -> AppConfig:
        return self._config.model_copy(deep=True)

    def set_config(self, config: AppConfig) -> None:
        self._config = config.model_copy(deep=True)
        self._changed(CONFIG)

    @property
    def merge_history(self) -> list[MergeHistory]:
        return [m.model_copy() for m in self._merge_history]

    def record_merge(self, record: MergeHistory) -> None:
        self._merge_history.append(record.model_copy())
        self._changed(MERGE_HISTORY)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # NOTES
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def get_note(self, note_id: str | None) -> Note | None:
        """
        Get a note by its ID.

        Returns None for unknown or dangling ids (e.g. a task whose source
        note was deleted); callers treat that as unknown provenance.
        """
        if note_id is None or note_id not in self._notes:
            return None
        return self._notes[note_id].model_copy(deep=True)

    def list_notes(self) -> list[Note]:
        return [n.model_copy(deep=True) for n in self._notes.values()]

    def put_note(self, note: Note) -> Note:
        """Insert or replace a note."""
        self._notes[note.id] = note.model_copy(deep=True)
        self._changed(NOTES)
        return note

    def put_notes(self, notes: Iterable[Note]) -> None:
        """Replace several notes with a single change notification."""
        for note in notes:
            self._notes[note.id] = note.model_copy(deep=True)
        self._changed(NOTES)

    def remove_note(self, note_id: str) -> Note | None:
        note = self._notes.pop(note_id, None)
        if note is not None:
            self._changed(NOTES)
        return note

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # ENTITIES
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def get_entity(self, entity_id: str | None) -> Entity | None:
        if entity_id is None or entity_id not in self._entities:
            return None
        return self._entities[entity_id].model_copy(deep=True)

    def get_entity_by_name(self, name: str) -> Entity | None:
        """
        Find an entity by case-insensitive exact name.

        Linear scan in insertion order; the first match wins. Kept behind
        this method so an index can replace the scan without touching callers.
        """
        key = name_key(name)
        for entity in self._entities.values():
            if name_key(entity.name) == key:
                return entity.model_copy(deep=True)
        return None

    def list_entities(self) -> list[Entity]:
        return [e.model_copy(deep=True) for e in self._entities.values()]

    def put_entity(self, entity: Entity) -> Entity:
        self._entities[entity.id] = entity.model_copy(deep=True)
        self._changed(ENTITIES)
        return entity

    def put_entities(self, entities: Iterable[Entity]) -> None:
        for entity in entities:
            self._entities[entity.id] = entity.model_copy(deep=True)
        self._changed(ENTITIES)

    def remove_entity(self, entity_id: str) -> Entity | None:
        entity = self._entities.pop(entity_id, None)
        if entity is not None:
            self._changed(ENTITIES)
        return entity

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # TASKS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def get_task(self, task_id: str | None) -> Task | None:
        if task_id is None or task_id not in self._tasks:
            return None
        return self._tasks[task_id].model_copy(deep=True)

    def list_tasks(self) -> list[Task]:
        return [t.model_copy(deep=True) for t in self._tasks.values()]

    def put_task(self, task: Task) -> Task:
        self._tasks[task.id] = task.model_copy(deep=True)
        self._changed(TASKS)
        return task

    def put_tasks(self, tasks: Iterable[Task]) -> None:
        for task in tasks:
            self._tasks[task.id] = task.model_copy(deep=True)
        self._changed(TASKS)

    def remove_task(self, task_id: str) -> Task | None:
        task = self._tasks.pop(task_id, None)
        if task is not None:
            self._changed(TASKS)
        return task

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # KNOWLEDGE
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def get_knowledge(self, item_id: str | None) -> KnowledgeItem | None:
        if item_id is None or item_id not in self._knowledge:
            return None
        return self._knowledge[item_id].model_copy(deep=True)

    def list_knowledge(self) -> list[KnowledgeItem]:
        return [k.model_copy(deep=True) for k in self._knowledge.values()]

    def put_knowledge(self, item: KnowledgeItem) -> KnowledgeItem:
        self._knowledge[item.id] = item.model_copy(deep=True)
        self._changed(KNOWLEDGE)
        return item

    def put_knowledge_items(self, items: Iterable[KnowledgeItem]) -> None:
        for item in items:
            self._knowledge[item.id] = item.model_copy(deep=True)
        self._changed(KNOWLEDGE)

    def remove_knowledge(self, item_id: str) -> KnowledgeItem | None:
        item = self._knowledge.pop(item_id, None)
        if item is not None:
            self._changed(KNOWLEDGE)
        return item

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # HIERARCHY
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def parent_graph(self) -> nx.DiGraph:
        """
        Build the entity hierarchy as a directed graph (child -> parent).

        Parent ids that point to missing entities are left out.
        """
        graph = nx.DiGraph()
        graph.add_nodes_from(self._entities)
        for entity in self._entities.values():
            if entity.parent_id and entity.parent_id in self._entities:
                graph.add_edge(entity.id, entity.parent_id)
        return graph

    def would_create_cycle(self, entity_id: str, parent_id: str | None) -> bool:
        """
        Check whether setting ``entity_id.parent_id = parent_id`` forms a cycle.

        Self-parenting counts as a cycle.
        """
        if parent_id is None:
            return False
        if parent_id == entity_id:
            return True
        graph = self.parent_graph()
        if entity_id not in graph or parent_id not in graph:
            return False
        # A cycle appears iff entity_id is already an ancestor of parent_id
        return entity_id in nx.descendants(graph, parent_id)

    def ancestors_of(self, entity_id: str) -> list[Entity]:
        """Parent chain of an entity, nearest first."""
        chain: list[Entity] = []
        seen = {entity_id}
        current = self._entities.get(entity_id)
        while current is not None and current.parent_id:
            if current.parent_id in seen:
                break
            parent = self._entities.get(current.parent_id)
            if parent is None:
                break
            chain.append(parent.model_copy(deep=True))
            seen.add(parent.id)
            current = parent
        return chain

    def children_of(self, entity_id: str) -> list[Entity]:
        return [
            e.model_copy(deep=True)
            for e in self._entities.values()
            if e.parent_id == entity_id
        ]

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # STATISTICS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def stats(self) -> dict[str, Any]:
        """
        Get record counts.

        Returns:
            Dictionary with note_count, entity_count, task_count,
            knowledge_count, open_task_count and entity_types breakdown
        """
        entity_types: dict[str, int] = {}
        for entity in self._entities.values():
            entity_types[entity.type.value] = entity_types.get(entity.type.value, 0) + 1
        return {
            "note_count": len(self._notes),
            "entity_count": len(self._entities),
            "task_count": len(self._tasks),
            "open_task_count": sum(1 for t in self._tasks.values() if not t.completed),
            "knowledge_count": len(self._knowledge),
            "entity_types": entity_types,
        }
