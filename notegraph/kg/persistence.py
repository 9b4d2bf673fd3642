"""
Knowledge base persistence: load, save, export.

Each collection is stored under its own key in a KeyValueStore:
- notes, entities, tasks, knowledge: lists of records (camelCase JSON)
- config: the AppConfig document
- merge_history: list of MergeHistory records

Design Decisions:
- Absent keys and load failures default to an empty collection (or the
  built-in AppConfig), never to an error
- Individual invalid records are skipped with a warning so one bad record
  cannot make a whole collection unreadable
- GraphML export via NetworkX for interoperability (Gephi, yEd, etc.)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypeVar

import networkx as nx  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from notegraph.core.storage import KeyValueStore
from notegraph.kg.domain import AppConfig, default_app_config
from notegraph.kg.knowledge_base import (
    COLLECTIONS,
    CONFIG,
    ENTITIES,
    KNOWLEDGE,
    MERGE_HISTORY,
    NOTES,
    TASKS,
    KnowledgeBase,
)
from notegraph.kg.models import Entity, KnowledgeItem, MergeHistory, Note, Task
from notegraph.models.errors import PersistenceError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _load_records(
    store: KeyValueStore, key: str, model: type[ModelT]
) -> list[ModelT]:
    """Load and validate a list collection, skipping invalid entries."""
    try:
        raw = store.load(key)
    except Exception as e:
        logger.warning(f"Failed to load '{key}', using empty collection: {e}")
        return []

    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"Collection '{key}' is not a list, using empty collection")
        return []

    records: list[ModelT] = []
    for index, item in enumerate(raw):
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid record {index} in '{key}': {e}")
    return records


def _load_config(store: KeyValueStore) -> AppConfig:
    try:
        raw = store.load(CONFIG)
    except Exception as e:
        logger.warning(f"Failed to load config, using defaults: {e}")
        return default_app_config()

    if raw is None:
        return default_app_config()
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Invalid config document, using defaults: {e}")
        return default_app_config()


def load_knowledge_base(store: KeyValueStore) -> KnowledgeBase:
    """
    Load a knowledge base from a key-value store.

    Args:
        store: Persistence collaborator

    Returns:
        Reconstructed KnowledgeBase (empty collections where keys are absent)
    """
    kb = KnowledgeBase(config=_load_config(store))
    kb.put_notes(_load_records(store, NOTES, Note))
    kb.put_entities(_load_records(store, ENTITIES, Entity))
    kb.put_tasks(_load_records(store, TASKS, Task))
    kb.put_knowledge_items(_load_records(store, KNOWLEDGE, KnowledgeItem))
    for record in _load_records(store, MERGE_HISTORY, MergeHistory):
        kb.record_merge(record)

    stats = kb.stats()
    logger.info(
        f"Loaded knowledge base: {stats['note_count']} notes, "
        f"{stats['entity_count']} entities, {stats['task_count']} tasks, "
        f"{stats['knowledge_count']} knowledge items"
    )
    return kb


def serialize_collection(kb: KnowledgeBase, collection: str) -> Any:
    """Return the JSON document for one collection."""
    if collection == NOTES:
        return [n.to_record() for n in kb.list_notes()]
    if collection == ENTITIES:
        return [e.to_record() for e in kb.list_entities()]
    if collection == TASKS:
        return [t.to_record() for t in kb.list_tasks()]
    if collection == KNOWLEDGE:
        return [k.to_record() for k in kb.list_knowledge()]
    if collection == CONFIG:
        return kb.config.to_record()
    if collection == MERGE_HISTORY:
        return [m.to_record() for m in kb.merge_history]
    raise ValueError(f"Unknown collection: {collection}")


def save_collection(kb: KnowledgeBase, store: KeyValueStore, collection: str) -> None:
    """
    Save one collection.

    Raises:
        PersistenceError: If the store rejects the write
    """
    try:
        store.save(collection, serialize_collection(kb, collection))
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to save '{collection}': {e}")
        raise PersistenceError(
            f"Could not save {collection}", detail=str(e)
        ) from e


def save_knowledge_base(kb: KnowledgeBase, store: KeyValueStore) -> None:
    """Save every collection of the knowledge base."""
    for collection in COLLECTIONS:
        save_collection(kb, store, collection)


class StorePersister:
    """
    Knowledge base listener that flushes each changed collection.

    Usage:
        kb.subscribe(StorePersister(kb, store))
    """

    def __init__(self, kb: KnowledgeBase, store: KeyValueStore) -> None:
        self._kb = kb
        self._store = store

    def __call__(self, collection: str) -> None:
        save_collection(self._kb, self._store, collection)


def export_graphml(kb: KnowledgeBase, output_path: Path) -> None:
    """
    Export the record graph to GraphML.

    Every note, entity, task and knowledge item becomes a node with a
    ``kind`` attribute; id references become edges with a ``relation``
    attribute. References to missing records are not exported.

    Args:
        kb: KnowledgeBase to export
        output_path: File path for the GraphML output
    """
    G: nx.DiGraph = nx.DiGraph()

    for note in kb.list_notes():
        G.add_node(note.id, kind="note", label=note.summary, category=note.category)
    for entity in kb.list_entities():
        G.add_node(
            entity.id,
            kind="entity",
            label=entity.name,
            entity_type=entity.type.value,
            status=entity.status.value,
        )
    for task in kb.list_tasks():
        G.add_node(task.id, kind="task", label=task.description, completed=task.completed)
    for item in kb.list_knowledge():
        G.add_node(item.id, kind="knowledge", label=item.topic)

    def _link(source: str, target: str | None, relation: str) -> None:
        if target and target in G:
            G.add_edge(source, target, relation=relation)

    for note in kb.list_notes():
        for entity_id in note.related_entity_ids:
            _link(note.id, entity_id, "mentions")
        for other_id in note.related_note_ids:
            _link(note.id, other_id, "linked_to")
    for entity in kb.list_entities():
        _link(entity.id, entity.parent_id, "belongs_to")
    for task in kb.list_tasks():
        _link(task.id, task.source_note_id, "extracted_from")
        _link(task.id, task.related_entity_id, "context")
    for item in kb.list_knowledge():
        _link(item.id, item.source_note_id, "extracted_from")
        for entity_id in item.related_entity_ids:
            _link(item.id, entity_id, "about")

    nx.write_graphml(G, str(output_path))
