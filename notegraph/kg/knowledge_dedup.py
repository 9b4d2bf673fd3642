"""
Knowledge Deduplication — merge-vs-create decisions for knowledge articles.

A new topic matches an existing article when the number of shared content
tokens (whitespace-split, longer than 3 characters, lowercase) reaches
``min(new_token_count, 2)``, or when either topic contains the other as a
case-insensitive substring. Existing items are scanned in their natural
order and the first match wins.

The same classification is used to build the default merge plan shown to
the user and by the ingestion pipeline, so both see the same decision.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from notegraph.kg.models import KnowledgeHistory, KnowledgeItem
from notegraph.kg.normalization import content_tokens
from notegraph.kg.schemas import AnalysisResult

UPDATE_HISTORY_SUMMARY = "Content appended from new note"


def topics_match(new_topic: str, existing_topic: str) -> bool:
    """
    Decide whether two knowledge topics describe the same article.

    A topic without any content token (e.g. "API") needs zero shared tokens,
    so it matches the first article it is compared against.
    """
    new_lower = new_topic.strip().lower()
    existing_lower = existing_topic.strip().lower()
    if new_lower and existing_lower:
        if new_lower in existing_lower or existing_lower in new_lower:
            return True

    new_tokens = content_tokens(new_topic)
    shared = new_tokens & content_tokens(existing_topic)
    return len(shared) >= min(len(new_tokens), 2)


def classify(new_topic: str, existing_items: Sequence[KnowledgeItem]) -> str | None:
    """
    Find the article a new knowledge topic should update.

    Args:
        new_topic: Topic of the freshly extracted knowledge
        existing_items: Articles in their natural (stored) order

    Returns:
        Id of the first matching article, or None to create a new one
    """
    for item in existing_items:
        if topics_match(new_topic, item.topic):
            return item.id
    return None


def plan_knowledge_merges(
    result: AnalysisResult, existing_items: Sequence[KnowledgeItem]
) -> dict[int, str]:
    """
    Default merge plan for an analysis result.

    Returns:
        Mapping of knowledge index in ``result.knowledge`` to the id of the
        article it updates; indices without an entry create new articles
    """
    plan: dict[int, str] = {}
    for index, knowledge in enumerate(result.knowledge):
        match = classify(knowledge.topic, existing_items)
        if match is not None:
            plan[index] = match
    return plan


def merged_content(existing: str, addition: str, when: datetime) -> str:
    """Append new content beneath a dated separator."""
    return f"{existing}\n\n--- Update ({when.date().isoformat()}) ---\n{addition}"


def apply_update(
    item: KnowledgeItem,
    content: str,
    source_note_id: str,
    when: datetime | None = None,
) -> KnowledgeItem:
    """
    Append content to an existing article and record an ``update`` entry.

    Returns:
        A new KnowledgeItem; the input is left untouched
    """
    when = when or datetime.now(timezone.utc)
    history = [
        *item.history,
        KnowledgeHistory(
            date=when,
            source_note_id=source_note_id,
            action="update",
            summary=UPDATE_HISTORY_SUMMARY,
        ),
    ]
    return item.model_copy(
        update={
            "content": merged_content(item.content, content, when),
            "history": history,
            "last_updated": when,
        },
        deep=True,
    )


def new_article(
    topic: str,
    content: str,
    source_note_id: str,
    tags: Sequence[str] = (),
    related_entity_ids: Sequence[str] = (),
    when: datetime | None = None,
) -> KnowledgeItem:
    """Create an article seeded with a single ``create`` history entry."""
    when = when or datetime.now(timezone.utc)
    return KnowledgeItem(
        topic=topic,
        content=content,
        tags=list(tags),
        source_note_id=source_note_id,
        related_entity_ids=list(related_entity_ids),
        history=[KnowledgeHistory(date=when, source_note_id=source_note_id, action="create")],
        last_updated=when,
    )
