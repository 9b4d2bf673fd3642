"""
Record graph data models: Note, Entity, Task, KnowledgeItem, MergeHistory.

These store the ACTUAL graph data owned by the KnowledgeBase. All
cross-references are plain ids (weak references): a referenced record may
have been deleted, so readers must treat a failed lookup as "unknown".

Records serialise with camelCase aliases (``relatedEntityIds``,
``createdAt``) so collections written by earlier versions of the app load
unchanged; Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _generate_id() -> str:
    """Generate a 12-character hex ID from UUID4."""
    return uuid4().hex[:12]


def _utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def _dedupe(ids: list[str]) -> list[str]:
    """Drop repeated ids, keeping first occurrences in order."""
    return list(dict.fromkeys(ids))


class EntityType(str, Enum):
    """Kinds of records in the relationship directory."""

    PERSON = "Person"
    COMPANY = "Company"
    PROJECT = "Project"
    OTHER = "Other"


# Entity types that can anchor a task or note as its context
CONTEXT_TYPES = frozenset({EntityType.COMPANY, EntityType.PROJECT})


class EntityStatus(str, Enum):
    """Lifecycle status of an entity."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    INCOMPLETE = "incomplete"


class TaskPriority(str, Enum):
    """Task priority levels."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Record(BaseModel):
    """Base for persisted records: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """Serialise for the key-value store (aliases, JSON types, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Note(Record):
    """
    A captured note and the ids of everything extracted from it.

    Attributes:
        id: Unique 12-character identifier (immutable)
        content: Raw note text as entered
        summary: Short title produced by the extractor
        category: Category name from AppConfig
        is_sensitive: Whether the note holds credentials or personal data
        created_at: Creation timestamp
        related_entity_ids: Entities mentioned (set semantics, order irrelevant)
        related_note_ids: Notes cross-linked to this one
        extracted_task_ids: Tasks created from this note
        extracted_knowledge_ids: Knowledge items created or updated by this note
    """

    id: str = Field(default_factory=_generate_id)
    content: str = ""
    summary: str = ""
    category: str = ""
    is_sensitive: bool = False
    created_at: datetime = Field(default_factory=_utc_now)
    related_entity_ids: list[str] = Field(default_factory=list)
    related_note_ids: list[str] = Field(default_factory=list)
    extracted_task_ids: list[str] = Field(default_factory=list)
    extracted_knowledge_ids: list[str] = Field(default_factory=list)

    @field_validator("related_entity_ids", mode="after")
    @classmethod
    def _unique_entities(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    @field_validator("created_at", mode="after")
    @classmethod
    def _aware_created_at(cls, value: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class Entity(Record):
    """
    A Person, Company, Project or Other record in the directory.

    Attributes:
        id: Unique 12-character identifier
        name: Display name, also the resolution key (case-insensitive)
        type: Entity kind
        email: Contact address
        phone: Contact phone
        role: Role or job title
        parent_id: Owning Company/Project; must exist and must not form a cycle
        notes: Ids of notes that mention this entity (weak back-references)
        status: active, archived or incomplete
    """

    id: str = Field(default_factory=_generate_id)
    name: str
    type: EntityType = EntityType.OTHER
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    parent_id: str | None = None
    notes: list[str] = Field(default_factory=list)
    status: EntityStatus = EntityStatus.ACTIVE


class Task(Record):
    """
    An action item extracted from a note.

    Attributes:
        id: Unique 12-character identifier
        description: What needs doing
        priority: High, Medium or Low
        suggested_date: Free-form date proposed by the extractor
        completed: Completion flag
        source_note_id: Originating note (may dangle after note deletion)
        related_entity_id: Context entity (Company or Project), if any
    """

    id: str = Field(default_factory=_generate_id)
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    suggested_date: str | None = None
    completed: bool = False
    source_note_id: str = ""
    related_entity_id: str | None = None


class KnowledgeHistory(Record):
    """One entry of a knowledge item's append-only history."""

    date: datetime = Field(default_factory=_utc_now)
    source_note_id: str
    action: Literal["create", "update"]
    summary: str | None = None


class KnowledgeItem(Record):
    """
    A knowledge article accumulated from one or more notes.

    Attributes:
        id: Unique 12-character identifier
        topic: Article title, used for deduplication
        content: Article body; updates are appended beneath a dated separator
        tags: Keywords of the originating extraction
        source_note_id: Note that created the article
        related_entity_ids: Entities the article is about
        history: Append-only create/update trail
        last_updated: Timestamp of the latest create or update
    """

    id: str = Field(default_factory=_generate_id)
    topic: str
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    source_note_id: str = ""
    related_entity_ids: list[str] = Field(default_factory=list)
    history: list[KnowledgeHistory] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utc_now)

    @field_validator("related_entity_ids", mode="before")
    @classmethod
    def _missing_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("related_entity_ids", mode="after")
    @classmethod
    def _unique_entities(cls, value: list[str]) -> list[str]:
        return _dedupe(value)


class MergeHistory(Record):
    """
    Audit trail record for a completed entity or note merge.

    Merges are not reversible; this record only documents what happened.

    Attributes:
        id: Unique 12-character identifier
        kind: "entity" or "note"
        source_id: Record that was absorbed (no longer exists)
        source_label: Name or summary of the absorbed record (for display)
        target_id: Record that survived
        references_rewritten: Number of records whose references changed
        merged_at: When the merge happened
    """

    id: str = Field(default_factory=_generate_id)
    kind: Literal["entity", "note"]
    source_id: str
    source_label: str = ""
    target_id: str
    references_rewritten: int = 0
    merged_at: datetime = Field(default_factory=_utc_now)
