"""
Extraction schemas — what the external extractor returns.

These Pydantic models define the structure of an analysis result. They are
an intermediate representation between the extractor's JSON output and the
stored records in models.py.

Key distinction from models.py:
- schemas.py: Extraction output (name-based references, no IDs)
- models.py: Storage models (ID-based, with timestamps and provenance)

The extractor is an LLM and may return slightly malformed data, so the
validators here coerce rather than reject wherever a safe default exists.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from notegraph.kg.models import EntityType, TaskPriority


def _none_as_empty_list(value: Any) -> Any:
    return [] if value is None else value


class ExtractedEntity(BaseModel):
    """
    An entity extracted from a note.

    Attributes:
        name: Entity name as written in the note
        type: Person, Company, Project or Other (unknown values become Other)
        contact_info: Email or other contact detail
        role: Role or job title
        associated_with: Name of the Company/Project this entity belongs to
    """

    name: str = ""
    type: EntityType = EntityType.OTHER
    contact_info: str | None = None
    role: str | None = None
    associated_with: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_as_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if isinstance(value, EntityType):
            return value
        for member in EntityType:
            if isinstance(value, str) and value.strip().lower() == member.value.lower():
                return member
        return EntityType.OTHER

    @field_validator("contact_info", "role", "associated_with", mode="after")
    @classmethod
    def _blank_as_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class ExtractedTask(BaseModel):
    """A task extracted from a note."""

    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    date: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Any:
        if isinstance(value, TaskPriority):
            return value
        for member in TaskPriority:
            if isinstance(value, str) and value.strip().lower() == member.value.lower():
                return member
        return TaskPriority.MEDIUM


class ExtractedKnowledge(BaseModel):
    """A knowledge fragment (process, decision, how-to) extracted from a note."""

    topic: str
    content: str = ""


class AnalysisResult(BaseModel):
    """
    Complete extraction result for one note.

    This is the top-level structure returned by the extractor, containing
    everything one ingestion commit processes as a batch.

    Attributes:
        summary: Short title for the note
        category: Category name chosen from AppConfig
        is_sensitive: Whether the content holds sensitive data
        entities: Extracted entities
        tasks: Extracted tasks
        knowledge: Extracted knowledge fragments
        keywords: Keywords, used as knowledge tags and for related-note lookup
    """

    summary: str = ""
    category: str = ""
    is_sensitive: bool = Field(default=False, alias="isSensitive")
    entities: list[ExtractedEntity] = Field(default_factory=list)
    tasks: list[ExtractedTask] = Field(default_factory=list)
    knowledge: list[ExtractedKnowledge] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator("entities", "tasks", "knowledge", "keywords", mode="before")
    @classmethod
    def _missing_lists(cls, value: Any) -> Any:
        return _none_as_empty_list(value)

    @field_validator("is_sensitive", mode="before")
    @classmethod
    def _missing_flag(cls, value: Any) -> Any:
        return False if value is None else value

    def filtered(
        self,
        include_entities: bool = True,
        include_tasks: bool = True,
        include_knowledge: bool = True,
    ) -> AnalysisResult:
        """
        Apply the user's inclusion choices.

        Returns:
            A copy with excluded sections emptied
        """
        return self.model_copy(
            update={
                "entities": list(self.entities) if include_entities else [],
                "tasks": list(self.tasks) if include_tasks else [],
                "knowledge": list(self.knowledge) if include_knowledge else [],
            }
        )
