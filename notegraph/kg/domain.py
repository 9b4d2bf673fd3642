"""
Application configuration data consumed by the engine.

This module defines the user-editable configuration (AppConfig):
- CategoryDefinition: note categories with synonyms for the extractor
- NoteTypeDefinition: note templates shown as quick actions
- AutomationRule: boolean rules, only ``code`` is machine-checked

The configuration is data, persisted under the ``config`` key. It is not
to be confused with process settings (see notegraph.core.config).
"""

from __future__ import annotations

from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from notegraph.kg.models import Record


class RuleCode(str, Enum):
    """Machine-interpreted automation rule codes."""

    TASK_REQUIRES_CONTEXT = "TASK_REQUIRES_CONTEXT"
    ENTITY_VAGUE_INCOMPLETE = "ENTITY_VAGUE_INCOMPLETE"


class CategoryDefinition(Record):
    """
    A note category.

    Attributes:
        id: Unique identifier
        name: Display name, stored on notes by value
        parent_id: Parent category for sub-categories
        color: Display color token
        synonyms: Alternative names the extractor should map to this category
    """

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    parent_id: str | None = None
    color: str = "bg-slate-500"
    synonyms: list[str] = Field(default_factory=list)


class NoteTypeField(Record):
    """A custom field of a note type."""

    id: str
    name: str
    type: Literal["text", "date", "boolean", "number"] = "text"
    required: bool = False


class NoteTypeDefinition(Record):
    """A note template (e.g. Meeting, Bug, Credential)."""

    id: str
    name: str
    fields: list[NoteTypeField] = Field(default_factory=list)
    icon_name: str | None = None


class AutomationRule(Record):
    """
    A configurable rule.

    ``trigger``, ``condition`` and ``action`` are descriptions for humans.
    Only rules whose ``code`` is a known RuleCode are enforced; the rest are
    display-only.
    """

    id: str
    trigger: str
    condition: str
    action: str
    is_active: bool = True
    code: str


class AppConfig(Record):
    """User-editable configuration consumed by the extractor and the engine."""

    categories: list[CategoryDefinition] = Field(default_factory=list)
    note_types: list[NoteTypeDefinition] = Field(default_factory=list)
    quick_actions: list[str] = Field(default_factory=list)
    automation_rules: list[AutomationRule] = Field(default_factory=list)

    def get_rule(self, code: RuleCode | str) -> AutomationRule | None:
        """Return the first rule carrying the given code."""
        value = code.value if isinstance(code, RuleCode) else code
        for rule in self.automation_rules:
            if rule.code == value:
                return rule
        return None

    def is_rule_active(self, code: RuleCode | str) -> bool:
        """
        Check whether a rule is enforced.

        A rule missing from the configuration counts as active, so a config
        saved before the rule existed still gets the protective behaviour.
        """
        rule = self.get_rule(code)
        return True if rule is None else rule.is_active

    def get_category(self, category_id: str) -> CategoryDefinition | None:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""

    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


class Notification(BaseModel):
    """A non-blocking message for the user (toast)."""

    level: NotificationLevel
    message: str


DEFAULT_APP_CONFIG = AppConfig(
    categories=[
        CategoryDefinition(
            id="1", name="Meeting", color="bg-indigo-600", synonyms=["Call", "Sync"]
        ),
        CategoryDefinition(
            id="2", name="Idea", color="bg-amber-500", synonyms=["Inspiration", "Concept"]
        ),
        CategoryDefinition(
            id="3", name="Project", color="bg-purple-600", synonyms=["Plan", "Strategy"]
        ),
        CategoryDefinition(
            id="4", name="CRM", color="bg-orange-500", synonyms=["Client", "Sale", "Lead"]
        ),
        CategoryDefinition(
            id="5", name="Personal", color="bg-green-500", synonyms=["Home", "Health"]
        ),
    ],
    note_types=[
        NoteTypeDefinition(id="t1", name="Meeting"),
        NoteTypeDefinition(id="t2", name="Bug"),
        NoteTypeDefinition(id="t3", name="Credential"),
    ],
    automation_rules=[
        AutomationRule(
            id="r1",
            trigger="When saving a task",
            condition="It has no context (Company/Project)",
            action="Block the save",
            is_active=True,
            code=RuleCode.TASK_REQUIRES_CONTEXT.value,
        ),
        AutomationRule(
            id="r2",
            trigger="When creating an entity",
            condition="The name is generic or empty",
            action='Mark as "incomplete"',
            is_active=True,
            code=RuleCode.ENTITY_VAGUE_INCOMPLETE.value,
        ),
    ],
)


def default_app_config() -> AppConfig:
    """Return a fresh copy of the built-in configuration."""
    return DEFAULT_APP_CONFIG.model_copy(deep=True)
