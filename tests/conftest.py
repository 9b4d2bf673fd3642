"""
Pytest configuration and fixtures for engine tests.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest

from notegraph.core.config import Settings, get_settings
from notegraph.core.storage import InMemoryStore
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityType, Note
from notegraph.kg.schemas import AnalysisResult
from notegraph.services.workspace_service import WorkspaceService

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Keep cached settings from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return NOW


@pytest.fixture
def clock():
    """Clock returning the fixed reference time."""
    return lambda: NOW


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def kb() -> KnowledgeBase:
    """Empty knowledge base with the default AppConfig."""
    return KnowledgeBase()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def workspace(store: InMemoryStore, settings: Settings, clock) -> WorkspaceService:
    """Workspace over an in-memory store with a fixed clock."""
    return WorkspaceService(store, settings=settings, clock=clock)


def _make_note(
    note_id: str,
    content: str = "",
    summary: str = "",
    entity_ids: list[str] | None = None,
    created_at: datetime = NOW,
    category: str = "Meeting",
) -> Note:
    """Build a note with the fields tests care about."""
    return Note(
        id=note_id,
        content=content,
        summary=summary,
        category=category,
        created_at=created_at,
        related_entity_ids=entity_ids or [],
    )


def _make_entity(
    entity_id: str,
    name: str,
    entity_type: EntityType = EntityType.COMPANY,
    parent_id: str | None = None,
) -> Entity:
    return Entity(id=entity_id, name=name, type=entity_type, parent_id=parent_id)


@pytest.fixture
def note_factory():
    """Factory building notes: note_factory(id, content, summary, entity_ids, created_at)."""
    return _make_note


@pytest.fixture
def entity_factory():
    """Factory building entities: entity_factory(id, name, type, parent_id)."""
    return _make_entity


@pytest.fixture
def acme_result() -> AnalysisResult:
    """Extraction of a note about Jane from Acme with one follow-up task."""
    return AnalysisResult.model_validate(
        {
            "summary": "Call with Jane from Acme",
            "category": "CRM",
            "isSensitive": False,
            "entities": [
                {
                    "name": "Jane",
                    "type": "Person",
                    "role": "CTO",
                    "contact_info": "jane@acme.com",
                    "associated_with": "Acme",
                },
                {"name": "Acme", "type": "Company"},
            ],
            "tasks": [{"description": "Follow up with Acme", "priority": "High"}],
            "knowledge": [],
            "keywords": ["Acme", "renewal"],
        }
    )


@pytest.fixture
def days_ago():
    """Factory for timestamps relative to the fixed reference time."""
    return lambda days: NOW - timedelta(days=days)
