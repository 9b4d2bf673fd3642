"""
Tests for extraction schemas and their coercion of loosely shaped output.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from notegraph.kg.models import EntityType, TaskPriority
from notegraph.kg.schemas import AnalysisResult, ExtractedEntity, ExtractedTask


class TestExtractedEntity:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Company", EntityType.COMPANY),
            ("person", EntityType.PERSON),
            (" PROJECT ", EntityType.PROJECT),
            ("Vendor", EntityType.OTHER),
            (None, EntityType.OTHER),
        ],
    )
    def test_type_coercion(self, raw, expected) -> None:
        assert ExtractedEntity(name="X", type=raw).type == expected

    def test_blank_optional_fields_become_none(self) -> None:
        entity = ExtractedEntity(name="Jane", role="  ", associated_with=" Acme ")

        assert entity.role is None
        assert entity.associated_with == "Acme"

    def test_null_name_becomes_empty(self) -> None:
        assert ExtractedEntity.model_validate({"name": None}).name == ""


class TestExtractedTask:
    def test_priority_coercion(self) -> None:
        assert ExtractedTask(description="x", priority="high").priority == TaskPriority.HIGH
        assert ExtractedTask(description="x", priority="urgent").priority == TaskPriority.MEDIUM

    def test_description_required(self) -> None:
        with pytest.raises(ValidationError):
            ExtractedTask.model_validate({"priority": "High"})


class TestAnalysisResult:
    def test_wire_shape(self) -> None:
        result = AnalysisResult.model_validate(
            {
                "summary": "S",
                "category": "Idea",
                "isSensitive": True,
                "entities": None,
                "tasks": None,
                "knowledge": [{"topic": "T"}],
                "keywords": None,
            }
        )

        assert result.is_sensitive is True
        assert result.entities == []
        assert result.tasks == []
        assert result.keywords == []
        assert result.knowledge[0].content == ""

    def test_missing_sensitive_flag(self) -> None:
        assert AnalysisResult.model_validate({"isSensitive": None}).is_sensitive is False

    def test_filtered(self, acme_result: AnalysisResult) -> None:
        filtered = acme_result.filtered(include_entities=False, include_tasks=True, include_knowledge=False)

        assert filtered.entities == []
        assert len(filtered.tasks) == 1
        assert len(acme_result.entities) == 2
