"""
Tests for the analysis session around the external extractor.

Tests cover:
- Successful analysis with related notes and a default merge plan
- Extraction failures (raised, empty, malformed) and input preservation
- In-flight gating of concurrent analyses
- Dismissal, including results that arrive after dismissal
- Confirmation with inclusion choices
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from notegraph.kg.domain import AppConfig
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import KnowledgeItem
from notegraph.models.errors import AnalysisInProgressError, ExtractionError, NoteGraphError
from notegraph.services.analysis_service import (
    IMAGE_ATTACHED_SUFFIX,
    AnalysisSession,
    ImageAttachment,
)
from notegraph.services.ingestion_service import IngestionPipeline

RESULT_JSON: dict[str, Any] = {
    "summary": "Deploy notes",
    "category": "Project",
    "isSensitive": False,
    "entities": [{"name": "Acme", "type": "Company"}],
    "tasks": [{"description": "Write runbook", "priority": "Medium"}],
    "knowledge": [{"topic": "Pipeline Setup Steps", "content": "Add CD stage"}],
    "keywords": ["pipeline", "deploy"],
}


class FakeExtractor:
    """Records calls and returns a canned response (or raises)."""

    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = RESULT_JSON if response is None else response
        self.error = error
        self.calls: list[tuple[str, ImageAttachment | None, AppConfig]] = []
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self, text: str, image: ImageAttachment | None, config: AppConfig) -> Any:
        self.calls.append((text, image, config))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.response


def _session(kb: KnowledgeBase, extractor: FakeExtractor, settings, clock) -> AnalysisSession:
    return AnalysisSession(kb, extractor, IngestionPipeline(kb, clock=clock), settings)


class TestAnalyze:
    async def test_pending_analysis_prepared(self, kb, settings, clock, note_factory) -> None:
        kb.put_note(note_factory("n1", "How we deploy things", "Pipeline retro"))
        kb.put_knowledge(KnowledgeItem(id="k1", topic="Deploy Pipeline Setup"))
        extractor = FakeExtractor()
        session = _session(kb, extractor, settings, clock)

        pending = await session.analyze("We should deploy weekly")

        assert pending.result.summary == "Deploy notes"
        assert pending.input_text == "We should deploy weekly"
        assert [n.id for n in pending.related_notes] == ["n1"]
        assert pending.knowledge_merges == {0: "k1"}
        assert session.pending is pending
        assert not session.is_analyzing

    async def test_extractor_receives_config(self, kb, settings, clock) -> None:
        extractor = FakeExtractor()
        session = _session(kb, extractor, settings, clock)

        await session.analyze("text")

        [(text, image, config)] = extractor.calls
        assert text == "text"
        assert image is None
        assert config == kb.config

    async def test_image_suffix(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(), settings, clock)
        image = ImageAttachment(data="aGVsbG8=", mimeType="image/png")

        pending = await session.analyze("whiteboard", image)

        assert pending.input_text == "whiteboard" + IMAGE_ATTACHED_SUFFIX


class TestExtractionFailures:
    async def test_extractor_exception(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(error=RuntimeError("network down")), settings, clock)

        with pytest.raises(ExtractionError) as exc_info:
            await session.analyze("keep me")

        assert exc_info.value.detail == "network down"
        assert session.input_text == "keep me"
        assert session.pending is None
        assert not session.is_analyzing
        assert kb.list_notes() == []

    @pytest.mark.parametrize("response", [{}, ""])
    async def test_empty_response(self, kb, settings, clock, response) -> None:
        session = _session(kb, FakeExtractor(response=response), settings, clock)

        with pytest.raises(ExtractionError):
            await session.analyze("text")

    async def test_malformed_response(self, kb, settings, clock) -> None:
        bad = {"summary": "x", "tasks": [{"priority": "High"}]}
        session = _session(kb, FakeExtractor(response=bad), settings, clock)

        with pytest.raises(ExtractionError):
            await session.analyze("text")
        assert kb.list_entities() == []


class TestConcurrency:
    async def test_second_analysis_rejected_while_in_flight(self, kb, settings, clock) -> None:
        extractor = FakeExtractor()
        extractor.release.clear()
        session = _session(kb, extractor, settings, clock)

        first = asyncio.create_task(session.analyze("first"))
        await asyncio.sleep(0)
        assert session.is_analyzing

        with pytest.raises(AnalysisInProgressError):
            await session.analyze("second")

        extractor.release.set()
        assert (await first) is not None
        assert not session.is_analyzing

    async def test_late_result_after_dismissal_discarded(self, kb, settings, clock) -> None:
        extractor = FakeExtractor()
        extractor.release.clear()
        session = _session(kb, extractor, settings, clock)

        in_flight = asyncio.create_task(session.analyze("text"))
        await asyncio.sleep(0)
        session.dismiss()
        extractor.release.set()

        assert await in_flight is None
        assert session.pending is None


class TestConfirm:
    async def test_confirm_commits_with_input_text(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(), settings, clock)
        await session.analyze("We should deploy weekly")

        note = session.confirm()

        stored = kb.get_note(note.id)
        assert stored.content == "We should deploy weekly"
        assert len(kb.list_tasks()) == 1
        assert session.pending is None
        assert session.input_text == ""

    async def test_inclusion_choices(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(), settings, clock)
        await session.analyze("text")

        note = session.confirm(include_tasks=False, include_knowledge=False)

        assert kb.list_tasks() == []
        assert kb.list_knowledge() == []
        assert len(kb.get_note(note.id).related_entity_ids) == 1

    async def test_default_plan_applied(self, kb, settings, clock) -> None:
        kb.put_knowledge(KnowledgeItem(id="k1", topic="Deploy Pipeline Setup", content="Base"))
        session = _session(kb, FakeExtractor(), settings, clock)
        await session.analyze("text")

        session.confirm()

        assert [k.id for k in kb.list_knowledge()] == ["k1"]
        assert kb.get_knowledge("k1").content.endswith("Add CD stage")

    async def test_user_override_creates_article(self, kb, settings, clock) -> None:
        kb.put_knowledge(KnowledgeItem(id="k1", topic="Deploy Pipeline Setup"))
        session = _session(kb, FakeExtractor(), settings, clock)
        await session.analyze("text")

        session.confirm(knowledge_merges={})

        assert len(kb.list_knowledge()) == 2

    def test_confirm_without_pending(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(), settings, clock)
        with pytest.raises(NoteGraphError):
            session.confirm()

    async def test_dismiss_clears_pending(self, kb, settings, clock) -> None:
        session = _session(kb, FakeExtractor(), settings, clock)
        await session.analyze("text")

        session.dismiss()

        assert session.pending is None
        assert kb.list_notes() == []
