"""
Analysis session — the async boundary around the external extractor.

The extractor is an opaque coroutine ``extract(text, image, config)``
returning an AnalysisResult (or its JSON form). It may raise or return
garbage; both surface as ExtractionError and nothing is committed.

One session corresponds to one input surface: a second ``analyze`` while
the first is in flight is rejected. Dismissing a result does not cancel the
underlying call; a late result for a dismissed analysis is discarded.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from notegraph.core.config import Settings, get_settings
from notegraph.kg.domain import AppConfig
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.knowledge_dedup import plan_knowledge_merges
from notegraph.kg.models import Note
from notegraph.kg.schemas import AnalysisResult
from notegraph.kg.similarity import related_notes_by_keywords
from notegraph.models.errors import AnalysisInProgressError, ExtractionError, NoteGraphError
from notegraph.services.ingestion_service import IngestionPipeline

logger = logging.getLogger(__name__)

IMAGE_ATTACHED_SUFFIX = " [Image attached]"


class ImageAttachment(BaseModel):
    """An image sent along with the note text."""

    model_config = ConfigDict(populate_by_name=True)

    data: str  # base64
    mime_type: str = Field(alias="mimeType")


Extractor = Callable[[str, ImageAttachment | None, AppConfig], Awaitable[Any]]


class PendingAnalysis(BaseModel):
    """
    An analysis waiting for the user's confirmation.

    Attributes:
        input_text: Text that will be stored as the note content
        result: Validated extractor output
        related_notes: Existing notes sharing a keyword (cross-link candidates)
        knowledge_merges: Default merge plan (knowledge index -> article id)
    """

    input_text: str
    result: AnalysisResult
    related_notes: list[Note] = Field(default_factory=list)
    knowledge_merges: dict[int, str] = Field(default_factory=dict)


class AnalysisSession:
    """
    Drives analyze -> review -> confirm for one input surface.

    Example:
        session = AnalysisSession(kb, extractor, pipeline)
        pending = await session.analyze("Met Jane from Acme")
        note = session.confirm(link_to_note_ids=[n.id for n in pending.related_notes])
    """

    def __init__(
        self,
        kb: KnowledgeBase,
        extractor: Extractor,
        pipeline: IngestionPipeline,
        settings: Settings | None = None,
    ) -> None:
        self.kb = kb
        self._extractor = extractor
        self._pipeline = pipeline
        self._settings = settings or get_settings()
        self._in_flight = False
        self._generation = 0
        self._pending: PendingAnalysis | None = None
        self.input_text = ""

    @property
    def is_analyzing(self) -> bool:
        return self._in_flight

    @property
    def pending(self) -> PendingAnalysis | None:
        return self._pending

    async def analyze(
        self, text: str, image: ImageAttachment | None = None
    ) -> PendingAnalysis | None:
        """
        Run the extractor on a note and prepare it for confirmation.

        Args:
            text: Note text
            image: Optional image attachment

        Returns:
            The pending analysis, or None if it was dismissed while in flight

        Raises:
            AnalysisInProgressError: If an analysis is already running
            ExtractionError: If the extractor fails or returns unusable output
        """
        if self._in_flight:
            raise AnalysisInProgressError(
                "An analysis is already in progress",
                hint="Wait for the current analysis to finish",
            )

        self._in_flight = True
        self._generation += 1
        generation = self._generation
        self.input_text = text + (IMAGE_ATTACHED_SUFFIX if image is not None else "")

        try:
            raw = await self._extractor(text, image, self.kb.config)
        except Exception as e:
            logger.error(f"Extraction failed: {e}")
            raise ExtractionError(
                "Error analysing the content", detail=str(e), hint="Check the extractor configuration"
            ) from e
        finally:
            self._in_flight = False

        result = self._validate(raw)

        if generation != self._generation:
            logger.info("Discarding analysis result that arrived after dismissal")
            return None

        self._pending = PendingAnalysis(
            input_text=self.input_text,
            result=result,
            related_notes=related_notes_by_keywords(
                result.keywords, self.kb.list_notes(), self._settings.related_note_limit
            ),
            knowledge_merges=plan_knowledge_merges(result, self.kb.list_knowledge()),
        )
        logger.debug(
            f"Analysis ready: {len(result.entities)} entities, {len(result.tasks)} tasks, "
            f"{len(result.knowledge)} knowledge, "
            f"{len(self._pending.related_notes)} related notes"
        )
        return self._pending

    @staticmethod
    def _validate(raw: Any) -> AnalysisResult:
        if isinstance(raw, AnalysisResult):
            return raw
        if not raw:
            logger.error("Extractor returned an empty response")
            raise ExtractionError("The extractor returned an empty response")
        try:
            return AnalysisResult.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Extractor returned malformed output: {e}")
            raise ExtractionError(
                "The extractor returned malformed output", detail=str(e)
            ) from e

    def dismiss(self) -> None:
        """Discard the pending result, and any result still in flight."""
        self._generation += 1
        self._pending = None

    def confirm(
        self,
        link_to_note_ids: Sequence[str] | None = None,
        knowledge_merges: Mapping[int | str, str] | None = None,
        include_entities: bool = True,
        include_tasks: bool = True,
        include_knowledge: bool = True,
    ) -> Note:
        """
        Commit the pending analysis with the user's choices.

        Args:
            link_to_note_ids: Existing notes to cross-link
            knowledge_merges: Merge decisions; defaults to the proposed plan
            include_entities: Keep extracted entities
            include_tasks: Keep extracted tasks
            include_knowledge: Keep extracted knowledge

        Returns:
            The committed Note
        """
        if self._pending is None:
            raise NoteGraphError("There is no analysis to confirm")

        pending = self._pending
        result = pending.result.filtered(include_entities, include_tasks, include_knowledge)
        merges = pending.knowledge_merges if knowledge_merges is None else knowledge_merges

        note = self._pipeline.commit(
            result, link_to_note_ids or [], merges, content=pending.input_text
        )
        self._pending = None
        self.input_text = ""
        return note
