"""
Services orchestrating the knowledge graph engine.

- IngestionPipeline: commits one extraction batch
- AnalysisSession: async boundary around the external extractor
- WorkspaceService: façade exposed to a UI layer
"""

from notegraph.services.analysis_service import AnalysisSession, ImageAttachment, PendingAnalysis
from notegraph.services.ingestion_service import IngestionPipeline
from notegraph.services.workspace_service import WorkspaceService

__all__ = [
    "AnalysisSession",
    "ImageAttachment",
    "PendingAnalysis",
    "IngestionPipeline",
    "WorkspaceService",
]
