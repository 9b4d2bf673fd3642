"""
Record graph for notes, entities, tasks and knowledge articles.

This module provides the record models, the in-memory store, entity
resolution, knowledge deduplication, the consistency engine for deletes and
merges, and the read-only audits built on top of them.
"""

from notegraph.kg.audit import (
    AuditEngine,
    DashboardSummary,
    ReviewReport,
    Suggestion,
    SuggestionQueue,
    SuggestionType,
)
from notegraph.kg.consistency import (
    ConsistencyEngine,
    DeleteCategory,
    DeleteEntity,
    DeleteKnowledge,
    DeleteNote,
    DeleteTask,
    ImpactReport,
)
from notegraph.kg.domain import (
    AppConfig,
    AutomationRule,
    CategoryDefinition,
    Notification,
    NotificationLevel,
    RuleCode,
    default_app_config,
)
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.knowledge_dedup import classify, plan_knowledge_merges
from notegraph.kg.models import (
    Entity,
    EntityStatus,
    EntityType,
    KnowledgeHistory,
    KnowledgeItem,
    MergeHistory,
    Note,
    Task,
    TaskPriority,
)
from notegraph.kg.resolution import EntityDetails, EntityResolver
from notegraph.kg.rules import RuleGate
from notegraph.kg.schemas import (
    AnalysisResult,
    ExtractedEntity,
    ExtractedKnowledge,
    ExtractedTask,
)
from notegraph.kg.similarity import DuplicatePair, note_similarity

__all__ = [
    # Knowledge Base
    "KnowledgeBase",
    # Models
    "Note",
    "Entity",
    "EntityType",
    "EntityStatus",
    "Task",
    "TaskPriority",
    "KnowledgeItem",
    "KnowledgeHistory",
    "MergeHistory",
    # App Config
    "AppConfig",
    "AutomationRule",
    "CategoryDefinition",
    "RuleCode",
    "Notification",
    "NotificationLevel",
    "default_app_config",
    # Resolution & Rules
    "EntityResolver",
    "EntityDetails",
    "RuleGate",
    # Knowledge Deduplication
    "classify",
    "plan_knowledge_merges",
    # Consistency
    "ConsistencyEngine",
    "ImpactReport",
    "DeleteNote",
    "DeleteEntity",
    "DeleteTask",
    "DeleteKnowledge",
    "DeleteCategory",
    # Similarity & Audit
    "DuplicatePair",
    "note_similarity",
    "AuditEngine",
    "DashboardSummary",
    "ReviewReport",
    "Suggestion",
    "SuggestionType",
    "SuggestionQueue",
    # Extraction Schemas
    "AnalysisResult",
    "ExtractedEntity",
    "ExtractedTask",
    "ExtractedKnowledge",
]
