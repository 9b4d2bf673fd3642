"""
Entity Resolver — find-or-create canonical entity records.

Resolution is a case-insensitive exact match on the trimmed name. There is
no fuzzy matching: near-duplicate names ("Acme Corp" vs "Acme Corp.")
resolve as distinct entities and are left for a manual entity merge.

When an existing entity is found, only its EMPTY fields (email, role,
parent_id) are filled from the candidate details; populated fields are
never overwritten. New entities get their initial status from the rule gate.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityType
from notegraph.kg.normalization import normalize_entity_name
from notegraph.kg.rules import RuleGate

logger = logging.getLogger(__name__)


def _coerce_type(entity_type: EntityType | str) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        return EntityType.OTHER


class EntityDetails(BaseModel):
    """
    Optional details accompanying a resolution request.

    Attributes:
        contact_info: Contact detail, stored as the entity's email
        role: Role or job title
    """

    contact_info: str | None = None
    role: str | None = None

    @classmethod
    def coerce(cls, details: Any) -> EntityDetails:
        """Accept an EntityDetails, an ExtractedEntity-like object, a dict or None."""
        if details is None:
            return cls()
        if isinstance(details, EntityDetails):
            return details
        if isinstance(details, dict):
            return cls(contact_info=details.get("contact_info"), role=details.get("role"))
        return cls(
            contact_info=getattr(details, "contact_info", None),
            role=getattr(details, "role", None),
        )


class EntityResolver:
    """
    Resolves candidate names to entity ids against a KnowledgeBase.

    Example:
        resolver = EntityResolver(kb)
        acme_id = resolver.resolve("Acme", EntityType.COMPANY)
        jane_id = resolver.resolve("Jane", EntityType.PERSON, {"role": "CTO"}, acme_id)
    """

    def __init__(self, kb: KnowledgeBase) -> None:
        self.kb = kb

    def find_existing(self, name: str) -> Entity | None:
        """Named lookup seam: case-insensitive exact match, first match wins."""
        return self.kb.get_entity_by_name(name)

    def resolve(
        self,
        name: str | None,
        entity_type: EntityType | str,
        details: Any = None,
        parent_id_candidate: str | None = None,
    ) -> str:
        """
        Find or create the entity for a candidate name.

        Never fails: a blank name resolves to the placeholder entity.

        Args:
            name: Candidate name (trimmed; blank becomes the placeholder)
            entity_type: Type used only when a new entity is created
            details: Optional contact_info/role for filling empty fields
            parent_id_candidate: Parent to set when the entity has none

        Returns:
            Id of the existing or newly created entity
        """
        safe_name = normalize_entity_name(name)
        info = EntityDetails.coerce(details)

        existing = self.find_existing(safe_name)
        if existing is not None:
            self._fill_empty_fields(existing, info, parent_id_candidate)
            return existing.id

        gate = RuleGate(self.kb.config)
        parent_id = parent_id_candidate
        if parent_id is not None and self.kb.get_entity(parent_id) is None:
            logger.debug(f"Ignoring unknown parent {parent_id} for new entity {safe_name!r}")
            parent_id = None

        entity = Entity(
            name=safe_name,
            type=_coerce_type(entity_type),
            email=info.contact_info,
            role=info.role,
            parent_id=parent_id,
            status=gate.initial_entity_status(safe_name),
        )
        self.kb.put_entity(entity)
        logger.info(
            f"Created entity {entity.id} ({entity.type.value}: {safe_name!r}, "
            f"status={entity.status.value})"
        )
        return entity.id

    def _fill_empty_fields(
        self,
        existing: Entity,
        info: EntityDetails,
        parent_id_candidate: str | None,
    ) -> None:
        """Merge details into empty fields; persist only when something changed."""
        changed = False

        if info.contact_info and not existing.email:
            existing.email = info.contact_info
            changed = True
        if info.role and not existing.role:
            existing.role = info.role
            changed = True
        if parent_id_candidate and not existing.parent_id:
            if self.kb.get_entity(parent_id_candidate) is None:
                logger.debug(f"Ignoring unknown parent {parent_id_candidate} for {existing.id}")
            elif self.kb.would_create_cycle(existing.id, parent_id_candidate):
                logger.warning(
                    f"Skipping parent {parent_id_candidate} for {existing.id}: "
                    "would create a hierarchy cycle"
                )
            else:
                existing.parent_id = parent_id_candidate
                changed = True

        if changed:
            self.kb.put_entity(existing)
            logger.debug(f"Filled empty fields of entity {existing.id} ({existing.name!r})")
        else:
            logger.debug(f"Resolved {existing.name!r} to existing entity {existing.id}")
