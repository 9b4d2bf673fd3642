"""
Tests for the Entity Resolver.

Tests cover:
- Idempotent resolution (same name resolves to the same id)
- Case-insensitive exact matching, no fuzzy matching
- Non-destructive merge of details into existing entities
- Vague-name flagging through the ENTITY_VAGUE_INCOMPLETE rule
- Parent candidates that are unknown or would form a cycle
"""

from __future__ import annotations

from notegraph.kg.domain import RuleCode
from notegraph.kg.knowledge_base import KnowledgeBase
from notegraph.kg.models import Entity, EntityStatus, EntityType
from notegraph.kg.normalization import UNKNOWN_ENTITY_NAME
from notegraph.kg.resolution import EntityDetails, EntityResolver


def _set_rule(kb: KnowledgeBase, code: RuleCode, active: bool) -> None:
    config = kb.config
    for rule in config.automation_rules:
        if rule.code == code.value:
            rule.is_active = active
    kb.set_config(config)


class TestResolveIdempotence:
    """Resolving the same name twice yields one record."""

    def test_same_name_same_id(self, kb: KnowledgeBase) -> None:
        """Second resolution returns the first id and creates nothing."""
        resolver = EntityResolver(kb)
        first = resolver.resolve("Acme", EntityType.COMPANY)
        second = resolver.resolve("Acme", EntityType.COMPANY)

        assert first == second
        assert len(kb.list_entities()) == 1

    def test_case_and_whitespace_insensitive(self, kb: KnowledgeBase) -> None:
        resolver = EntityResolver(kb)
        first = resolver.resolve("Acme Corp", EntityType.COMPANY)
        second = resolver.resolve("  ACME corp ", EntityType.COMPANY)

        assert first == second
        assert kb.get_entity(first).name == "Acme Corp"

    def test_near_duplicates_stay_distinct(self, kb: KnowledgeBase) -> None:
        """No fuzzy matching: a trailing period makes a different entity."""
        resolver = EntityResolver(kb)
        first = resolver.resolve("Acme Corp", EntityType.COMPANY)
        second = resolver.resolve("Acme Corp.", EntityType.COMPANY)

        assert first != second
        assert len(kb.list_entities()) == 2

    def test_type_only_used_on_creation(self, kb: KnowledgeBase) -> None:
        resolver = EntityResolver(kb)
        entity_id = resolver.resolve("Acme", EntityType.COMPANY)
        resolver.resolve("acme", EntityType.PERSON)

        assert kb.get_entity(entity_id).type == EntityType.COMPANY

    def test_unknown_type_falls_back_to_other(self, kb: KnowledgeBase) -> None:
        entity_id = EntityResolver(kb).resolve("Widget", "Gadget")
        assert kb.get_entity(entity_id).type == EntityType.OTHER


class TestNonDestructiveMerge:
    """Only empty fields of an existing entity are filled."""

    def test_populated_email_never_overwritten(self, kb: KnowledgeBase) -> None:
        kb.put_entity(Entity(id="jane", name="Jane", type=EntityType.PERSON, email="jane@old.com"))
        resolver = EntityResolver(kb)

        resolved = resolver.resolve("Jane", EntityType.PERSON, {"contact_info": "jane@new.com"})

        assert resolved == "jane"
        assert kb.get_entity("jane").email == "jane@old.com"

    def test_empty_fields_are_filled(self, kb: KnowledgeBase) -> None:
        kb.put_entity(Entity(id="acme", name="Acme", type=EntityType.COMPANY))
        kb.put_entity(Entity(id="jane", name="Jane", type=EntityType.PERSON))
        resolver = EntityResolver(kb)

        resolver.resolve(
            "Jane",
            EntityType.PERSON,
            EntityDetails(contact_info="jane@acme.com", role="CTO"),
            parent_id_candidate="acme",
        )

        jane = kb.get_entity("jane")
        assert jane.email == "jane@acme.com"
        assert jane.role == "CTO"
        assert jane.parent_id == "acme"

    def test_no_change_means_no_write(self, kb: KnowledgeBase) -> None:
        """A resolution that fills nothing does not notify listeners."""
        kb.put_entity(Entity(id="jane", name="Jane", type=EntityType.PERSON, role="CTO"))
        changes: list[str] = []
        kb.subscribe(changes.append)

        EntityResolver(kb).resolve("Jane", EntityType.PERSON, {"role": "CEO"})

        assert changes == []
        assert kb.get_entity("jane").role == "CTO"

    def test_existing_parent_kept(self, kb: KnowledgeBase) -> None:
        kb.put_entity(Entity(id="acme", name="Acme", type=EntityType.COMPANY))
        kb.put_entity(Entity(id="globex", name="Globex", type=EntityType.COMPANY))
        kb.put_entity(Entity(id="jane", name="Jane", type=EntityType.PERSON, parent_id="acme"))

        EntityResolver(kb).resolve("Jane", EntityType.PERSON, None, "globex")

        assert kb.get_entity("jane").parent_id == "acme"


class TestParentCandidates:
    """Parent candidates never corrupt the hierarchy."""

    def test_cycle_forming_parent_skipped(self, kb: KnowledgeBase) -> None:
        kb.put_entity(Entity(id="acme", name="Acme", type=EntityType.COMPANY))
        kb.put_entity(
            Entity(id="apollo", name="Apollo", type=EntityType.PROJECT, parent_id="acme")
        )

        EntityResolver(kb).resolve("Acme", EntityType.COMPANY, None, "apollo")

        assert kb.get_entity("acme").parent_id is None

    def test_self_parent_skipped(self, kb: KnowledgeBase) -> None:
        kb.put_entity(Entity(id="acme", name="Acme", type=EntityType.COMPANY))

        EntityResolver(kb).resolve("Acme", EntityType.COMPANY, None, "acme")

        assert kb.get_entity("acme").parent_id is None

    def test_unknown_parent_dropped_on_create(self, kb: KnowledgeBase) -> None:
        entity_id = EntityResolver(kb).resolve("Jane", EntityType.PERSON, None, "missing")
        assert kb.get_entity(entity_id).parent_id is None


class TestVagueEntities:
    """ENTITY_VAGUE_INCOMPLETE decides the initial status."""

    def test_blank_name_becomes_incomplete_placeholder(self, kb: KnowledgeBase) -> None:
        entity_id = EntityResolver(kb).resolve("", EntityType.PERSON)
        entity = kb.get_entity(entity_id)

        assert entity.name == UNKNOWN_ENTITY_NAME
        assert entity.status == EntityStatus.INCOMPLETE

    def test_blank_name_active_when_rule_disabled(self, kb: KnowledgeBase) -> None:
        _set_rule(kb, RuleCode.ENTITY_VAGUE_INCOMPLETE, False)
        entity_id = EntityResolver(kb).resolve("", EntityType.PERSON)
        entity = kb.get_entity(entity_id)

        assert entity.name == UNKNOWN_ENTITY_NAME
        assert entity.status == EntityStatus.ACTIVE

    def test_short_name_is_incomplete(self, kb: KnowledgeBase) -> None:
        entity_id = EntityResolver(kb).resolve("JD", EntityType.PERSON)
        assert kb.get_entity(entity_id).status == EntityStatus.INCOMPLETE

    def test_three_letter_name_is_active(self, kb: KnowledgeBase) -> None:
        entity_id = EntityResolver(kb).resolve("IBM", EntityType.COMPANY)
        assert kb.get_entity(entity_id).status == EntityStatus.ACTIVE

    def test_none_name_resolves_to_placeholder(self, kb: KnowledgeBase) -> None:
        resolver = EntityResolver(kb)
        first = resolver.resolve(None, EntityType.OTHER)
        second = resolver.resolve("   ", EntityType.OTHER)

        assert first == second
        assert kb.get_entity(first).name == UNKNOWN_ENTITY_NAME
