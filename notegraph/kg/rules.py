"""
Automation Rule Gate.

Evaluates the machine-interpreted automation rules against records at write
time. Two rule codes are enforced, each independently toggleable in AppConfig:

- TASK_REQUIRES_CONTEXT: a task save without ``related_entity_id`` is
  rejected with a validation message.
- ENTITY_VAGUE_INCOMPLETE: newly resolved entities with the placeholder
  name or a name under 3 characters start as ``incomplete``.

Rules carrying any other code are display-only.
"""

from __future__ import annotations

from notegraph.kg.domain import AppConfig, AutomationRule, RuleCode
from notegraph.kg.models import EntityStatus, Task
from notegraph.kg.normalization import UNKNOWN_ENTITY_NAME
from notegraph.models.errors import RuleViolationError

MIN_ENTITY_NAME_LENGTH = 3

TASK_CONTEXT_MESSAGE = (
    "Active rule: the task must have a context (Company/Project) assigned."
)

_ENFORCED_CODES = frozenset(code.value for code in RuleCode)


def is_vague_entity_name(name: str) -> bool:
    """True for the placeholder name or names shorter than 3 characters."""
    return name == UNKNOWN_ENTITY_NAME or len(name) < MIN_ENTITY_NAME_LENGTH


class RuleGate:
    """
    Applies the active automation rules of an AppConfig.

    Example:
        gate = RuleGate(kb.config)
        gate.check_task(task)              # raises RuleViolationError
        status = gate.initial_entity_status("X")
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config

    def is_active(self, code: RuleCode) -> bool:
        return self.config.is_rule_active(code)

    def initial_entity_status(self, name: str) -> EntityStatus:
        """Status for a newly created entity with the given (normalized) name."""
        if self.is_active(RuleCode.ENTITY_VAGUE_INCOMPLETE) and is_vague_entity_name(name):
            return EntityStatus.INCOMPLETE
        return EntityStatus.ACTIVE

    def task_violations(self, task: Task) -> list[RuleViolationError]:
        """Collect violations for a task save without raising."""
        violations: list[RuleViolationError] = []
        if self.is_active(RuleCode.TASK_REQUIRES_CONTEXT) and not task.related_entity_id:
            violations.append(
                RuleViolationError(
                    TASK_CONTEXT_MESSAGE,
                    rule_code=RuleCode.TASK_REQUIRES_CONTEXT.value,
                    field="related_entity_id",
                    hint="Assign a Company or Project, or disable the rule",
                )
            )
        return violations

    def check_task(self, task: Task) -> None:
        """
        Validate a task save.

        Raises:
            RuleViolationError: For the first active rule the task breaks
        """
        violations = self.task_violations(task)
        if violations:
            raise violations[0]

    def enforced_rules(self) -> list[AutomationRule]:
        """Rules the engine interprets (whether currently active or not)."""
        return [r for r in self.config.automation_rules if r.code in _ENFORCED_CODES]

    def display_only_rules(self) -> list[AutomationRule]:
        """Rules with codes the engine does not interpret yet."""
        return [r for r in self.config.automation_rules if r.code not in _ENFORCED_CODES]
