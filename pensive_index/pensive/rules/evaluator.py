"""Rule evaluation: combine a rule's conditions with its logic operator."""

from __future__ import annotations

from pensive.rules.conditions import evaluate_condition
from pensive.rules.models import LogicOperator, ValidationInput, ValidationRule


def should_fire(rule: ValidationRule, data: ValidationInput) -> bool:
    """Decide whether *rule* fires for the given pathway.

    Expects a structurally valid rule (see ``find_structural_defect`` in the
    orchestrator). A rule without conditions never fires. Every condition is
    evaluated before reducing, so a faulty condition surfaces regardless of
    its position.
    """
    if not rule.conditions:
        return False

    results = [evaluate_condition(c, data) for c in rule.conditions]

    if rule.logic_operator == LogicOperator.AND.value:
        return all(results)
    if rule.logic_operator == LogicOperator.OR.value:
        return any(results)
    return False
