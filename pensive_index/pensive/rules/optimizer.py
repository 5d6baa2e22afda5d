"""Execution ordering: cheapest, most important rules first."""

from __future__ import annotations

from typing import Iterable

from pensive.rules.models import ConditionType, LogicOperator, ValidationRule

BASE_CONDITION_COST = 10
UNKNOWN_CONDITION_COST = 10

CONDITION_COSTS: dict[str, int] = {
    ConditionType.tag_present.value: 1,
    ConditionType.tag_absent.value: 1,
    ConditionType.plot_block_selected.value: 1,
    ConditionType.plot_block_excluded.value: 1,
    ConditionType.tag_class_constraint.value: 5,
}

LOGIC_COSTS: dict[str, int] = {
    LogicOperator.OR.value: 2,
    LogicOperator.AND.value: 1,
}


def estimate_cost(rule: ValidationRule) -> float:
    """Rough relative cost of evaluating *rule* (lower is cheaper).

    Each condition adds a flat base cost plus its type cost scaled by the
    condition's ``weight``.
    """
    conditions = rule.conditions or []
    cost: float = BASE_CONDITION_COST * len(conditions)
    for condition in conditions:
        cost += CONDITION_COSTS.get(condition.type, UNKNOWN_CONDITION_COST) * condition.weight
    cost += LOGIC_COSTS.get(rule.logic_operator, 0)
    return cost


def order_rules(rules: Iterable[ValidationRule]) -> list[ValidationRule]:
    """Return the active rules sorted by priority, then estimated cost.

    ``sorted`` is stable, so rules with equal keys keep their input order.
    Fandom filtering happens upstream.
    """
    active = [r for r in rules if r.is_active]
    return sorted(active, key=lambda r: (r.priority, estimate_cost(r)))
