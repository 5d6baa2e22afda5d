"""Condition evaluation: pure predicates over a pathway snapshot."""

from __future__ import annotations

import logging
from typing import Any, Callable

from pensive.rules.models import (
    Condition,
    ConditionOperator,
    ConditionType,
    ValidationInput,
)

logger = logging.getLogger(__name__)


def _apply_flag(condition: Condition, matched: bool) -> bool:
    """Resolve equals/not_equals for the membership condition types.

    ``equals`` yields the raw match when ``value`` is truthy and its
    negation otherwise; ``not_equals`` is the exact inverse. Any other
    operator is meaningless for membership and yields False.
    """
    if condition.operator == ConditionOperator.equals.value:
        return matched if condition.value else not matched
    if condition.operator == ConditionOperator.not_equals.value:
        return not matched if condition.value else matched
    return False


def _as_number(value: Any) -> float:
    """Coerce a comparison operand, rejecting bools and non-numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a numeric value, got {value!r}")
    return value


def _tag_present(condition: Condition, data: ValidationInput) -> bool:
    return _apply_flag(condition, condition.target in data.selected_tags)


def _tag_absent(condition: Condition, data: ValidationInput) -> bool:
    return _apply_flag(condition, condition.target not in data.selected_tags)


def _plot_block_selected(condition: Condition, data: ValidationInput) -> bool:
    return _apply_flag(condition, condition.target in data.selected_plot_blocks)


def _plot_block_excluded(condition: Condition, data: ValidationInput) -> bool:
    return _apply_flag(condition, condition.target not in data.selected_plot_blocks)


def _tag_class_constraint(condition: Condition, data: ValidationInput) -> bool:
    """Compare how many selected tags fall in the target tag class."""
    tag_class = data.tag_classes.get(condition.target)
    if tag_class is None:
        return False

    count = len(tag_class & data.selected_tags)
    op = condition.operator

    if op == ConditionOperator.equals.value:
        return count == condition.value
    if op == ConditionOperator.not_equals.value:
        return count != condition.value
    if op == ConditionOperator.greater_than.value:
        return count > _as_number(condition.value)
    if op == ConditionOperator.less_than.value:
        return count < _as_number(condition.value)
    return False


# One handler per ConditionType member; checked at import time below.
CONDITION_HANDLERS: dict[ConditionType, Callable[[Condition, ValidationInput], bool]] = {
    ConditionType.tag_present: _tag_present,
    ConditionType.tag_absent: _tag_absent,
    ConditionType.plot_block_selected: _plot_block_selected,
    ConditionType.plot_block_excluded: _plot_block_excluded,
    ConditionType.tag_class_constraint: _tag_class_constraint,
}

_unhandled = set(ConditionType) - set(CONDITION_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Condition types without a handler: {sorted(t.value for t in _unhandled)}")


def evaluate_condition(condition: Condition, data: ValidationInput) -> bool:
    """Evaluate one condition against a pathway.

    Unknown condition types evaluate to False; reporting them is the
    orchestrator's job. Ordering comparisons against a non-numeric value
    raise TypeError.
    """
    kind = condition.kind
    if kind is None:
        logger.debug("Unknown condition type %r on condition %s", condition.type, condition.id)
        return False
    return CONDITION_HANDLERS[kind](condition, data)
