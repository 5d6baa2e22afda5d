"""Rule engine data models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConditionType(str, Enum):
    """Kinds of condition a rule can test."""

    tag_present = "tag_present"
    tag_absent = "tag_absent"
    plot_block_selected = "plot_block_selected"
    plot_block_excluded = "plot_block_excluded"
    tag_class_constraint = "tag_class_constraint"


class ConditionOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    in_ = "in"
    not_in = "not_in"
    greater_than = "greater_than"
    less_than = "less_than"


class LogicOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class ActionType(str, Enum):
    error = "error"
    warning = "warning"
    suggestion = "suggestion"
    block = "block"
    require = "require"


class ActionSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


KNOWN_CONDITION_TYPES = frozenset(t.value for t in ConditionType)


class Condition(BaseModel):
    """A single predicate over a pathway.

    ``type`` and ``operator`` are kept as plain strings so that rules
    authored with an unknown kind can still be loaded and reported.
    ``weight`` scales the condition's share of the rule's estimated cost.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: str
    target: str = ""
    operator: str = ConditionOperator.equals.value
    value: Any = None
    weight: float = 1.0

    @property
    def kind(self) -> ConditionType | None:
        """The condition type as an enum, or None when unknown."""
        if self.type in KNOWN_CONDITION_TYPES:
            return ConditionType(self.type)
        return None


class Action(BaseModel):
    """Outcome contributed to the result when a rule fires."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ActionType
    severity: ActionSeverity = ActionSeverity.medium
    message: str
    data: dict[str, Any] | None = None


class ValidationRule(BaseModel):
    """Admin-authored condition -> action mapping.

    An empty ``conditions`` list is legal and never fires. An absent or null
    list is a structural defect reported by the orchestrator.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    fandom_id: str = ""
    conditions: list[Condition] | None = None
    actions: list[Action] = Field(default_factory=list)
    logic_operator: str = LogicOperator.AND.value
    is_active: bool = True
    priority: int = 0


class ValidationInput(BaseModel):
    """A user's pathway selections within one fandom."""

    model_config = ConfigDict(frozen=True)

    fandom_id: str | None = None
    selected_tags: frozenset[str] = Field(default_factory=frozenset)
    selected_plot_blocks: frozenset[str] = Field(default_factory=frozenset)
    tag_classes: dict[str, frozenset[str]] = Field(default_factory=dict)


class PlotBlockNode(BaseModel):
    """A plot block as seen by the hierarchy checks.

    ``dependencies`` are hard prerequisites and take part in cycle
    detection. ``soft_dependencies`` only enhance a block; a missing one is
    a warning, and they are not graph edges.
    """

    id: str
    parent_id: str | None = None
    dependencies: list[str] | None = None
    soft_dependencies: list[str] | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id


class ValidationMetrics(BaseModel):
    """Timing details kept alongside a result, not serialized on the wire."""

    rule_timings_ms: dict[str, float] = Field(default_factory=dict)
    slow_rules: list[str] = Field(default_factory=list)
    rules_skipped: int = 0
    budget_exhausted: bool = False

    @property
    def average_rule_time_ms(self) -> float:
        if not self.rule_timings_ms:
            return 0.0
        return sum(self.rule_timings_ms.values()) / len(self.rule_timings_ms)


class ValidationResult(BaseModel):
    """Aggregated result of one validation call."""

    is_valid: bool = True
    errors: list[Action] = Field(default_factory=list)
    warnings: list[Action] = Field(default_factory=list)
    suggestions: list[Action] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    rules_evaluated: int = 0
    metrics: ValidationMetrics = Field(default_factory=ValidationMetrics, exclude=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the API shape (actions omit ``data`` when unset)."""
        return self.model_dump(mode="json", exclude_none=True)
