"""Pathway validation rule engine."""

from pensive.rules.conditions import evaluate_condition
from pensive.rules.evaluator import should_fire
from pensive.rules.graph import CycleReport, detect_cycles, find_cycles, shortest_cycle
from pensive.rules.models import (
    Action,
    Condition,
    PlotBlockNode,
    ValidationInput,
    ValidationResult,
    ValidationRule,
)
from pensive.rules.optimizer import estimate_cost, order_rules
from pensive.rules.orchestrator import OrchestratorOptions, ValidationOrchestrator

__all__ = [
    "Action",
    "Condition",
    "CycleReport",
    "OrchestratorOptions",
    "PlotBlockNode",
    "ValidationInput",
    "ValidationOrchestrator",
    "ValidationResult",
    "ValidationRule",
    "detect_cycles",
    "estimate_cost",
    "evaluate_condition",
    "find_cycles",
    "order_rules",
    "shortest_cycle",
    "should_fire",
]
