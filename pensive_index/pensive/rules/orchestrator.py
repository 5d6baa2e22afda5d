"""Validation orchestrator: runs a fandom's rules against a pathway.

Pipeline for one call:

1. Input sanity warnings (missing/unknown fandom, suspicious ids) and,
   when plot blocks are given, hierarchy cycles and missing prerequisites.
2. Filter rules to the active ones of the input's fandom.
3. Order them with the execution optimizer.
4. Evaluate each rule with fault isolation: structural defects become a
   warning and the rule is skipped, runtime exceptions become an error
   action, and evaluation always continues with the next rule.
5. Aggregate into a ValidationResult.

Nothing raises out of ``validate``; every internal fault is converted into
an entry of the result.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from pensive.rules.evaluator import should_fire
from pensive.rules.graph import find_cycles
from pensive.rules.models import (
    Action,
    ActionSeverity,
    ActionType,
    PlotBlockNode,
    ValidationInput,
    ValidationResult,
    ValidationRule,
)
from pensive.rules.optimizer import order_rules

logger = logging.getLogger(__name__)

DEFAULT_SUSPICIOUS_MARKERS = ("nonexistent", "invalid", "missing")

_ERROR_TYPES = {ActionType.error, ActionType.block}
_WARNING_TYPES = {ActionType.warning}
_SUGGESTION_TYPES = {ActionType.suggestion, ActionType.require}


class OrchestratorOptions(BaseModel):
    """Tuning knobs for the orchestrator."""

    soft_rule_budget_ms: float = Field(50.0, gt=0)
    time_budget_ms: float | None = Field(None, gt=0)
    max_workers: int = Field(1, ge=1)
    suspicious_markers: tuple[str, ...] = DEFAULT_SUSPICIOUS_MARKERS


@dataclass
class RuleOutcome:
    """What evaluating one rule produced."""

    rule: ValidationRule
    fired: bool = False
    defect: Action | None = None
    error: Action | None = None
    elapsed_ms: float = 0.0

    @property
    def evaluated(self) -> bool:
        return self.defect is None


def find_structural_defect(rule: ValidationRule) -> str | None:
    """Describe why *rule* cannot be evaluated, or return None if it can."""
    if rule.conditions is None:
        return "rule has no conditions list"
    for condition in rule.conditions:
        if condition.kind is None:
            return f"unknown condition type '{condition.type}' on condition '{condition.id}'"
    return None


def _rule_label(rule: ValidationRule) -> str:
    return rule.name or rule.id


def _malformed_rule_warning(rule_id: str, label: str, reason: str) -> Action:
    return Action(
        id=f"malformed-rule-{rule_id}",
        type=ActionType.warning,
        severity=ActionSeverity.high,
        message=f"Malformed rule detected: {label}",
        data={"rule_id": rule_id, "reason": reason},
    )


def _coerce_plot_blocks(
    plot_blocks: Sequence[PlotBlockNode | Mapping[str, Any]],
) -> list[PlotBlockNode]:
    nodes: list[PlotBlockNode] = []
    for raw in plot_blocks:
        try:
            nodes.append(raw if isinstance(raw, PlotBlockNode) else PlotBlockNode.model_validate(raw))
        except ValidationError as e:
            logger.warning("Ignoring unparseable plot block %r: %s", raw, e)
    return nodes


def _missing_prerequisite(
    node: PlotBlockNode,
    required_id: str,
    index: Mapping[str, PlotBlockNode],
    hard: bool,
) -> Action:
    required = index.get(required_id)
    required_label = required.label if required is not None else required_id
    if hard:
        return Action(
            id=f"missing-prerequisite-{node.id}-{required_id}",
            type=ActionType.error,
            severity=ActionSeverity.high,
            message=f"{node.label} requires {required_label}",
            data={"plot_block_id": node.id, "required_id": required_id, "requirement": "hard"},
        )
    return Action(
        id=f"missing-enhancement-{node.id}-{required_id}",
        type=ActionType.warning,
        severity=ActionSeverity.low,
        message=f"{node.label} is enhanced by {required_label}",
        data={"plot_block_id": node.id, "required_id": required_id, "requirement": "soft"},
    )


def _count_suspicious(ids: Iterable[str], markers: Sequence[str]) -> list[str]:
    return sorted(i for i in ids if any(m in i for m in markers))


class ValidationOrchestrator:
    """Top-level entry point of the rule engine.

    Holds only configuration; every call to ``validate`` is independent, so
    one instance can serve concurrent requests.
    """

    def __init__(self, options: OrchestratorOptions | None = None) -> None:
        self._options = options or OrchestratorOptions()

    @property
    def options(self) -> OrchestratorOptions:
        return self._options

    def validate(
        self,
        data: ValidationInput | Mapping[str, Any],
        rules: Sequence[ValidationRule | Mapping[str, Any]] | None,
        plot_blocks: Sequence[PlotBlockNode | Mapping[str, Any]] | None = None,
    ) -> ValidationResult:
        """Validate a pathway against *rules*, optionally checking a hierarchy.

        Rules and inputs may be given as models or as raw mappings; raw
        entries that do not parse are reported, never raised.
        """
        result = ValidationResult()

        try:
            pathway = data if isinstance(data, ValidationInput) else ValidationInput.model_validate(data)
        except ValidationError as e:
            logger.warning("Rejected unparseable validation input: %s", e)
            result.errors.append(
                Action(
                    id="invalid-input",
                    type=ActionType.error,
                    severity=ActionSeverity.critical,
                    message="Validation input could not be parsed",
                    data={"detail": str(e)},
                )
            )
            result.is_valid = False
            return result

        try:
            self._run_pipeline(pathway, rules, plot_blocks, result)
        except Exception:
            logger.exception("Validation pipeline failed for fandom %s", pathway.fandom_id)
            result.errors.append(
                Action(
                    id="validation-internal-error",
                    type=ActionType.error,
                    severity=ActionSeverity.critical,
                    message="Internal error during validation",
                )
            )

        result.is_valid = not result.errors
        logger.debug(
            "Validated fandom %s: %d rule(s) evaluated, %d error(s), %d warning(s), %d suggestion(s) "
            "in %.2f ms (%.3f ms/rule)",
            pathway.fandom_id,
            result.rules_evaluated,
            len(result.errors),
            len(result.warnings),
            len(result.suggestions),
            result.execution_time_ms,
            result.metrics.average_rule_time_ms,
        )
        return result

    def _run_pipeline(
        self,
        pathway: ValidationInput,
        raw_rules: Sequence[ValidationRule | Mapping[str, Any]] | None,
        plot_blocks: Sequence[PlotBlockNode | Mapping[str, Any]] | None,
        result: ValidationResult,
    ) -> None:
        rules, fandom_ids = self._coerce_rules(raw_rules, pathway.fandom_id, result)

        # Step 1: input sanity
        result.warnings[:0] = self.check_input(pathway, fandom_ids)

        if plot_blocks:
            nodes = _coerce_plot_blocks(plot_blocks)
            result.errors.extend(self.check_hierarchy(nodes))
            for action in self.check_prerequisites(pathway, nodes):
                if action.type in _ERROR_TYPES:
                    result.errors.append(action)
                else:
                    result.warnings.append(action)

        # Steps 2-3: filter and order
        candidates = [r for r in rules if r.is_active and r.fandom_id == pathway.fandom_id]
        ordered = order_rules(candidates)

        # Step 4: evaluate
        start = time.perf_counter()
        for outcome in self._evaluate_all(ordered, pathway, start, result):
            self._merge(outcome, result)
        result.execution_time_ms = (time.perf_counter() - start) * 1000

    def check_input(self, pathway: ValidationInput, fandom_ids: set[str]) -> list[Action]:
        """Advisory warnings about the pathway itself."""
        warnings: list[Action] = []

        if not pathway.fandom_id:
            warnings.append(
                Action(
                    id="missing-fandom",
                    type=ActionType.warning,
                    severity=ActionSeverity.medium,
                    message="No fandom selected",
                )
            )
        elif pathway.fandom_id not in fandom_ids:
            warnings.append(
                Action(
                    id="nonexistent-fandom",
                    type=ActionType.warning,
                    severity=ActionSeverity.medium,
                    message=f"Fandom '{pathway.fandom_id}' not found in available rules",
                )
            )

        markers = self._options.suspicious_markers
        if markers:
            tags = _count_suspicious(pathway.selected_tags, markers)
            if tags:
                warnings.append(
                    Action(
                        id="suspicious-tags",
                        type=ActionType.warning,
                        severity=ActionSeverity.low,
                        message=f"{len(tags)} potentially invalid tag(s) selected",
                        data={"ids": tags},
                    )
                )
            blocks = _count_suspicious(pathway.selected_plot_blocks, markers)
            if blocks:
                warnings.append(
                    Action(
                        id="suspicious-plot-blocks",
                        type=ActionType.warning,
                        severity=ActionSeverity.low,
                        message=f"{len(blocks)} potentially invalid plot block(s) selected",
                        data={"ids": blocks},
                    )
                )

        return warnings

    def check_hierarchy(self, nodes: Sequence[PlotBlockNode]) -> list[Action]:
        """Convert plot-block cycles into error actions."""
        return [
            Action(
                id=f"circular-dependency-{n}",
                type=ActionType.error,
                severity=ActionSeverity.high,
                message=report.message,
                data={"chain": report.chain},
            )
            for n, report in enumerate(find_cycles(nodes), start=1)
        ]

    def check_prerequisites(
        self, pathway: ValidationInput, nodes: Sequence[PlotBlockNode],
    ) -> list[Action]:
        """One action per prerequisite of a selected block that is not selected.

        Missing hard dependencies are errors, missing soft ones warnings.
        Selected ids that are not in *nodes* are ignored.
        """
        index: dict[str, PlotBlockNode] = {}
        for node in nodes:
            index.setdefault(node.id, node)
        actions: list[Action] = []

        for block_id in sorted(pathway.selected_plot_blocks):
            node = index.get(block_id)
            if node is None:
                continue
            for required_id in dict.fromkeys(node.dependencies or []):
                if required_id and required_id not in pathway.selected_plot_blocks:
                    actions.append(
                        _missing_prerequisite(node, required_id, index, hard=True)
                    )
            for required_id in dict.fromkeys(node.soft_dependencies or []):
                if required_id and required_id not in pathway.selected_plot_blocks:
                    actions.append(
                        _missing_prerequisite(node, required_id, index, hard=False)
                    )

        return actions

    def _coerce_rules(
        self,
        raw_rules: Sequence[ValidationRule | Mapping[str, Any]] | None,
        fandom_id: str | None,
        result: ValidationResult,
    ) -> tuple[list[ValidationRule], set[str]]:
        """Parse raw rule entries, warning about those that cannot be parsed.

        Unparseable entries only produce a warning when they would have been
        evaluated for this fandom.
        """
        rules: list[ValidationRule] = []
        fandom_ids: set[str] = set()

        if raw_rules is None:
            return rules, fandom_ids
        if isinstance(raw_rules, (str, bytes, Mapping)) or not isinstance(raw_rules, Iterable):
            logger.warning("Rule set is not a sequence: %r", type(raw_rules).__name__)
            result.warnings.append(
                Action(
                    id="malformed-rule-set",
                    type=ActionType.warning,
                    severity=ActionSeverity.high,
                    message="Rule set is not a list of rules",
                )
            )
            return rules, fandom_ids

        for position, raw in enumerate(raw_rules):
            if isinstance(raw, ValidationRule):
                rules.append(raw)
                fandom_ids.add(raw.fandom_id)
                continue

            if not isinstance(raw, Mapping):
                result.warnings.append(
                    _malformed_rule_warning(
                        f"#{position}", f"#{position}", f"expected a mapping, got {type(raw).__name__}"
                    )
                )
                continue

            raw_fandom = raw.get("fandom_id")
            if isinstance(raw_fandom, str):
                fandom_ids.add(raw_fandom)

            try:
                rule = ValidationRule.model_validate(raw)
            except ValidationError as e:
                if raw.get("is_active", True) is False or raw_fandom != fandom_id:
                    continue
                rule_id = str(raw.get("id") or f"#{position}")
                label = str(raw.get("name") or rule_id)
                logger.warning("Skipping unparseable rule %s: %s", rule_id, e)
                result.warnings.append(
                    _malformed_rule_warning(rule_id, label, f"{e.error_count()} schema error(s)")
                )
                continue

            rules.append(rule)

        return rules, fandom_ids

    def _evaluate_all(
        self,
        ordered: list[ValidationRule],
        pathway: ValidationInput,
        start: float,
        result: ValidationResult,
    ) -> Iterable[RuleOutcome]:
        """Yield outcomes in *ordered* order, honouring the hard time budget."""
        budget = self._options.time_budget_ms

        def over_budget(remaining: int) -> bool:
            if budget is None or (time.perf_counter() - start) * 1000 <= budget:
                return False
            self._record_budget_exhausted(result, remaining)
            return True

        if self._options.max_workers == 1 or len(ordered) < 2:
            for i, rule in enumerate(ordered):
                if over_budget(len(ordered) - i):
                    return
                yield self.evaluate_rule(rule, pathway)
            return

        with ThreadPoolExecutor(max_workers=self._options.max_workers) as pool:
            futures: list[Future[RuleOutcome]] = [
                pool.submit(self.evaluate_rule, rule, pathway) for rule in ordered
            ]
            for i, future in enumerate(futures):
                if not future.done() and over_budget(len(futures) - i):
                    for pending in futures[i:]:
                        pending.cancel()
                    return
                yield future.result()

    def evaluate_rule(self, rule: ValidationRule, pathway: ValidationInput) -> RuleOutcome:
        """Evaluate one rule with fault isolation. Never raises."""
        started = time.perf_counter()
        outcome = RuleOutcome(rule=rule)

        defect = find_structural_defect(rule)
        if defect is not None:
            logger.warning("Skipping malformed rule %s: %s", rule.id, defect)
            outcome.defect = _malformed_rule_warning(rule.id, _rule_label(rule), defect)
            return outcome

        try:
            outcome.fired = should_fire(rule, pathway)
        except Exception as e:
            logger.exception("Error evaluating rule %s", rule.id)
            outcome.error = Action(
                id=f"error-{rule.id}",
                type=ActionType.error,
                severity=ActionSeverity.high,
                message=f"Internal error evaluating rule: {_rule_label(rule)}",
                data={"rule_id": rule.id, "exception": type(e).__name__},
            )

        outcome.elapsed_ms = (time.perf_counter() - started) * 1000
        if outcome.elapsed_ms > self._options.soft_rule_budget_ms:
            logger.warning(
                "Rule %s exceeded maximum execution time: %.2f ms",
                rule.id,
                outcome.elapsed_ms,
            )
        return outcome

    def _merge(self, outcome: RuleOutcome, result: ValidationResult) -> None:
        if not outcome.evaluated:
            result.warnings.append(outcome.defect)
            return

        result.rules_evaluated += 1
        result.metrics.rule_timings_ms[outcome.rule.id] = outcome.elapsed_ms
        if outcome.elapsed_ms > self._options.soft_rule_budget_ms:
            result.metrics.slow_rules.append(outcome.rule.id)

        if outcome.error is not None:
            result.errors.append(outcome.error)
            return

        if not outcome.fired:
            return

        for action in outcome.rule.actions:
            if action.type in _ERROR_TYPES:
                result.errors.append(action)
            elif action.type in _WARNING_TYPES:
                result.warnings.append(action)
            elif action.type in _SUGGESTION_TYPES:
                result.suggestions.append(action)

    @staticmethod
    def _record_budget_exhausted(result: ValidationResult, remaining: int) -> None:
        logger.warning("Validation time budget exhausted, skipping %d rule(s)", remaining)
        result.metrics.budget_exhausted = True
        result.metrics.rules_skipped = remaining
        result.warnings.append(
            Action(
                id="validation-budget-exceeded",
                type=ActionType.warning,
                severity=ActionSeverity.medium,
                message=f"Validation time budget exceeded; {remaining} rule(s) not evaluated",
                data={"rules_skipped": remaining},
            )
        )
