"""Shared FastAPI dependencies."""

from __future__ import annotations

from pensive.rules.loader import RuleStore
from pensive.rules.orchestrator import ValidationOrchestrator

_orchestrator: ValidationOrchestrator | None = None
_rule_store: RuleStore | None = None


def get_orchestrator() -> ValidationOrchestrator:
    """FastAPI dependency: return the shared ValidationOrchestrator."""
    assert _orchestrator is not None, "ValidationOrchestrator not initialised"
    return _orchestrator


def get_rule_store() -> RuleStore:
    """FastAPI dependency: return the shared RuleStore."""
    assert _rule_store is not None, "RuleStore not initialised"
    return _rule_store
