"""Pathway validation API endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pensive.deps import get_orchestrator, get_rule_store
from pensive.rules.graph import find_cycles
from pensive.rules.loader import RuleStore
from pensive.rules.models import Action, PlotBlockNode
from pensive.rules.orchestrator import ValidationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["validation"])


class ValidateRequest(BaseModel):
    # Parsed by the orchestrator, which turns bad shapes into result entries
    input: dict[str, Any] = Field(..., description="Pathway selections for one fandom")
    rules: list[Any] | None = Field(
        None, description="Rules to evaluate; defaults to the fandom's loaded rule pack"
    )
    plot_blocks: list[Any] | None = Field(
        None, description="Plot-block hierarchy to check for cycles and missing prerequisites"
    )
    check_hierarchy: bool = Field(
        False, description="Also check the loaded pack's plot-block hierarchy"
    )


class ValidateResponse(BaseModel):
    is_valid: bool
    errors: list[Action] = Field(default_factory=list)
    warnings: list[Action] = Field(default_factory=list)
    suggestions: list[Action] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    rules_evaluated: int = 0


class CycleCheckRequest(BaseModel):
    plot_blocks: list[PlotBlockNode] = Field(default_factory=list)


class CycleCheckResponse(BaseModel):
    has_cycles: bool
    errors: list[str] = Field(default_factory=list)
    chains: list[list[str]] = Field(default_factory=list)


class RulePackResponse(BaseModel):
    fandom_id: str
    name: str = ""
    rules: list[dict[str, Any]] = Field(default_factory=list)
    plot_blocks: list[dict[str, Any]] = Field(default_factory=list)
    total_rules: int = 0


@router.post(
    "/validate",
    response_model=ValidateResponse,
    response_model_exclude_none=True,
)
async def validate_pathway(
    body: ValidateRequest,
    orchestrator: ValidationOrchestrator = Depends(get_orchestrator),
    store: RuleStore = Depends(get_rule_store),
) -> ValidateResponse:
    """Validate a pathway against inline rules or the fandom's rule pack."""
    fandom_id = body.input.get("fandom_id")
    fandom_key = fandom_id if isinstance(fandom_id, str) else None

    rules = body.rules if body.rules is not None else store.rules_for(fandom_key)
    plot_blocks = body.plot_blocks
    if plot_blocks is None and body.check_hierarchy:
        plot_blocks = store.plot_blocks_for(fandom_key)

    result = orchestrator.validate(body.input, rules, plot_blocks)
    logger.info(
        "Validated pathway for fandom %s: valid=%s, %d rule(s) in %.2f ms",
        fandom_id,
        result.is_valid,
        result.rules_evaluated,
        result.execution_time_ms,
    )
    return ValidateResponse.model_validate(result.to_wire())


@router.post("/plot-blocks/cycles", response_model=CycleCheckResponse)
async def check_plot_block_cycles(body: CycleCheckRequest) -> CycleCheckResponse:
    """Report circular parent/dependency chains in a plot-block hierarchy."""
    reports = find_cycles(body.plot_blocks)
    return CycleCheckResponse(
        has_cycles=bool(reports),
        errors=[r.message for r in reports],
        chains=[r.chain for r in reports],
    )


@router.get("/fandoms/{fandom_id}/rules", response_model=RulePackResponse)
async def get_fandom_rules(
    fandom_id: str,
    store: RuleStore = Depends(get_rule_store),
) -> RulePackResponse:
    """Return the loaded rule pack for a fandom."""
    pack = store.get(fandom_id)
    if pack is None:
        raise HTTPException(status_code=404, detail=f"No rule pack for fandom '{fandom_id}'")
    return RulePackResponse(
        fandom_id=pack.fandom_id,
        name=pack.name,
        rules=pack.rules,
        plot_blocks=pack.plot_blocks,
        total_rules=len(pack.rules),
    )
