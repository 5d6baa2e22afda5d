"""FastAPI application -- Pensive Index validation service entrypoint."""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI

import pensive.deps as deps
from pensive.api.validate import router as validate_router
from pensive.rules.loader import RuleStore
from pensive.rules.orchestrator import (
    DEFAULT_SUSPICIOUS_MARKERS,
    OrchestratorOptions,
    ValidationOrchestrator,
)

logger = logging.getLogger(__name__)


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else None


def _load_options() -> dict:
    """Load service options from the options file or env fallback."""
    opts_path = os.environ.get("PENSIVE_OPTIONS_PATH", "/data/options.json")
    if Path(opts_path).exists():
        return json.loads(Path(opts_path).read_text())

    markers = os.environ.get("PENSIVE_SUSPICIOUS_MARKERS")
    return {
        "rules_path": os.environ.get("PENSIVE_RULES_PATH", "/data/rules"),
        "soft_rule_budget_ms": _env_float("PENSIVE_SOFT_RULE_BUDGET_MS") or 50.0,
        "time_budget_ms": _env_float("PENSIVE_TIME_BUDGET_MS"),
        "max_workers": int(os.environ.get("PENSIVE_MAX_WORKERS", "1")),
        "suspicious_markers": (
            [m.strip() for m in markers.split(",") if m.strip()]
            if markers is not None
            else list(DEFAULT_SUSPICIOUS_MARKERS)
        ),
    }


def build_orchestrator(options: dict) -> ValidationOrchestrator:
    """Create the orchestrator from loaded options (unknown keys ignored)."""
    engine_options = OrchestratorOptions.model_validate(
        {k: v for k, v in options.items() if k in OrchestratorOptions.model_fields}
    )
    return ValidationOrchestrator(engine_options)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init resources on startup, clean up on shutdown."""
    log_level = logging.DEBUG if os.environ.get("PENSIVE_DEV_MODE") else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    options = _load_options()
    logger.info("Pensive Index starting with options: %s", options)

    deps._orchestrator = build_orchestrator(options)
    deps._rule_store = RuleStore.from_path(options.get("rules_path", "/data/rules"))
    logger.info(
        "Rule packs loaded for fandoms: %s",
        ", ".join(deps._rule_store.fandom_ids) or "(none)",
    )

    yield

    # Shutdown
    deps._orchestrator = None
    deps._rule_store = None


app = FastAPI(
    title="Pensive Index Validation",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(validate_router)


@app.get("/api/health")
async def health() -> dict:
    """Liveness probe with the number of loaded rule packs."""
    store = deps._rule_store
    return {
        "status": "ok",
        "rule_packs": len(store) if store is not None else 0,
    }
