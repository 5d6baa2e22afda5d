"""Tests for the validation API endpoints."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import pytest_asyncio

import pensive.deps as deps
from pensive.main import app, build_orchestrator
from pensive.rules.loader import RuleStore
from pensive.rules.orchestrator import ValidationOrchestrator


@pytest_asyncio.fixture
async def client(rules_dir: Path):
    """HTTP client against the app with the fixture rule packs loaded."""
    deps._orchestrator = ValidationOrchestrator()
    deps._rule_store = RuleStore.from_path(rules_dir)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    deps._orchestrator = None
    deps._rule_store = None


CONFLICT_INPUT = {
    "fandom_id": "hp-fandom-1",
    "selected_tags": ["harry-hermione-tag", "harry-ginny-tag"],
    "selected_plot_blocks": [],
}


@pytest.mark.asyncio
async def test_validate_with_loaded_pack(client: httpx.AsyncClient) -> None:
    resp = await client.post("/api/validate", json={"input": CONFLICT_INPUT})
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_valid"] is False
    assert body["rules_evaluated"] == 2
    assert [e["message"] for e in body["errors"]] == [
        "Cannot select both Harry/Hermione and Harry/Ginny ships"
    ]
    assert set(body) == {
        "is_valid", "errors", "warnings", "suggestions", "execution_time_ms", "rules_evaluated",
    }


@pytest.mark.asyncio
async def test_validate_with_inline_rules(client: httpx.AsyncClient) -> None:
    rules = [
        {
            "id": "inline",
            "name": "Time travel note",
            "fandom_id": "hp-fandom-1",
            "conditions": [{"id": "c", "type": "tag_present", "target": "time-travel", "value": True}],
            "actions": [{"id": "note", "type": "warning", "severity": "low", "message": "Time travel!"}],
        }
    ]
    resp = await client.post(
        "/api/validate",
        json={"input": {"fandom_id": "hp-fandom-1", "selected_tags": ["time-travel"]}, "rules": rules},
    )
    body = resp.json()
    assert body["is_valid"] is True
    assert body["warnings"] == [
        {"id": "note", "type": "warning", "severity": "low", "message": "Time travel!"}
    ]
    assert body["rules_evaluated"] == 1


@pytest.mark.asyncio
async def test_validate_malformed_inline_rule(client: httpx.AsyncClient) -> None:
    rules = [
        {
            "id": "malformed",
            "name": "Malformed Rule",
            "fandom_id": "hp-fandom-1",
            "conditions": [{"id": "bad-cond", "type": "invalid_type", "operator": "invalid_op"}],
        }
    ]
    resp = await client.post(
        "/api/validate", json={"input": {"fandom_id": "hp-fandom-1"}, "rules": rules}
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["is_valid"] is True
    assert [w["id"] for w in body["warnings"]] == ["malformed-rule-malformed"]


@pytest.mark.asyncio
async def test_validate_unknown_fandom(client: httpx.AsyncClient) -> None:
    resp = await client.post("/api/validate", json={"input": {"fandom_id": "pjo"}})
    body = resp.json()
    assert body["is_valid"] is True
    assert [w["id"] for w in body["warnings"]] == ["nonexistent-fandom"]


@pytest.mark.asyncio
async def test_validate_checks_pack_hierarchy(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/api/validate", json={"input": CONFLICT_INPUT, "check_hierarchy": True}
    )
    # The fixture hierarchy is acyclic; only the ship conflict remains
    assert len(resp.json()["errors"]) == 1


@pytest.mark.asyncio
async def test_validate_inline_cycle(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/api/validate",
        json={
            "input": {"fandom_id": "hp-fandom-1"},
            "plot_blocks": [{"id": "a", "parent_id": "b"}, {"id": "b", "parent_id": "a"}],
        },
    )
    errors = resp.json()["errors"]
    assert [e["id"] for e in errors] == ["circular-dependency-1"]
    assert errors[0]["data"] == {"chain": ["a", "b", "a"]}


@pytest.mark.asyncio
async def test_validate_rule_without_conditions_key(client: httpx.AsyncClient) -> None:
    rules = [{"id": "bare", "name": "Bare Rule", "fandom_id": "hp-fandom-1", "actions": []}]
    resp = await client.post(
        "/api/validate", json={"input": {"fandom_id": "hp-fandom-1"}, "rules": rules}
    )
    body = resp.json()
    assert [w["id"] for w in body["warnings"]] == ["malformed-rule-bare"]
    assert body["rules_evaluated"] == 0


@pytest.mark.asyncio
async def test_validate_missing_prerequisite(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/api/validate",
        json={
            "input": {"fandom_id": "hp-fandom-1", "selected_plot_blocks": ["lordship"]},
            "rules": [],
            "plot_blocks": [
                {"id": "goblin-inheritance", "name": "Goblin Inheritance"},
                {"id": "lordship", "name": "Lordship", "dependencies": ["goblin-inheritance"]},
            ],
        },
    )
    body = resp.json()
    assert body["is_valid"] is False
    assert [e["message"] for e in body["errors"]] == ["Lordship requires Goblin Inheritance"]


@pytest.mark.asyncio
async def test_cycle_endpoint(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/api/plot-blocks/cycles",
        json={
            "plot_blocks": [
                {"id": "a", "parent_id": "c"},
                {"id": "b", "parent_id": "a"},
                {"id": "c", "parent_id": "b"},
            ]
        },
    )
    body = resp.json()
    assert body["has_cycles"] is True
    assert body["errors"] == ["Circular dependency detected: a → c → b → a"]
    assert body["chains"] == [["a", "c", "b", "a"]]


@pytest.mark.asyncio
async def test_cycle_endpoint_acyclic(client: httpx.AsyncClient) -> None:
    resp = await client.post(
        "/api/plot-blocks/cycles",
        json={"plot_blocks": [{"id": "root"}, {"id": "child", "parent_id": "root"}]},
    )
    assert resp.json() == {"has_cycles": False, "errors": [], "chains": []}


@pytest.mark.asyncio
async def test_get_fandom_rules(client: httpx.AsyncClient) -> None:
    resp = await client.get("/api/fandoms/hp-fandom-1/rules")
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Harry Potter"
    assert body["total_rules"] == 2


@pytest.mark.asyncio
async def test_get_fandom_rules_unknown(client: httpx.AsyncClient) -> None:
    resp = await client.get("/api/fandoms/pjo/rules")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_health(client: httpx.AsyncClient) -> None:
    resp = await client.get("/api/health")
    assert resp.json() == {"status": "ok", "rule_packs": 1}


class TestBuildOrchestrator:
    def test_ignores_unrelated_options(self) -> None:
        engine = build_orchestrator(
            {"rules_path": "/tmp/rules", "max_workers": 3, "soft_rule_budget_ms": 20}
        )
        assert engine.options.max_workers == 3
        assert engine.options.soft_rule_budget_ms == 20

    def test_rejects_bad_values(self) -> None:
        with pytest.raises(ValueError):
            build_orchestrator({"max_workers": 0})
