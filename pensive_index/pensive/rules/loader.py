"""Read-only rule packs loaded from YAML using ruamel.yaml.

A pack holds one fandom's rules and, optionally, its plot-block hierarchy::

    fandom_id: hp-fandom-1
    name: Harry Potter
    rules:
      - id: rule-1
        ...
    plot_blocks:
      - id: goblin-inheritance
        parent_id: inheritance

Rules are kept as raw mappings; parsing them is left to the orchestrator so
that a malformed rule is reported at validation time instead of failing the
whole pack.
"""

from __future__ import annotations

import logging
from io import StringIO
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from ruamel.yaml import YAML, YAMLError

logger = logging.getLogger(__name__)

PACK_SUFFIXES = (".yaml", ".yml")


class RulePackError(ValueError):
    """A rule pack could not be parsed."""

    def __init__(self, source: str, message: str, line: int | None = None) -> None:
        self.source = source
        self.line = line
        where = f"{source}:{line}" if line is not None else source
        super().__init__(f"{where}: {message}")


class RulePack(BaseModel):
    """One fandom's rules and plot-block hierarchy."""

    fandom_id: str
    name: str = ""
    rules: list[dict[str, Any]] = Field(default_factory=list)
    plot_blocks: list[dict[str, Any]] = Field(default_factory=list)


def _plain(obj: Any) -> Any:
    """Convert ruamel containers to plain dicts and lists."""
    if hasattr(obj, "items"):
        return {str(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_plain(v) for v in obj]
    return obj


def parse_rule_pack(yaml_str: str, source: str = "<string>") -> RulePack:
    """Parse a YAML rule pack, raising RulePackError on any problem."""
    if not yaml_str or not yaml_str.strip():
        raise RulePackError(source, "empty rule pack")

    yaml = YAML(typ="safe")
    try:
        parsed = yaml.load(StringIO(yaml_str))
    except YAMLError as e:
        line = None
        if getattr(e, "problem_mark", None) is not None:
            line = e.problem_mark.line + 1  # 0-indexed to 1-indexed
        raise RulePackError(source, str(e), line) from e

    parsed = _plain(parsed)
    if not isinstance(parsed, dict):
        raise RulePackError(source, "rule pack must be a mapping with a 'fandom_id' key")

    # Entries that are not mappings carry no id to report against
    raw_rules = parsed.get("rules")
    if raw_rules is not None and not isinstance(raw_rules, list):
        raise RulePackError(source, "'rules' must be a list")
    if raw_rules:
        kept = [r for r in raw_rules if isinstance(r, dict)]
        if len(kept) != len(raw_rules):
            logger.warning(
                "%s: dropped %d non-mapping rule entry(ies)",
                source,
                len(raw_rules) - len(kept),
            )
        parsed["rules"] = kept

    try:
        return RulePack.model_validate(parsed)
    except ValidationError as e:
        raise RulePackError(source, f"invalid rule pack: {e.error_count()} schema error(s)") from e


class RuleStore:
    """In-memory, read-only index of rule packs keyed by fandom."""

    def __init__(self, packs: list[RulePack] | None = None) -> None:
        self._packs: dict[str, RulePack] = {}
        for pack in packs or []:
            self.add(pack)

    @classmethod
    def from_path(cls, path: str | Path) -> RuleStore:
        """Load every pack under *path* (a file or a directory).

        Packs that fail to parse are logged and skipped.
        """
        store = cls()
        root = Path(path)
        if not root.exists():
            logger.warning("Rule pack path %s does not exist", root)
            return store

        files = [root] if root.is_file() else sorted(
            p for p in root.iterdir() if p.suffix in PACK_SUFFIXES
        )
        for file in files:
            try:
                store.add(parse_rule_pack(file.read_text(encoding="utf-8"), str(file)))
            except RulePackError as e:
                logger.error("Skipping rule pack: %s", e)

        logger.info("Loaded %d rule pack(s) from %s", len(store), root)
        return store

    def add(self, pack: RulePack) -> None:
        if pack.fandom_id in self._packs:
            logger.warning("Rule pack for fandom %s replaced", pack.fandom_id)
        self._packs[pack.fandom_id] = pack

    def get(self, fandom_id: str) -> RulePack | None:
        return self._packs.get(fandom_id)

    def rules_for(self, fandom_id: str | None) -> list[dict[str, Any]]:
        if not fandom_id:
            return []
        pack = self._packs.get(fandom_id)
        return list(pack.rules) if pack else []

    def plot_blocks_for(self, fandom_id: str | None) -> list[dict[str, Any]]:
        if not fandom_id:
            return []
        pack = self._packs.get(fandom_id)
        return list(pack.plot_blocks) if pack else []

    @property
    def fandom_ids(self) -> list[str]:
        return sorted(self._packs)

    def __len__(self) -> int:
        return len(self._packs)
