"""Shared test fixtures and configuration."""

import os
import sys
from pathlib import Path

# Add pensive_index/ to Python path so `from pensive.xxx` imports work
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "pensive_index"))

import pytest

os.environ["PENSIVE_DEV_MODE"] = "true"

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def rules_dir(fixtures_dir: Path) -> Path:
    return fixtures_dir / "rules"
