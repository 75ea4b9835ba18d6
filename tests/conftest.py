"""Pytest configuration for the wizard tests."""

import os
import sys
from pathlib import Path

import pytest

# Ensure project root is on PYTHONPATH
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Keep fallback text free of dev diagnostics so assertions match exactly
os.environ.pop("WIZARD_FALLBACK_DIAGNOSTICS", None)

from tests.fakes import build_harness  # noqa: E402
from party_wizard.config import clear_settings_cache  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def make_harness():
    """Factory for orchestrators over in-memory collaborators."""
    return build_harness


@pytest.fixture
def harness():
    return build_harness()
