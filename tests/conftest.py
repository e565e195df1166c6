# tests/conftest.py
"""Shared test fixtures and Hypothesis configuration.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from blobsink.core.templates import FilenameTemplate
from blobsink.engine.clock import MockClock
from blobsink.plugins.storage import LocalBlobProvider
from tests.fixtures.providers import MemoryBlobProvider

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def memory_provider() -> MemoryBlobProvider:
    return MemoryBlobProvider()


@pytest.fixture
def local_provider(tmp_path: Path) -> LocalBlobProvider:
    return LocalBlobProvider(tmp_path / "blobs")


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock()


@pytest.fixture
def default_template() -> FilenameTemplate:
    return FilenameTemplate("{{ topic }}-{{ partition }}-{{ start_offset }}")


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo configure_logging() calls made by CLI and logging tests."""
    yield
    structlog.reset_defaults()
    # Handlers may hold a captured stdout that pytest closes after the test
    logging.getLogger().handlers = []
