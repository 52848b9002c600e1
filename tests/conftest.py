"""Shared fixtures for the metadata core tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def anyio_backend() -> str:
    """The coordinator binds to an asyncio loop, so trio is never exercised."""

    return "asyncio"
