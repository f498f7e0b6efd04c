"""Pytest configuration and shared fixtures."""

import pytest
import sys
import os
import threading

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from offset_store import OffsetStore


@pytest.fixture
def sincedb_path(tmp_path):
    """Provide a path to a temporary sincedb file (not created)."""
    return str(tmp_path / "sincedb")


@pytest.fixture
def store(sincedb_path):
    """Provide an OffsetStore backed by a temporary file."""
    return OffsetStore(sincedb_path)


@pytest.fixture
def stop_event():
    """Provide a fresh, unset stop event."""
    return threading.Event()
