"""
Pytest configuration and fixtures for StaffDesk tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import Harness  # noqa: E402


@pytest.fixture()
def harness(tmp_path: Path) -> Harness:
    """Engine wired to in-memory collaborators, a fake clock and a tmp config file."""
    return Harness.build(tmp_path)
