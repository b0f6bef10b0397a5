"""
Shared pytest configuration and fixtures for meek-stv-count.

This module provides common test fixtures and utilities used across
all test modules.
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ballots.blt_parser import clean, parse  # noqa: E402
from meek.stv import MeekSTV  # noqa: E402
from meek.tiebreak import FixedTieBreaker  # noqa: E402

SAMPLES_DIR = Path(__file__).parent / "golden" / "samples"


def build_blt(header, ballots, names, title="Test election", withdrawn=None):
    """Assemble the text of a ballot file from its parts."""
    lines = [header]
    if withdrawn:
        lines.append(" ".join(f"-{candidate}" for candidate in withdrawn))
    lines.extend(f"1 {ballot} 0" for ballot in ballots)
    lines.append("0")
    lines.extend(f'"{name}" # Candidate {i}' for i, name in enumerate(names, 1))
    lines.append(f'"{title}"')
    return "\n".join(lines) + "\n"


def run_count(text, tie_breaker=None):
    """Parse, clean and count a ballot file, returning the finished MeekSTV."""
    stv = MeekSTV(clean(parse(text)), tie_breaker=tie_breaker or FixedTieBreaker())
    stv.count_ballots()
    return stv


@pytest.fixture
def make_blt():
    """Provide the ballot file builder."""
    return build_blt


@pytest.fixture
def count():
    """Provide a function that counts ballot file text with a fixed tie-breaker."""
    return run_count


@pytest.fixture
def samples_dir():
    """Directory holding the golden ballot files and expected reports."""
    return SAMPLES_DIR


@pytest.fixture
def two_candidate_blt():
    """Two candidates, one seat, Alice ahead 2 to 1."""
    return build_blt("2 1", ["1", "1", "2"], ["Alice", "Bob"])


@pytest.fixture
def elimination_blt():
    """Three candidates (after a withdrawal) and one seat, decided by an elimination."""
    return build_blt(
        "4 1",
        ["1"] * 4 + ["2"] * 3 + ["3 4 2"] * 2,
        ["Alice", "Bob", "Carol", "Dave"],
        withdrawn=[4],
    )


@pytest.fixture
def surplus_blt():
    """Three candidates and two seats, decided by a surplus transfer."""
    return build_blt(
        "3 2",
        ["1 2"] * 4 + ["2"] + ["3"] * 2,
        ["Alice", "Bob", "Carol"],
    )


@pytest.fixture
def strong_tie_blt():
    """Alice and Bob tied at every round once Carol is eliminated."""
    return build_blt("3 1", ["1", "1", "2", "2", "3"], ["Alice", "Bob", "Carol"])


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (files on disk, full pipeline)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden report validation (byte-exact output)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as mathematical invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
