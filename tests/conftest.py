from __future__ import annotations

from pathlib import Path

import pytest

from modentropy.informatics.bam_functions import ReadModCalls
from modentropy.informatics.modcall import CANONICAL_CALL, BaseModCall


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark all tests under tests/unit as unit tests."""
    for item in items:
        path = Path(str(item.fspath)).as_posix()
        if "/tests/unit/" in f"/{path}":
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def make_read():
    """Build a ReadModCalls from ``{(base, position): call}`` with the given span and strand."""

    def _make(calls, start, end, strand="+", name="read"):
        return ReadModCalls(dict(calls), start, end, strand, name)

    return _make


@pytest.fixture
def canonical_calls():
    """``(base, positions) -> {(base, p): CANONICAL}``."""

    def _calls(base, positions):
        return {(base, p): CANONICAL_CALL for p in positions}

    return _calls


@pytest.fixture
def methylated():
    return BaseModCall.modified("m")
