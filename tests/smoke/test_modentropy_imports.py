"""Import smoke tests for modentropy modules."""

from __future__ import annotations

import pytest

from tests.smoke.import_helpers import import_module_or_skip

MODULES = [
    "modentropy",
    "modentropy.cli_entry",
    "modentropy.config",
    "modentropy.constants",
    "modentropy.entropy",
    "modentropy.entropy.pipeline",
    "modentropy.informatics",
    "modentropy.logging_utils",
]


@pytest.mark.parametrize("module_name", MODULES)
@pytest.mark.smoke
def test_imports(module_name: str) -> None:
    import_module_or_skip(module_name)
