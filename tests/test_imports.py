import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


def _import_in_fresh_interpreter(*modules: str) -> subprocess.CompletedProcess:
    code = "; ".join(f"import {module}" for module in modules)
    return subprocess.run(
        [sys.executable, "-c", code],
        cwd=ROOT,
        capture_output=True,
        text=True,
        timeout=60,
    )


@pytest.mark.parametrize(
    "modules",
    [
        ("api.main",),
        ("api.shared.auth", "api.di.container", "api.main"),
        ("api.features.chat.gateway", "api.main"),
    ],
)
def test_cold_import_order_has_no_cycle(modules):
    result = _import_in_fresh_interpreter(*modules)

    assert result.returncode == 0, result.stderr
