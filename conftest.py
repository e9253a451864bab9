# SPDX-License-Identifier: MIT
"""Pytest environment setup.

* Ensure the repository root is importable so tests can resolve in-tree
  packages without installing them.
* Pin BLAS thread pools so Monte Carlo timings stay comparable between runs.
* Accept ``--cov``/``--cov-report`` when ``pytest-cov`` is absent; CI passes
  those switches unconditionally.
"""

from __future__ import annotations

import os
import pathlib
import sys
import warnings
from typing import Iterable

import pytest

THREAD_BOUND_ENV_VARS = {
    "OMP_NUM_THREADS": "1",
    "OPENBLAS_NUM_THREADS": "1",
    "MKL_NUM_THREADS": "1",
}

for _env_key, _env_value in THREAD_BOUND_ENV_VARS.items():
    os.environ.setdefault(_env_key, _env_value)

ROOT = pathlib.Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _register_noop_cov_options(parser: pytest.Parser) -> None:
    """Register ``--cov`` flags when ``pytest-cov`` is unavailable."""

    group = parser.getgroup("cov", "coverage reporting")
    options: Iterable[tuple[str, dict[str, object]]] = (
        ("--cov", {"action": "append", "dest": "riskguard_cov", "metavar": "PATH", "default": []}),
        (
            "--cov-report",
            {"action": "append", "dest": "riskguard_cov_report", "metavar": "TYPE", "default": []},
        ),
    )
    for opt, kwargs in options:
        try:
            group.addoption(opt, **kwargs)
        except ValueError:
            # Already registered by pytest-cov.
            pass


def pytest_addoption(parser: pytest.Parser) -> None:
    try:
        import pytest_cov.plugin  # noqa: F401
    except ImportError:
        _register_noop_cov_options(parser)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "property: hypothesis-driven property tests")
    if config.pluginmanager.hasplugin("pytest_cov"):
        return
    cov_targets = config.getoption("riskguard_cov", default=None)
    cov_reports = config.getoption("riskguard_cov_report", default=None)
    if cov_targets or cov_reports:
        warnings.warn(
            "pytest-cov is not installed; coverage options are accepted but ignored.",
            pytest.PytestWarning,
            stacklevel=2,
        )
