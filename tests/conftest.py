"""Pytest configuration and fixtures."""

import logging
import os
import sys
from pathlib import Path

import ibis
import numpy as np
import pandas as pd
import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tablegate.lib import settings as settings_module  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Run every test against default settings, ignoring any local .env."""
    for name in list(os.environ):
        if name.startswith("TABLEGATE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(settings_module, "_settings", None)
    monkeypatch.setenv("TABLEGATE_RETRY_BACKOFF_SECONDS", "0")
    yield
    settings_module._settings = None


@pytest.fixture
def small_table():
    """13-row table with numeric, string, boolean and date columns.

    Column ``c`` holds two nulls (rows 3 and 12).
    """
    return pd.DataFrame(
        {
            "date": pd.date_range("2016-01-04", periods=13, freq="D"),
            "a": [2, 3, 6, 2, 5, 2, 7, 4, 3, 2, 4, 2, 1],
            "b": [
                "1-bcd-345",
                "5-jdo-903",
                "3-ldm-038",
                "2-dhe-923",
                "1-knw-093",
                "4-rif-329",
                "7-dnw-213",
                "3-skd-931",
                "9-lko-112",
                "9-jxm-324",
                "7-kfo-109",
                "1-ncg-325",
                "3-bqc-012",
            ],
            "c": [3, 8, 3, np.nan, 7, 4, 3, 2, 9, 9, 7, 8, np.nan],
            "d": [
                3423.29,
                9999.99,
                2343.23,
                3892.4,
                283.94,
                3291.03,
                843.34,
                1035.64,
                837.93,
                837.93,
                833.98,
                108.34,
                2230.09,
            ],
            "e": [True, True, True, False, False, False, True, True, False, False, False, False, True],
            "f": [
                "high",
                "low",
                "high",
                "mid",
                "low",
                "mid",
                "high",
                "low",
                "high",
                "high",
                "low",
                "low",
                "high",
            ],
        }
    )


@pytest.fixture
def bounded_table():
    """Rows with per-row lower and upper bounds, one bound missing."""
    return pd.DataFrame(
        {
            "value": [5, 1, 10, 7, 3],
            "lower": [1, 2, 1, np.nan, 3],
            "upper": [9, 9, 9, 9, 3],
        }
    )


@pytest.fixture
def con():
    """Create an Ibis DuckDB connection."""
    return ibis.duckdb.connect()


@pytest.fixture
def restore_root_logger():
    """Drop the handlers setup_logging installs and restore the root level."""
    root = logging.getLogger()
    before = set(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in before and not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
