from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolated_harvest_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep HARVEST_* variables from the developer shell or a .env file out of tests."""

    for name in list(os.environ):
        if name.startswith("HARVEST_"):
            monkeypatch.delenv(name, raising=False)
