"""Shared fixtures for the test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from deployhook.models.settings import ManagerSettings
from deployhook.tests.fakes import FakeRunner, make_settings


@pytest.fixture()
def settings(tmp_path: Path) -> ManagerSettings:
    """Provide settings rooted in a temporary directory."""

    return make_settings(tmp_path)


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()
