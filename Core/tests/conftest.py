from __future__ import annotations

import pytest

from selfheal.core.actions import HealingActions
from selfheal.core.resolver import LocatorResolver
from selfheal.logging.audit import HealingLog
from tests.helpers import FakeDriver, fast_settings, login_page


@pytest.fixture(autouse=True)
def clear_debug_flag(monkeypatch):
    monkeypatch.delenv("DEBUG_HEALING", raising=False)


@pytest.fixture()
def settings(tmp_path):
    return fast_settings(tmp_path)


@pytest.fixture()
def healing_log(settings):
    return HealingLog(settings)


@pytest.fixture()
def driver():
    return FakeDriver(login_page())


@pytest.fixture()
def resolver(driver, settings, healing_log):
    return LocatorResolver(driver, settings, healing_log)


@pytest.fixture()
def actions(resolver):
    return HealingActions(resolver)
