# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.


import pytest

from blockcast_core.runtime_config import EngineRuntimeConfig
from tests.fixtures.market_fixtures import build_harness, make_disputable_market, make_market


@pytest.fixture(autouse=True)
def _no_local_trace(monkeypatch):
    """Keep Trace from writing data/trace files during tests."""
    monkeypatch.delenv("BLOCKCAST_ENV", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("BLOCKCAST_LEDGER_EMULATOR_HOST", raising=False)


@pytest.fixture
def runtime():
    return EngineRuntimeConfig()


@pytest.fixture
def open_harness():
    """Engine over in-memory stores with one OPEN market and confident YES signals."""
    harness = build_harness(make_market())
    harness.seed_confident_yes()
    return harness


@pytest.fixture
def disputable_harness():
    """Engine over in-memory stores with one DISPUTABLE market resolved YES at 92."""
    return build_harness(make_disputable_market())
