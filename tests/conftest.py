from __future__ import annotations

import pytest

from cavern import CavernConfig, Session


class ScriptedRng:
    """Stands in for numpy's Generator; hands out fixed draws in order."""

    def __init__(self, *draws: float) -> None:
        self._draws = list(draws)

    def random(self) -> float:
        return self._draws.pop(0)


@pytest.fixture
def config() -> CavernConfig:
    return CavernConfig()


@pytest.fixture
def session(config: CavernConfig) -> Session:
    return Session(config)


@pytest.fixture
def scripted_rng():
    return ScriptedRng
