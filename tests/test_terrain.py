"""Terrain walk: scroll mechanics, drift thresholds and the gap guard."""

import numpy as np
import pytest

from cavern import (
    BOTTOM_BASELINE,
    PLAY_W,
    TOP_BASELINE,
    CavernConfig,
    Terrain,
    make_rng,
)


@pytest.fixture
def terrain(config: CavernConfig) -> Terrain:
    return Terrain(config)


def test_starts_flat_at_baseline(terrain):
    assert terrain.top.shape == (PLAY_W,)
    assert terrain.bottom.shape == (PLAY_W,)
    assert (terrain.top == TOP_BASELINE).all()
    assert (terrain.bottom == BOTTOM_BASELINE).all()
    assert terrain.gap() == BOTTOM_BASELINE - TOP_BASELINE


def test_advance_shifts_left_and_appends(terrain):
    terrain.top[:] = np.arange(PLAY_W) % 5 + 2
    before = terrain.top.copy()
    terrain.advance(make_rng(3))
    assert (terrain.top[:-1] == before[1:]).all()
    assert abs(int(terrain.top[-1]) - int(before[-1])) <= 1


def test_advance_returns_the_draws_it_used(terrain):
    expected = make_rng(11)
    c1, c2 = terrain.advance(make_rng(11))
    assert c1 == expected.random()
    assert c2 == expected.random()


@pytest.mark.parametrize(
    "c1, c2, top, bottom",
    [
        (0.5, 0.5, 2, 23),    # both flat
        (0.1, 0.5, 3, 23),    # top sinks
        (0.9, 0.5, 2, 23),    # top already at the ceiling margin
        (0.5, 0.9, 2, 22),    # bottom lifts
        (0.5, 0.1, 2, 23),    # bottom already at the floor margin
        (0.35, 0.35, 3, 23),  # 0.35 sinks the top but not the bottom
    ],
)
def test_drift_from_baseline(terrain, scripted_rng, c1, c2, top, bottom):
    terrain.advance(scripted_rng(c1, c2))
    assert terrain.rightmost_top == top
    assert terrain.rightmost_bottom == bottom


def test_bottom_sinks_below_threshold(terrain, scripted_rng):
    terrain.bottom[-1] = 15
    terrain.advance(scripted_rng(0.5, 0.25))
    assert terrain.rightmost_bottom == 16


def test_guard_forces_edges_apart_when_touching(terrain, scripted_rng):
    terrain.top[-1] = 10
    terrain.bottom[-1] = 15
    # draws that would close the gap further are overridden
    terrain.advance(scripted_rng(0.1, 0.9))
    assert terrain.rightmost_top == 9
    assert terrain.rightmost_bottom == 16


def test_guard_stops_a_step_from_squeezing_the_gap(terrain, scripted_rng):
    terrain.top[-1] = 10
    terrain.bottom[-1] = 16
    terrain.advance(scripted_rng(0.1, 0.9))
    assert terrain.rightmost_top == 9
    assert terrain.rightmost_bottom == 17


def test_wide_gap_may_narrow(terrain, scripted_rng):
    terrain.top[-1] = 10
    terrain.bottom[-1] = 17
    terrain.advance(scripted_rng(0.1, 0.9))
    assert terrain.gap() == 5


@pytest.mark.parametrize("seed", [0, 1, 1998, 424242])
def test_long_walk_keeps_shape_and_gap(config, seed):
    terrain = Terrain(config)
    rng = make_rng(seed)
    for _ in range(5000):
        terrain.advance(rng)
        assert len(terrain.top) == len(terrain.bottom) == config.width
        assert terrain.gap() >= config.min_gap
    assert (terrain.bottom - terrain.top).min() >= config.min_gap


def test_is_wall_uses_open_below_closed_above_interval(terrain):
    assert terrain.is_wall(5, 0)
    assert terrain.is_wall(5, TOP_BASELINE)
    assert not terrain.is_wall(5, TOP_BASELINE + 1)
    assert not terrain.is_wall(5, BOTTOM_BASELINE)
    assert terrain.is_wall(5, BOTTOM_BASELINE + 1)


def test_reset_restores_baseline(terrain):
    rng = make_rng(5)
    for _ in range(200):
        terrain.advance(rng)
    terrain.reset()
    assert (terrain.top == TOP_BASELINE).all()
    assert (terrain.bottom == BOTTOM_BASELINE).all()
