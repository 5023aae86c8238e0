"""Headless harness: scripts, replay fingerprints and fake drawing."""

from dataclasses import replace

from cavern import Command, Session
from cavern_bench import (
    FakeWindow,
    draw_headless,
    replay_digest,
    run_replay,
    scripted_commands,
)


def test_script_is_reproducible():
    assert scripted_commands(500, seed=3) == scripted_commands(500, seed=3)
    assert scripted_commands(500, seed=3) != scripted_commands(500, seed=4)


def test_script_restarts_periodically():
    script = scripted_commands(800)
    assert len(script) == 800
    assert Command.RESTART in script[399]
    assert Command.RESTART in script[799]
    assert all(Command.RESTART not in tick for tick in script[:399])


def test_replay_is_deterministic():
    script = scripted_commands(1200, seed=1)
    assert replay_digest(run_replay(script)) == replay_digest(run_replay(script))


def test_different_seed_carves_a_different_cave(config):
    script = scripted_commands(300, seed=1)
    base = replay_digest(run_replay(script, config))
    other = replay_digest(run_replay(script, replace(config, seed=config.seed + 1)))
    assert base != other


def test_draw_headless_writes_every_row(session: Session):
    window = FakeWindow(40, 120)
    draw_headless(window, session.snapshot())
    assert window.calls == session.config.height + 1
