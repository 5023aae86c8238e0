#!/usr/bin/env python3
"""
  >  C A V E R N  >
  A side-scrolling corridor runner for the terminal.

  A little ship drifts through an endless cave whose ceiling and floor are
  carved one column at a time by a bounded random walk. Treasure appears in
  the freshly dug gap every so often; grab it for a bonus. Touch the rock and
  the run is over. The longer you last, the faster the cave scrolls.

  This module is the simulation core: terrain, treasure, the player, the
  alive/dead session state machine and the fixed-tick driver. It never draws
  anything; the display backend (cavern_term.py) renders its snapshots.

  Controls (handled by the input backend):
    arrows    move one cell per press
    r         restart after a crash
    q / esc   quit

  Telemetry is logged to cavern_stats.csv beside this script.
"""

from __future__ import annotations

import enum
import queue
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, ClassVar, Iterable

import numpy as np
from numpy.typing import NDArray

# ── Play area ───────────────────────────────────────────────────────────
PLAY_W: int = 60
PLAY_H: int = 25
SPAWN_COL: int = 10
SPAWN_ROW: int = PLAY_H // 2
TOP_BASELINE: int = 2
BOTTOM_BASELINE: int = PLAY_H - 2

# ── Timing (milliseconds between ticks) ────────────────────────────────
TICK_MS_BASE: int = 70
TICK_MS_FLOOR: int = 24
TICK_MS_STEP: int = 2

# ── Treasure & scoring ──────────────────────────────────────────────────
SPAWN_PERIOD: int = 100     # ticks between treasure spawns
TREASURE_BONUS: int = 500

# ── Terrain walk ────────────────────────────────────────────────────────
MIN_GAP: int = 5            # rows kept open between the two edges
EDGE_MARGIN: int = 3        # edges stop drifting this close to the border
TOP_DRIFT: tuple[float, float] = (0.4, 0.6)
BOTTOM_DRIFT: tuple[float, float] = (0.3, 0.6)

RNG_SEED: int = 1998
INPUT_QUEUE_SIZE: int = 10

# ── Status line selector ────────────────────────────────────────────────
STATUS_PLAY: str = "play"
STATUS_DEAD: str = "dead"
STATUS_HINTS: dict[str, str] = {
    STATUS_PLAY: "move with arrows. press esc to quit",
    STATUS_DEAD: "you crashed! press r to restart, esc to quit",
}

LOG_PATH = Path(__file__).resolve().parent / "cavern_stats.csv"


@dataclass(frozen=True)
class CavernConfig:
    """Immutable geometry, timing and scoring for one session."""

    width: int = PLAY_W
    height: int = PLAY_H
    spawn_col: int = SPAWN_COL
    spawn_row: int = SPAWN_ROW
    top_baseline: int = TOP_BASELINE
    bottom_baseline: int = BOTTOM_BASELINE
    tick_ms: int = TICK_MS_BASE
    tick_ms_floor: int = TICK_MS_FLOOR
    tick_ms_step: int = TICK_MS_STEP
    spawn_period: int = SPAWN_PERIOD
    treasure_bonus: int = TREASURE_BONUS
    min_gap: int = MIN_GAP
    edge_margin: int = EDGE_MARGIN
    seed: int = RNG_SEED


# ═══════════════════════════════════════════════════════════════════════
#  Commands & positions
# ═══════════════════════════════════════════════════════════════════════

class Command(enum.Enum):
    MOVE_UP = "up"
    MOVE_DOWN = "down"
    MOVE_LEFT = "left"
    MOVE_RIGHT = "right"
    RESTART = "restart"
    QUIT = "quit"

    @property
    def delta(self) -> tuple[int, int]:
        """(dcol, drow) for movement commands, (0, 0) otherwise."""
        return _DELTAS.get(self, (0, 0))


_DELTAS: dict[Command, tuple[int, int]] = {
    Command.MOVE_UP: (0, -1),
    Command.MOVE_DOWN: (0, 1),
    Command.MOVE_LEFT: (-1, 0),
    Command.MOVE_RIGHT: (1, 0),
}


@dataclass(frozen=True)
class Position:
    """A play-area cell; row 0 is the top of the screen."""

    col: int
    row: int

    def moved(self, dcol: int, drow: int) -> "Position":
        return Position(self.col + dcol, self.row + drow)


def merge_commands(commands: Iterable[Command]) -> tuple[int, int, bool, bool]:
    """Fold a tick's worth of commands into (dcol, drow, restart, quit).

    Moves compound additively; clamping happens later, once per tick.
    """
    dcol = drow = 0
    restart = quit_ = False
    for command in commands:
        if command is Command.RESTART:
            restart = True
        elif command is Command.QUIT:
            quit_ = True
        else:
            dc, dr = command.delta
            dcol += dc
            drow += dr
    return dcol, drow, restart, quit_


def make_rng(seed: int = RNG_SEED) -> np.random.Generator:
    return np.random.default_rng(seed)


# ═══════════════════════════════════════════════════════════════════════
#  Terrain
# ═══════════════════════════════════════════════════════════════════════

def _drift(choice: float, edge: int, lo: float, hi: float,
           height: int, margin: int) -> int:
    """Direction for one edge: -1 sinks the row, +1 lifts it, 0 holds."""
    if choice < lo and edge < height - margin:
        return -1
    if choice > hi and edge > margin:
        return 1
    return 0


def _scroll(edge: NDArray[np.int16], direction: int) -> None:
    """Shift every column one step left and append the next one."""
    edge[:-1] = edge[1:]
    edge[-1] = edge[-2] - direction


class Terrain:
    """
    The cave: two fixed-width edge arrays, a sliding window over an endless
    corridor. Index 0 is about to scroll off; index W-1 is the newest column.

    Column c is open on rows ``top[c] < row <= bottom[c]``.
    """

    def __init__(self, config: CavernConfig | None = None) -> None:
        self._cfg: CavernConfig = config or CavernConfig()
        self.top: NDArray[np.int16] = np.empty(self._cfg.width, dtype=np.int16)
        self.bottom: NDArray[np.int16] = np.empty(self._cfg.width, dtype=np.int16)
        self.reset()

    def reset(self) -> None:
        self.top.fill(self._cfg.top_baseline)
        self.bottom.fill(self._cfg.bottom_baseline)

    @property
    def width(self) -> int:
        return self._cfg.width

    @property
    def rightmost_top(self) -> int:
        return int(self.top[-1])

    @property
    def rightmost_bottom(self) -> int:
        return int(self.bottom[-1])

    def gap(self) -> int:
        """Open rows in the newest column."""
        return self.rightmost_bottom - self.rightmost_top

    def is_wall(self, col: int, row: int) -> bool:
        return bool(row <= self.top[col] or row > self.bottom[col])

    def advance(self, rng: np.random.Generator) -> tuple[float, float]:
        """Scroll one column. Returns the two draws so treasure can reuse them."""
        cfg = self._cfg
        c1 = float(rng.random())
        c2 = float(rng.random())

        top_end = self.rightmost_top
        bottom_end = self.rightmost_bottom
        top_dir = _drift(c1, top_end, *TOP_DRIFT, cfg.height, cfg.edge_margin)
        bottom_dir = _drift(c2, bottom_end, *BOTTOM_DRIFT, cfg.height, cfg.edge_margin)

        # Pull the edges apart when they already touch the minimum gap, or
        # when this step would squeeze the new column below it.
        squeezed = (bottom_end - bottom_dir) - (top_end - top_dir) < cfg.min_gap
        if top_end + cfg.min_gap >= bottom_end or squeezed:
            top_dir, bottom_dir = 1, -1

        _scroll(self.top, top_dir)
        _scroll(self.bottom, bottom_dir)
        return c1, c2


# ═══════════════════════════════════════════════════════════════════════
#  Treasure
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Treasure:
    """The single treasure slot. Invisible until the first spawn."""

    position: Position = Position(0, 0)
    visible: bool = False

    def advance(
        self,
        top: NDArray[np.int16],
        bottom: NDArray[np.int16],
        c1: float,
        c2: float,
        countdown: int,
    ) -> str:
        """Spawn, scroll or expire. Returns "spawn", "miss" or ""."""
        if countdown <= 0:
            top_end, bottom_end = int(top[-1]), int(bottom[-1])
            depth = (c1 + c2) / 2 * (bottom_end - top_end)
            row = top_end + 1 + int(depth + 0.5)
            # depth can round up to the full gap, one row into the floor
            self.position = Position(len(top) - 1, min(row, bottom_end))
            self.visible = True
            return "spawn"

        if not self.visible:
            return ""
        if self.position.col == 0:
            self.visible = False
            return "miss"
        self.position = self.position.moved(-1, 0)
        return ""

    def collect(self, where: Position) -> bool:
        """Pick the treasure up if it sits on ``where``."""
        if self.visible and self.position == where:
            self.visible = False
            return True
        return False


# ═══════════════════════════════════════════════════════════════════════
#  Player
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Player:
    position: Position = Position(SPAWN_COL, SPAWN_ROW)
    alive: bool = True

    def apply(self, dcol: int, drow: int) -> None:
        self.position = self.position.moved(dcol, drow)

    def clamp(self, width: int, height: int) -> None:
        col = min(max(self.position.col, 0), width - 1)
        row = min(max(self.position.row, 0), height - 1)
        self.position = Position(col, row)

    def collides(self, terrain: Terrain) -> bool:
        return terrain.is_wall(self.position.col, self.position.row)

    def clamp_and_collide(self, terrain: Terrain, height: int) -> bool:
        """Clamp into the play area, then test the rock. Returns alive."""
        self.clamp(terrain.width, height)
        if self.collides(terrain):
            self.alive = False
        return self.alive


# ═══════════════════════════════════════════════════════════════════════
#  Session
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Snapshot:
    """Read-only view of a session handed to the display backend."""

    width: int
    height: int
    top_edge: tuple[int, ...]
    bottom_edge: tuple[int, ...]
    player: Position
    alive: bool
    treasure: Position
    treasure_visible: bool
    score: int
    tick_interval: int
    status: str

    @property
    def hint(self) -> str:
        return STATUS_HINTS[self.status]


class Session:
    """
    One run through the cave, and every restart after it.

    ``tick()`` is the only mutator during play. It returns an event label
    ("spawn", "pickup", "miss", "death", "restart", "speedup", joined with
    "+" when several land on one tick) or "" for an uneventful tick.
    """

    def __init__(self, config: CavernConfig | None = None) -> None:
        self.config: CavernConfig = config or CavernConfig()
        self.terrain: Terrain = Terrain(self.config)
        self.player: Player = Player(
            Position(self.config.spawn_col, self.config.spawn_row)
        )
        self.treasure: Treasure = Treasure()
        self.rng: np.random.Generator = make_rng(self.config.seed)
        self.score: int = 0
        self.countdown: int = self.config.spawn_period
        self.tick_interval: int = self.config.tick_ms
        self.ticks: int = 0
        self.restarts: int = 0
        self.terminated: bool = False

    def restart(self) -> None:
        """Rebuild the run from scratch with the same seed."""
        cfg = self.config
        self.terrain.reset()
        self.player = Player(Position(cfg.spawn_col, cfg.spawn_row))
        self.treasure = Treasure()
        self.rng = make_rng(cfg.seed)
        self.score = 0
        self.countdown = cfg.spawn_period
        self.tick_interval = cfg.tick_ms
        self.ticks = 0

    @property
    def alive(self) -> bool:
        return self.player.alive

    def tick(self, commands: Iterable[Command] = ()) -> str:
        """Advance exactly one tick with this tick's buffered commands."""
        if self.terminated:
            return ""
        dcol, drow, restart, quit_ = merge_commands(commands)
        if quit_:
            self.terminated = True

        if not self.player.alive:
            if restart:
                self.restart()
                self.restarts += 1
                return "restart"
            return ""

        cfg = self.config
        self.player.apply(dcol, drow)
        if not self.player.clamp_and_collide(self.terrain, cfg.height):
            return "death"

        events: list[str] = []
        c1, c2 = self.terrain.advance(self.rng)
        treasure_event = self.treasure.advance(
            self.terrain.top, self.terrain.bottom, c1, c2, self.countdown
        )
        if treasure_event == "spawn":
            self.countdown = cfg.spawn_period
        if treasure_event:
            events.append(treasure_event)

        if self.treasure.collect(self.player.position):
            self.score += cfg.treasure_bonus
            events.append("pickup")

        self.score += 1
        self.countdown -= 1
        self.ticks += 1

        if self.countdown == 0 and self.tick_interval > cfg.tick_ms_floor:
            self.tick_interval = max(
                cfg.tick_ms_floor, self.tick_interval - cfg.tick_ms_step
            )
            events.append("speedup")

        return "+".join(events)

    def snapshot(self) -> Snapshot:
        return Snapshot(
            width=self.config.width,
            height=self.config.height,
            top_edge=tuple(self.terrain.top.tolist()),
            bottom_edge=tuple(self.terrain.bottom.tolist()),
            player=self.player.position,
            alive=self.player.alive,
            treasure=self.treasure.position,
            treasure_visible=self.treasure.visible,
            score=self.score,
            tick_interval=self.tick_interval,
            status=STATUS_PLAY if self.player.alive else STATUS_DEAD,
        )


# ═══════════════════════════════════════════════════════════════════════
#  Stats logger
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes per-tick telemetry to CSV for post-hoc tuning."""

    HEADER: ClassVar[str] = (
        "tick,time_s,score,interval_ms,countdown,"
        "player_col,player_row,gap,event\n"
    )

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    @property
    def enabled(self) -> bool:
        return self._fh is not None

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(self, session: Session, event: str = "") -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        pos = session.player.position
        try:
            self._fh.write(
                f"{session.ticks},{t:.2f},{session.score},{session.tick_interval},"
                f"{session.countdown},{pos.col},{pos.row},"
                f"{session.terrain.gap()},{event}\n"
            )
            # Flush on events or periodically
            if event or session.ticks % 50 == 0:
                self._fh.flush()
        except OSError:
            self.close()

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Game loop
# ═══════════════════════════════════════════════════════════════════════

def drain(inputs: "queue.Queue[Command]") -> list[Command]:
    """Take everything currently buffered without waiting for more."""
    commands: list[Command] = []
    while True:
        try:
            commands.append(inputs.get_nowait())
        except queue.Empty:
            return commands


@dataclass
class GameLoop:
    """
    Fixed-interval driver. Each cycle waits for the next deadline, drains
    the input queue, ticks the session once and hands a snapshot to the
    renderer. The interval is read from the session every cycle, so a
    speedup applies from the following tick on.
    """

    session: Session
    inputs: "queue.Queue[Command]"
    render: Callable[[Snapshot], None]
    logger: StatsLogger | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    frames: int = field(default=0, init=False)

    def step(self) -> str:
        event = self.session.tick(drain(self.inputs))
        self.frames += 1
        if self.logger is not None and (event or self.frames % 10 == 0):
            self.logger.log(self.session, event)
        self.render(self.session.snapshot())
        return event

    def run(self) -> int:
        """Loop until a quit command lands. Returns the frame count."""
        next_at = self.clock() + self.session.tick_interval / 1000.0
        while not self.session.terminated:
            delay = next_at - self.clock()
            if delay > 0:
                self.sleep(delay)
            self.step()
            next_at += self.session.tick_interval / 1000.0
            # Fell behind (slow terminal): don't burst to catch up
            now = self.clock()
            if next_at < now:
                next_at = now
        return self.frames
