#!/usr/bin/env python3
"""
Terminal front end for Cavern: curses display, keyboard capture and the
process lifecycle around the simulation core in cavern.py.

Usage:
  python3 cavern_term.py                    # play
  python3 cavern_term.py --seed 7           # a different (still fixed) cave
  python3 cavern_term.py --no-stats         # don't write cavern_stats.csv
  python3 cavern_term.py --stats run.csv    # telemetry somewhere else
"""

from __future__ import annotations

import argparse
import curses
import os
import queue
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path

import numpy as np

from cavern import (
    INPUT_QUEUE_SIZE,
    LOG_PATH,
    CavernConfig,
    Command,
    GameLoop,
    Session,
    Snapshot,
    StatsLogger,
)

# ── Glyphs ──────────────────────────────────────────────────────────────
WALL = "#"
OPEN = " "
SHIP = ">"
WRECK = "X"
GOLD = "$"

ESC = 27
INPUT_POLL_MS = 100

KEY_COMMANDS: dict[int, Command] = {
    curses.KEY_UP: Command.MOVE_UP,
    curses.KEY_DOWN: Command.MOVE_DOWN,
    curses.KEY_LEFT: Command.MOVE_LEFT,
    curses.KEY_RIGHT: Command.MOVE_RIGHT,
    ord("r"): Command.RESTART,
    ord("R"): Command.RESTART,
    ord("q"): Command.QUIT,
    ord("Q"): Command.QUIT,
    ESC: Command.QUIT,
}


def key_to_command(key: int) -> Command | None:
    return KEY_COMMANDS.get(key)


# ═══════════════════════════════════════════════════════════════════════
#  Color management
# ═══════════════════════════════════════════════════════════════════════

# role → (foreground, background); -1 is the terminal default
PALETTE: dict[str, tuple[int, int]] = {
    "wall": (135, -1),      # blue-violet rock
    "ship": (218, -1),      # pink
    "wreck": (196, -1),
    "gold": (220, -1),
    "status": (218, -1),
}


@dataclass
class ColorMap:
    """Curses color pairs per drawing role; pair 0 when colors are missing."""

    _pairs: dict[str, int] = field(default_factory=dict)

    def setup(self) -> None:
        if not curses.has_colors():
            return
        curses.start_color()
        curses.use_default_colors()

        max_pairs = curses.COLOR_PAIRS - 1
        pair_id = 1
        for role, (fg, bg) in PALETTE.items():
            if pair_id > max_pairs:
                break
            # 8-color terminals: fall back to the nearest basic color
            if fg >= curses.COLORS:
                fg = fg % 8
            curses.init_pair(pair_id, fg, bg)
            self._pairs[role] = pair_id
            pair_id += 1

    def attr(self, role: str) -> int:
        return curses.color_pair(self._pairs.get(role, 0))


# ═══════════════════════════════════════════════════════════════════════
#  Rendering
# ═══════════════════════════════════════════════════════════════════════

def play_area_origin(term_rows: int, term_cols: int,
                     width: int, height: int) -> tuple[int, int]:
    """Top-left (row, col) that centers the play area, never negative."""
    return max((term_rows - height) // 2, 0), max((term_cols - width) // 2, 0)


def compose_frame(snap: Snapshot) -> list[str]:
    """The play area as one string per row, ship and treasure included."""
    rows = np.arange(snap.height)[:, None]
    top = np.asarray(snap.top_edge)[None, :]
    bottom = np.asarray(snap.bottom_edge)[None, :]
    grid = np.where((rows <= top) | (rows > bottom), WALL, OPEN)

    if snap.treasure_visible:
        grid[snap.treasure.row, snap.treasure.col] = GOLD
    grid[snap.player.row, snap.player.col] = SHIP if snap.alive else WRECK
    return ["".join(line) for line in grid.tolist()]


def too_small(term_rows: int, term_cols: int, snap: Snapshot) -> bool:
    # one spare row for the status bar
    return term_cols < snap.width or term_rows < snap.height + 1


def _addstr(stdscr: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    try:
        stdscr.addstr(y, x, text, attr)
    except curses.error:
        pass


def render(stdscr: curses.window, snap: Snapshot, cmap: ColorMap) -> None:
    """Draw the centered play area, the status bar and any size warning."""
    max_y, max_x = stdscr.getmaxyx()
    y0, x0 = play_area_origin(max_y - 1, max_x, snap.width, snap.height)

    stdscr.erase()
    wall_attr = cmap.attr("wall")
    for i, line in enumerate(compose_frame(snap)):
        if y0 + i >= max_y - 1:
            break
        _addstr(stdscr, y0 + i, x0, line[: max(max_x - x0, 0)], wall_attr)

    if snap.treasure_visible:
        _addstr(stdscr, y0 + snap.treasure.row, x0 + snap.treasure.col,
                GOLD, cmap.attr("gold") | curses.A_BOLD)
    if snap.alive:
        _addstr(stdscr, y0 + snap.player.row, x0 + snap.player.col,
                SHIP, cmap.attr("ship") | curses.A_BOLD)
    else:
        _addstr(stdscr, y0 + snap.player.row, x0 + snap.player.col,
                WRECK, cmap.attr("wreck") | curses.A_BOLD)

    if too_small(max_y, max_x, snap):
        text = (f"Terminal too small! Need at least {snap.width}x{snap.height + 1}, "
                f"now is {max_x}x{max_y}")
        _addstr(stdscr, 0, max((max_x - len(text)) // 2, 0), text[: max_x - 1],
                cmap.attr("status") | curses.A_BOLD)

    # ── Status bar ──────────────────────────────────────────────────
    left = f"  score {snap.score:,}  {snap.tick_interval}ms  "
    right = f"  {snap.hint}  "
    status_attr = cmap.attr("status")
    if not snap.alive:
        status_attr |= curses.A_BOLD
    _addstr(stdscr, max_y - 1, 0, left[: max_x - 1], curses.A_DIM)
    right_col = max(max_x - len(right) - 1, len(left))
    if right_col < max_x - 1:
        _addstr(stdscr, max_y - 1, right_col, right[: max_x - 1 - right_col], status_attr)

    stdscr.refresh()


# ═══════════════════════════════════════════════════════════════════════
#  Input capture
# ═══════════════════════════════════════════════════════════════════════

class InputPump(threading.Thread):
    """
    Blocks on the keyboard and feeds commands into the bounded queue.

    A full queue blocks the pump until the game loop drains it; nothing is
    dropped. getch() wakes every INPUT_POLL_MS so stop() is noticed.
    """

    def __init__(self, window: curses.window,
                 inputs: "queue.Queue[Command]") -> None:
        super().__init__(name="cavern-input", daemon=True)
        self._window = window
        self._inputs = inputs
        self._stopping = threading.Event()

    def run(self) -> None:
        while not self._stopping.is_set():
            try:
                key = self._window.getch()
            except curses.error:
                continue
            command = key_to_command(key)
            if command is not None:
                self._put(command)

    def _put(self, command: Command) -> None:
        while not self._stopping.is_set():
            try:
                self._inputs.put(command, timeout=INPUT_POLL_MS / 1000.0)
                return
            except queue.Full:
                continue

    def stop(self) -> None:
        self._stopping.set()


# ═══════════════════════════════════════════════════════════════════════
#  Main loop
# ═══════════════════════════════════════════════════════════════════════

def main(stdscr: curses.window, args: argparse.Namespace) -> int:
    curses.curs_set(0)
    stdscr.nodelay(True)

    cmap = ColorMap()
    cmap.setup()

    config = CavernConfig()
    if args.seed is not None:
        config = replace(config, seed=args.seed)
    session = Session(config)

    logger: StatsLogger | None = None
    if not args.no_stats:
        logger = StatsLogger(Path(args.stats))
        logger.open()

    # Keys are read on their own 1x1 window so getch() never refreshes
    # the play area from the input thread.
    keys = curses.newwin(1, 1, 0, 0)
    keys.keypad(True)
    keys.timeout(INPUT_POLL_MS)

    inputs: queue.Queue[Command] = queue.Queue(maxsize=INPUT_QUEUE_SIZE)
    pump = InputPump(keys, inputs)
    pump.start()

    loop = GameLoop(
        session=session,
        inputs=inputs,
        render=lambda snap: render(stdscr, snap, cmap),
        logger=logger,
    )
    try:
        render(stdscr, session.snapshot(), cmap)
        return loop.run()
    finally:
        pump.stop()
        pump.join(timeout=1.0)
        if logger is not None:
            logger.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fly through the cave. Grab the gold.")
    parser.add_argument("--seed", type=int, default=None,
                        help="RNG seed (the same seed always carves the same cave)")
    parser.add_argument("--stats", type=str, default=str(LOG_PATH),
                        help="Telemetry CSV path (default: beside the script)")
    parser.add_argument("--no-stats", action="store_true",
                        help="Don't write telemetry")
    return parser


def cli() -> None:
    args = build_parser().parse_args()
    # Make ESC register promptly instead of waiting for an escape sequence
    os.environ.setdefault("ESCDELAY", "25")
    try:
        curses.wrapper(main, args)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
