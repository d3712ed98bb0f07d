#!/usr/bin/env python3
"""
Leak Report: full analysis run

Fetches a player's games, aggregates repeated opening positions, scans for
missed tactics, and assembles the AnalysisReport. Progress is reported at
phase boundaries through an optional callback.

Usage:
  python leak_report.py <username> --source lichess --max-games 200
  python leak_report.py <username> --source chesscom --scan-mode tactics --json
  STOCKFISH_PATH=/usr/bin/stockfish python leak_report.py <username> --depth 14
"""

import argparse
import asyncio
import json
import logging
import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))
from engine_oracle import EngineOracle
from errors import SourceUnavailable
from game_sources import SOURCE_KINDS, fetch_games
from models import AnalysisDiagnostics, AnalysisReport, ProgressEvent
from opening_aggregator import CP_LOSS_THRESHOLD, aggregate_opening_positions, evaluate_repeated_positions
from tactic_scanner import MAX_TACTICS, scan_missed_tactics
from time_stats import median_player_rating, time_management_score

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAMES = 200
DEFAULT_MAX_OPENING_MOVES = 12
DEFAULT_ENGINE_DEPTH = 10
SCAN_MODES = ("openings", "tactics", "both")
TIME_CONTROLS = ("bullet", "blitz", "rapid", "classical", "all")


def clamp_int(value, fallback: int, low: int, high: int) -> int:
    """Floor value into [low, high]; non-numbers and NaN fall back."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return fallback
    if math.isinf(value):
        return high if value > 0 else low
    return min(high, max(low, math.floor(value)))


@dataclass
class AnalyzeOptions:
    max_games: int = DEFAULT_MAX_GAMES
    max_opening_moves: int = DEFAULT_MAX_OPENING_MOVES
    cp_loss_threshold: int = CP_LOSS_THRESHOLD
    engine_depth: int = DEFAULT_ENGINE_DEPTH
    source: str = "lichess"
    scan_mode: str = "both"
    max_tactics: int = MAX_TACTICS
    time_control: Iterable[str] | str = ("all",)
    on_progress: Callable[[ProgressEvent], None] | None = None

    def __post_init__(self):
        self.max_games = clamp_int(self.max_games, DEFAULT_MAX_GAMES, 1, 1000)
        self.max_opening_moves = clamp_int(self.max_opening_moves, DEFAULT_MAX_OPENING_MOVES, 1, 30)
        self.cp_loss_threshold = clamp_int(self.cp_loss_threshold, CP_LOSS_THRESHOLD, 1, 1000)
        self.engine_depth = clamp_int(self.engine_depth, DEFAULT_ENGINE_DEPTH, 6, 24)
        self.max_tactics = clamp_int(self.max_tactics, MAX_TACTICS, 1, 200)
        if self.source not in SOURCE_KINDS:
            raise ValueError(f"source must be one of {SOURCE_KINDS}, got {self.source!r}")
        if self.scan_mode not in SCAN_MODES:
            raise ValueError(f"scan_mode must be one of {SCAN_MODES}, got {self.scan_mode!r}")
        if isinstance(self.time_control, str):
            self.time_control = (self.time_control,)
        self.time_control = tuple(self.time_control) or ("all",)
        unknown = [tc for tc in self.time_control if tc not in TIME_CONTROLS]
        if unknown:
            raise ValueError(f"Unknown time control(s): {', '.join(unknown)}")

    @property
    def max_opening_plies(self) -> int:
        return self.max_opening_moves * 2

    @property
    def scans_openings(self) -> bool:
        return self.scan_mode in ("openings", "both")

    @property
    def scans_tactics(self) -> bool:
        return self.scan_mode in ("tactics", "both")


def _emit(options: AnalyzeOptions, event: ProgressEvent) -> None:
    """Invoke the progress callback; its failures never abort the run."""
    if options.on_progress is None:
        return
    try:
        options.on_progress(event)
    except Exception:
        logger.exception("Progress callback failed during %s", event.phase)


def _every_tenth(current: int, total: int) -> bool:
    return (current - 1) % 10 == 0 or current == total


async def analyze(
    identifier: str,
    options: AnalyzeOptions | None = None,
    *,
    oracle=None,
    client: httpx.AsyncClient | None = None,
) -> AnalysisReport:
    """
    Run the whole pipeline for one player.

    Raises SourceUnavailable when games cannot be fetched. Engine failures are
    per-position skips recorded in the diagnostics, never errors.
    """
    options = options or AnalyzeOptions()
    owns_oracle = oracle is None
    if owns_oracle:
        oracle = EngineOracle()
    try:
        return await _run(identifier, options, oracle, client)
    finally:
        if owns_oracle:
            await oracle.close()


async def _run(identifier: str, options: AnalyzeOptions, oracle, client) -> AnalysisReport:
    def emit(event: ProgressEvent) -> None:
        _emit(options, event)

    games = await fetch_games(
        identifier, options.max_games, options.source,
        client=client, time_control=options.time_control, on_progress=emit,
    )
    emit(ProgressEvent("parse", "Parsing games", f"Extracting opening moves from {len(games)} games", percent=40))

    diagnostics = AnalysisDiagnostics()
    leaks = []
    repeated_count = 0
    if options.scans_openings:
        def on_game(current: int, total: int) -> None:
            if _every_tenth(current, total):
                emit(ProgressEvent(
                    "parse", "Parsing games", f"{current} of {total} games processed",
                    current=current, total=total, percent=40 + round(current / total * 15),
                ))

        aggregation = aggregate_opening_positions(games, identifier, options.max_opening_plies, on_game=on_game)
        games_analyzed = aggregation.games_analyzed
        diagnostics.game_traces.extend(aggregation.game_traces)
        repeated = aggregation.repeated()
        repeated_count = len(repeated)

        emit(ProgressEvent(
            "aggregate", f"{repeated_count} recurring positions found",
            "Positions reached 3+ times are opening habits", percent=56,
        ))
        emit(ProgressEvent(
            "eval", "Engine evaluation starting",
            f"Depth {options.engine_depth} analysis on {repeated_count} positions", percent=58,
        ))

        def on_position(current: int, total: int) -> None:
            if (current - 1) % 5 == 0 or current == total:
                emit(ProgressEvent(
                    "eval", "Evaluating positions", f"Position {current} of {total}",
                    current=current, total=total, percent=58 + round(current / total * 22),
                ))

        leaks, traces = await evaluate_repeated_positions(
            repeated, oracle, options.engine_depth, options.cp_loss_threshold, on_position=on_position
        )
        diagnostics.position_traces.extend(traces)
    else:
        games_analyzed = sum(1 for game in games if game.move_tokens and game.color_of(identifier))

    tactics = []
    total_tactics = 0
    if options.scans_tactics:
        emit(ProgressEvent(
            "tactics", "Hunting for missed tactics",
            f"Scanning {len(games)} games for missed wins", percent=81,
        ))

        def on_tactic_game(current: int, total: int) -> None:
            if _every_tenth(current, total):
                emit(ProgressEvent(
                    "tactics", "Scanning for missed tactics", f"Game {current} of {total}",
                    current=current, total=total, percent=81 + round(current / total * 16),
                ))

        scan = await scan_missed_tactics(
            games, identifier, oracle, options.engine_depth,
            max_tactics=options.max_tactics, on_game=on_tactic_game,
        )
        tactics = scan.tactics
        total_tactics = scan.total_found
        diagnostics.tactic_traces.extend(scan.traces)

    emit(ProgressEvent(
        "done", "Analysis complete",
        f"Found {len(leaks)} opening leak(s) and {len(tactics)} missed tactic(s)", percent=100,
    ))

    return AnalysisReport(
        username=identifier,
        games_analyzed=games_analyzed,
        repeated_position_count=repeated_count,
        leaks=tuple(leaks),
        missed_tactics=tuple(tactics),
        total_tactics_found=total_tactics,
        diagnostics=diagnostics,
        player_rating=median_player_rating(games, identifier),
        time_management_score=time_management_score(games, identifier),
    )


def print_progress(event: ProgressEvent) -> None:
    counter = f" ({event.current}/{event.total})" if event.current is not None and event.total else ""
    print(f"[{event.percent:3d}%] {event.message}{counter}", file=sys.stderr)


async def main_async():
    parser = argparse.ArgumentParser()
    parser.add_argument("username")
    parser.add_argument("--source", choices=SOURCE_KINDS, default="lichess")
    parser.add_argument("--max-games", type=int, default=DEFAULT_MAX_GAMES)
    parser.add_argument("--opening-moves", type=int, default=DEFAULT_MAX_OPENING_MOVES)
    parser.add_argument("--threshold", type=int, default=CP_LOSS_THRESHOLD, help="Centipawn loss that counts as a leak")
    parser.add_argument("--depth", type=int, default=DEFAULT_ENGINE_DEPTH)
    parser.add_argument("--scan-mode", choices=SCAN_MODES, default="both")
    parser.add_argument("--max-tactics", type=int, default=MAX_TACTICS)
    parser.add_argument("--time-control", nargs="+", choices=TIME_CONTROLS, default=["all"])
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    options = AnalyzeOptions(
        max_games=args.max_games,
        max_opening_moves=args.opening_moves,
        cp_loss_threshold=args.threshold,
        engine_depth=args.depth,
        source=args.source,
        scan_mode=args.scan_mode,
        max_tactics=args.max_tactics,
        time_control=args.time_control,
        on_progress=print_progress,
    )

    try:
        report = await analyze(args.username, options)
    except SourceUnavailable as e:
        print(f"Could not fetch games: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    print(f"Analyzed {report.games_analyzed} games, {report.repeated_position_count} repeated positions.")
    for leak in report.leaks[:20]:
        print(f"  -{leak.centipawn_loss:5d} cp | {leak.player_move:7s} x{leak.move_count}/{leak.reach_count} | {', '.join(leak.tags)}")
    print(f"Missed tactics: {len(report.missed_tactics)} (of {report.total_tactics_found} found)")
    for tactic in report.missed_tactics[:20]:
        print(f"  -{tactic.centipawn_loss:5d} cp | game {tactic.game_index} move {tactic.move_number} | {', '.join(tactic.tags)}")


def main():
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
