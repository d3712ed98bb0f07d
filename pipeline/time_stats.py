"""Player rating and time-management statistics over fetched games."""

import math
import statistics
import sys
from pathlib import Path
from typing import Sequence

sys.path.insert(0, str(Path(__file__).resolve().parent))
from models import SourceGame

MIN_CLOCKED_GAMES = 2
MIN_MOVE_TIMES = 10
SCRAMBLE_FRACTION = 0.1
EARLY_MOVES = 5


def median_player_rating(games: Sequence[SourceGame], username: str) -> int | None:
    """Median of the player's ratings across games where it is known."""
    ratings = []
    for game in games:
        color = game.color_of(username)
        rating = game.rating_of(color) if color else None
        if rating and rating > 0:
            ratings.append(rating)
    if not ratings:
        return None
    return round(statistics.median(ratings))


def own_clocks(game: SourceGame, color: str) -> list[int]:
    """The player's clock readings: every other ply, starting at their first move."""
    start = 0 if color == "white" else 1
    return list(game.clocks_centiseconds[start::2])


def time_management_score(games: Sequence[SourceGame], username: str) -> int | None:
    """
    0-100 blend of move-time consistency, scramble avoidance and early-game
    time use. None when there is too little clock data.
    """
    move_times: list[float] = []
    scrambles = 0
    clocked_games = 0

    for game in games:
        if not game.clocks_centiseconds or len(game.clocks_centiseconds) < 4:
            continue
        clocked_games += 1
        color = game.color_of(username)
        if color is None:
            continue
        clocks = own_clocks(game, color)
        if len(clocks) < 2:
            continue

        for previous, current in zip(clocks, clocks[1:]):
            move_times.append(max(0, previous - current) / 100)
        if clocks[0] > 0 and min(clocks) < clocks[0] * SCRAMBLE_FRACTION:
            scrambles += 1

    if clocked_games < MIN_CLOCKED_GAMES or len(move_times) < MIN_MOVE_TIMES:
        return None

    mean = statistics.fmean(move_times)
    cv = statistics.pstdev(move_times) / mean if mean > 0 else 2.0
    consistency = _bounded(100 * math.exp(-cv * 0.8))

    scramble = _bounded(100 * math.exp(-(scrambles / clocked_games) * 2))

    total = sum(move_times)
    early_ratio = sum(move_times[:EARLY_MOVES]) / total if total > 0 else 0.0
    waste = _bounded(100 * math.exp(-max(0.0, early_ratio - 0.15) * 5))

    return round(consistency * 0.45 + scramble * 0.35 + waste * 0.20)


def _bounded(value: float) -> float:
    return max(0.0, min(100.0, value))
