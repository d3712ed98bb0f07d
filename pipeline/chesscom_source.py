#!/usr/bin/env python3
"""
Source B: Chess.com monthly archives

Walks a player's monthly game archives from most recent to oldest. Archive
records carry free-form PGN, so SAN moves are rebuilt with python-chess and
per-ply clocks are pulled out of the `[%clk H:MM:SS]` comments first.

Usage:
  python chesscom_source.py <username> --max-games 50
"""

import argparse
import asyncio
import io
import logging
import re
import sys
from pathlib import Path
from typing import Callable, Iterable
from urllib.parse import quote

import chess.pgn
import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))
from http_retry import fetch_with_retry, read_json
from models import SourceGame

logger = logging.getLogger(__name__)

CHESSCOM_ARCHIVES_API = "https://api.chess.com/pub/player/{username}/games/archives"
ARCHIVE_TIMEOUT = 20.0
CLOCK_ANNOTATION = re.compile(r"\[%clk\s+(\d+):(\d+):(\d+(?:\.\d+)?)\]")

# Chess.com has no "classical" class; its slow games are rapid or daily.
TIME_CLASS_ALIASES = {"classical": ("rapid", "daily")}


def extract_clocks(pgn: str) -> list[int]:
    """Clock annotations in order, as centiseconds."""
    clocks = []
    for hours, minutes, seconds in CLOCK_ANNOTATION.findall(pgn):
        total = int(hours) * 3600 + int(minutes) * 60 + float(seconds)
        clocks.append(round(total * 100))
    return clocks


def parse_pgn_moves(pgn: str) -> tuple[tuple[str, ...], tuple[int, ...]] | None:
    """SAN moves and clocks from PGN text; None if the text does not parse cleanly."""
    clocks = extract_clocks(pgn)
    try:
        game = chess.pgn.read_game(io.StringIO(pgn))
    except ValueError as e:
        logger.debug("Unreadable PGN: %s", e)
        return None
    if game is None or game.errors:
        return None

    board = game.board()
    moves = []
    for move in game.mainline_moves():
        moves.append(board.san(move))
        board.push(move)
    if not moves:
        return None
    return tuple(moves), tuple(clocks)


def allowed_time_classes(time_control: Iterable[str]) -> set[str] | None:
    """Chess.com time classes to keep, or None to keep everything."""
    selected = list(time_control)
    if not selected or "all" in selected:
        return None
    allowed = set()
    for tc in selected:
        allowed.update(TIME_CLASS_ALIASES.get(tc, (tc,)))
    return allowed


def _object(value) -> dict:
    return value if isinstance(value, dict) else {}


def _list(value) -> list:
    return value if isinstance(value, list) else []


def _player_fields(player: dict) -> tuple[str | None, int | None]:
    name, rating = player.get("username"), player.get("rating")
    if not isinstance(name, str):
        name = None
    if not isinstance(rating, int) or isinstance(rating, bool):
        rating = None
    return name, rating


def source_game_from_chesscom(record, username: str, allowed: set[str] | None = None) -> SourceGame | None:
    """Normalize one archive record; None when filtered out or unparseable."""
    if not isinstance(record, dict):
        return None
    if record.get("rules", "chess") != "chess":
        return None
    pgn = record.get("pgn")
    if not isinstance(pgn, str) or not pgn:
        return None
    time_class = record.get("time_class")
    if allowed is not None and time_class and time_class not in allowed:
        return None

    white_name, white_rating = _player_fields(_object(record.get("white")))
    black_name, black_rating = _player_fields(_object(record.get("black")))
    game = SourceGame(
        white_name=white_name,
        black_name=black_name,
        white_rating=white_rating,
        black_rating=black_rating,
    )
    if game.color_of(username) is None:
        return None

    parsed = parse_pgn_moves(pgn)
    if parsed is None:
        logger.debug("Skipping unparseable game %s", record.get("url", "?"))
        return None
    moves, clocks = parsed
    return SourceGame(
        move_tokens=moves,
        white_name=game.white_name,
        black_name=game.black_name,
        white_rating=game.white_rating,
        black_rating=game.black_rating,
        clocks_centiseconds=clocks or None,
    )


async def fetch_chesscom_games(
    client: httpx.AsyncClient,
    username: str,
    max_games: int,
    *,
    time_control: Iterable[str] = ("all",),
    on_archive: Callable[[int, int], None] | None = None,
) -> list[SourceGame]:
    """Collect up to max_games games, newest archive and newest game first."""
    url = CHESSCOM_ARCHIVES_API.format(username=quote(username.strip().lower()))
    listing = await fetch_with_retry(client, url, read_json, source="chess.com")
    if not isinstance(listing, dict):
        logger.warning("Archive listing for %s is not an object; no games fetched", username)
    archives = [a for a in reversed(_list(_object(listing).get("archives"))) if isinstance(a, str)]
    allowed = allowed_time_classes(time_control)

    collected: list[SourceGame] = []
    for index, archive_url in enumerate(archives):
        if len(collected) >= max_games:
            break
        if on_archive:
            on_archive(index + 1, len(archives))

        month = await fetch_with_retry(
            client, archive_url, read_json, source="chess.com", timeout=ARCHIVE_TIMEOUT
        )
        for record in reversed(_list(_object(month).get("games"))):
            game = source_game_from_chesscom(record, username, allowed)
            if game is None:
                continue
            collected.append(game)
            if len(collected) >= max_games:
                break

    return collected


async def main_async():
    parser = argparse.ArgumentParser()
    parser.add_argument("username")
    parser.add_argument("--max-games", type=int, default=50)
    args = parser.parse_args()

    async with httpx.AsyncClient() as client:
        games = await fetch_chesscom_games(client, args.username, args.max_games)
    print(f"Fetched {len(games)} games.")


def main():
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
