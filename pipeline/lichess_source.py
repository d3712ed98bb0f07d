#!/usr/bin/env python3
"""
Source A: Lichess game export

Streams a player's recent games from the Lichess export API as NDJSON.
Each record already carries space-separated SAN moves and a per-ply clock
array in centiseconds.

Usage:
  python lichess_source.py <username> --max-games 50
  LICHESS_TOKEN=xxx python lichess_source.py <username>  # for higher rate limit
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Iterable
from urllib.parse import quote

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))
from http_retry import fetch_with_retry
from models import SourceGame

logger = logging.getLogger(__name__)

LICHESS_GAMES_API = "https://lichess.org/api/games/user/{username}"
LICHESS_SPEEDS = ("bullet", "blitz", "rapid", "classical")
STREAM_TIMEOUT = 60.0
STREAM_TOTAL_TIMEOUT = 300.0


def _object(value) -> dict:
    return value if isinstance(value, dict) else {}


def _player(record: dict, color: str) -> dict:
    return _object(_object(record.get("players")).get(color))


def _name(player: dict) -> str | None:
    name = _object(player.get("user")).get("name")
    return name if isinstance(name, str) else None


def _rating(player: dict) -> int | None:
    rating = player.get("rating")
    return rating if isinstance(rating, int) and not isinstance(rating, bool) else None


def _clocks(value) -> tuple[int, ...] | None:
    """Per-ply clocks, or None unless every entry is an integer."""
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(c, int) and not isinstance(c, bool) for c in value):
        return None
    return tuple(value)


def source_game_from_lichess(record) -> SourceGame | None:
    """Normalize one export record; None when it is not an object or carries no moves."""
    if not isinstance(record, dict):
        return None
    moves = record.get("moves")
    if not isinstance(moves, str) or not moves.strip():
        return None
    white, black = _player(record, "white"), _player(record, "black")
    return SourceGame(
        move_tokens=tuple(moves.split()),
        white_name=_name(white),
        black_name=_name(black),
        white_rating=_rating(white),
        black_rating=_rating(black),
        clocks_centiseconds=_clocks(record.get("clocks")),
    )


def perf_types(time_control: Iterable[str]) -> list[str]:
    return [tc for tc in time_control if tc in LICHESS_SPEEDS]


async def stream_lichess_games(
    client: httpx.AsyncClient,
    username: str,
    max_games: int,
    *,
    time_control: Iterable[str] = ("all",),
    token: str | None = None,
    on_game: Callable[[int], None] | None = None,
) -> list[SourceGame]:
    """Stream up to max_games games in which username took part, most recent first."""
    params = {
        "max": max_games,
        "moves": "true",
        "opening": "false",
        "clocks": "true",
        "evals": "false",
        "pgnInJson": "false",
    }
    perfs = perf_types(time_control)
    if perfs:
        params["perfType"] = ",".join(perfs)
    headers = {"Accept": "application/x-ndjson"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    async def collect(response: httpx.Response) -> list[SourceGame]:
        games: list[SourceGame] = []
        async for line in response.aiter_lines():
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed NDJSON line: %.80s", line)
                continue
            game = source_game_from_lichess(record)
            if game is None or game.color_of(username) is None:
                continue
            games.append(game)
            if on_game:
                on_game(len(games))
            if len(games) >= max_games:
                break
        return games

    url = LICHESS_GAMES_API.format(username=quote(username))
    return await fetch_with_retry(
        client,
        url,
        collect,
        source="lichess",
        params=params,
        headers=headers,
        timeout=STREAM_TIMEOUT,
        total_timeout=STREAM_TOTAL_TIMEOUT,
    )


async def main_async():
    parser = argparse.ArgumentParser()
    parser.add_argument("username")
    parser.add_argument("--max-games", type=int, default=50)
    args = parser.parse_args()

    token = os.environ.get("LICHESS_TOKEN")
    async with httpx.AsyncClient() as client:
        games = await stream_lichess_games(client, args.username, args.max_games, token=token)
    print(f"Fetched {len(games)} games.")


def main():
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
