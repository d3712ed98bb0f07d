"""Tests for chesscom_source.py: archive walking and PGN/clock extraction."""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from chesscom_source import (
    allowed_time_classes,
    extract_clocks,
    fetch_chesscom_games,
    parse_pgn_moves,
    source_game_from_chesscom,
)

PGN = """[Event "Live Chess"]
[White "Alice"]
[Black "bob"]

1. e4 {[%clk 0:09:58]} 1... e5 {[%clk 0:09:55]} 2. Nf3 {[%clk 0:09:50.4]} 2... Nc6 {[%clk 0:09:41]} 1-0
"""

ARCHIVES = "https://api.chess.com/pub/player/alice/games/archives"
OLD = "https://api.chess.com/pub/player/alice/games/2024/01"
NEW = "https://api.chess.com/pub/player/alice/games/2024/02"


def make_record(pgn: str = PGN, white: str = "Alice", black: str = "bob", **kwargs) -> dict:
    record = {
        "pgn": pgn,
        "rules": "chess",
        "time_class": "blitz",
        "white": {"username": white, "rating": 1600},
        "black": {"username": black, "rating": 1550},
    }
    record.update(kwargs)
    return record


def archive_client(payloads: dict):
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        requested.append(url)
        return httpx.Response(200, json=payloads[url])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requested


def test_inline_clock_comments_parse_to_moves_and_centiseconds():
    moves, clocks = parse_pgn_moves("1. e4 {[%clk 0:09:58]} e5 {[%clk 0:09:55]}")
    assert moves == ("e4", "e5")
    assert clocks == (59800, 59500)


def test_fractional_clock_seconds_round_to_centiseconds():
    assert extract_clocks(PGN) == [59800, 59500, 59040, 58100]


def test_unparseable_pgn_is_skipped():
    assert parse_pgn_moves("1. e4 e4") is None
    assert parse_pgn_moves("") is None


def test_time_class_aliases():
    assert allowed_time_classes(["all"]) is None
    assert allowed_time_classes(["classical"]) == {"rapid", "daily"}
    assert allowed_time_classes(["bullet", "blitz"]) == {"bullet", "blitz"}


def test_record_filters():
    assert source_game_from_chesscom(make_record(rules="chess960"), "alice") is None
    assert source_game_from_chesscom(make_record(white="carol"), "alice") is None
    assert source_game_from_chesscom(make_record(), "alice", allowed={"rapid"}) is None
    game = source_game_from_chesscom(make_record(), "ALICE")
    assert game.move_tokens == ("e4", "e5", "Nf3", "Nc6")
    assert game.clocks_centiseconds == (59800, 59500, 59040, 58100)
    assert game.white_rating == 1600


@pytest.mark.asyncio
async def test_archives_are_walked_newest_first():
    payloads = {
        ARCHIVES: {"archives": [OLD, NEW]},
        NEW: {"games": [
            make_record(pgn="1. d4 d5 *"),
            make_record(pgn="1. e4 e4 *"),
            make_record(pgn="1. c4 e5 *"),
        ]},
        OLD: {"games": [make_record(pgn="1. Nf3 d5 *")]},
    }
    client, requested = archive_client(payloads)

    games = await fetch_chesscom_games(client, "alice", max_games=10)

    assert [g.move_tokens[0] for g in games] == ["c4", "d4", "Nf3"]
    assert requested == [ARCHIVES, NEW, OLD]


@pytest.mark.asyncio
async def test_stops_before_older_archives_once_full():
    payloads = {
        ARCHIVES: {"archives": [OLD, NEW]},
        NEW: {"games": [make_record(pgn="1. d4 d5 *"), make_record(pgn="1. c4 e5 *")]},
        OLD: {"games": [make_record(pgn="1. Nf3 d5 *")]},
    }
    client, requested = archive_client(payloads)
    progress = []

    games = await fetch_chesscom_games(
        client, "alice", max_games=2, on_archive=lambda current, total: progress.append((current, total))
    )

    assert len(games) == 2
    assert OLD not in requested
    assert progress == [(1, 2)]


@pytest.mark.asyncio
async def test_no_archives_yields_no_games():
    client, _ = archive_client({ARCHIVES: {"archives": []}})
    assert await fetch_chesscom_games(client, "alice", max_games=10) == []


def test_malformed_records_are_skipped():
    assert source_game_from_chesscom(None, "alice") is None
    assert source_game_from_chesscom(["pgn", PGN], "alice") is None
    assert source_game_from_chesscom(make_record(pgn=123), "alice") is None
    record = make_record()
    record["black"] = "bob"
    record["white"]["rating"] = "1600"
    game = source_game_from_chesscom(record, "alice")
    assert game.black_name is None
    assert game.white_rating is None
    assert game.move_tokens[0] == "e4"


@pytest.mark.asyncio
async def test_non_object_games_entries_are_skipped():
    payloads = {
        ARCHIVES: {"archives": [NEW]},
        NEW: {"games": [make_record(pgn="1. d4 d5 *"), None, [1, 2], "1. e4 e5"]},
    }
    client, _ = archive_client(payloads)

    games = await fetch_chesscom_games(client, "alice", max_games=10)

    assert [g.move_tokens for g in games] == [("d4", "d5")]


@pytest.mark.asyncio
async def test_non_object_archive_listing_yields_no_games():
    client, requested = archive_client({ARCHIVES: [NEW]})

    assert await fetch_chesscom_games(client, "alice", max_games=10) == []
    assert requested == [ARCHIVES]


@pytest.mark.asyncio
async def test_non_object_month_and_bad_archive_urls_are_skipped():
    payloads = {
        ARCHIVES: {"archives": [OLD, None, NEW]},
        NEW: [make_record(pgn="1. c4 e5 *")],
        OLD: {"games": [make_record(pgn="1. Nf3 d5 *")]},
    }
    client, requested = archive_client(payloads)

    games = await fetch_chesscom_games(client, "alice", max_games=10)

    assert [g.move_tokens[0] for g in games] == ["Nf3"]
    assert requested == [ARCHIVES, NEW, OLD]
