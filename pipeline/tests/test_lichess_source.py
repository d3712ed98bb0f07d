"""Tests for lichess_source.py: NDJSON streaming and normalization."""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from errors import SourceUnavailable
from lichess_source import perf_types, source_game_from_lichess, stream_lichess_games


def make_record(white: str, black: str, moves: str = "e4 e5 Nf3", clocks=None, white_rating=1500) -> dict:
    record = {
        "id": "abc",
        "moves": moves,
        "players": {
            "white": {"user": {"name": white}, "rating": white_rating},
            "black": {"user": {"name": black}, "rating": 1480},
        },
    }
    if clocks is not None:
        record["clocks"] = clocks
    return record


def ndjson_client(lines: list[str], status: int = 200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, content="\n".join(lines).encode())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def test_source_game_normalizes_players_and_clocks():
    game = source_game_from_lichess(make_record("Alice", "bob", clocks=[18003, 18003, 17800]))
    assert game.move_tokens == ("e4", "e5", "Nf3")
    assert game.white_name == "Alice"
    assert game.white_rating == 1500
    assert game.clocks_centiseconds == (18003, 18003, 17800)
    assert game.color_of("alice") == "white"


def test_source_game_without_moves_is_dropped():
    assert source_game_from_lichess(make_record("alice", "bob", moves="  ")) is None
    assert source_game_from_lichess({"players": {}}) is None


def test_non_integer_clocks_drop_the_clocks_not_the_game():
    game = source_game_from_lichess(make_record("alice", "bob", clocks=[None]))
    assert game.move_tokens == ("e4", "e5", "Nf3")
    assert game.clocks_centiseconds is None
    assert source_game_from_lichess(make_record("alice", "bob", clocks=[18000, "17900"])).clocks_centiseconds is None


def test_non_object_records_are_dropped():
    assert source_game_from_lichess(None) is None
    assert source_game_from_lichess([1, 2]) is None
    assert source_game_from_lichess("e4 e5") is None


def test_malformed_player_fields_are_ignored():
    record = make_record("alice", "bob", white_rating="1500")
    record["players"]["black"] = ["bob"]
    game = source_game_from_lichess(record)
    assert game.white_name == "alice"
    assert game.white_rating is None
    assert game.black_name is None


def test_perf_types_ignore_all():
    assert perf_types(["all"]) == []
    assert perf_types(["blitz", "rapid"]) == ["blitz", "rapid"]


@pytest.mark.asyncio
async def test_stream_filters_participants_and_skips_bad_lines():
    lines = [
        json.dumps(make_record("ALICE", "bob")),
        "{not json",
        json.dumps(make_record("carol", "dave")),
        "",
        json.dumps(make_record("bob", "alice", moves="")),
        json.dumps(make_record("erin", "Alice", moves="d4 d5")),
    ]
    client, _ = ndjson_client(lines)

    games = await stream_lichess_games(client, "alice", max_games=10)

    assert [g.move_tokens for g in games] == [("e4", "e5", "Nf3"), ("d4", "d5")]
    assert [g.color_of("alice") for g in games] == ["white", "black"]


@pytest.mark.asyncio
async def test_stream_skips_valid_json_that_is_not_an_object():
    lines = [
        "null",
        "[1, 2]",
        '"e4 e5"',
        "42",
        json.dumps(make_record("alice", "bob", clocks=[None])),
        json.dumps(make_record("bob", "alice", moves="d4 d5", clocks=[6000, 6000])),
    ]
    client, _ = ndjson_client(lines)

    games = await stream_lichess_games(client, "alice", max_games=10)

    assert [g.move_tokens for g in games] == [("e4", "e5", "Nf3"), ("d4", "d5")]
    assert [g.clocks_centiseconds for g in games] == [None, (6000, 6000)]


@pytest.mark.asyncio
async def test_stream_stops_at_max_games_and_reports_counts():
    lines = [json.dumps(make_record("alice", f"opp{i}")) for i in range(5)]
    client, _ = ndjson_client(lines)
    counts = []

    games = await stream_lichess_games(client, "alice", max_games=3, on_game=counts.append)

    assert len(games) == 3
    assert counts == [1, 2, 3]


@pytest.mark.asyncio
async def test_request_parameters_and_headers():
    client, requests = ndjson_client([])

    await stream_lichess_games(client, "alice", max_games=50, time_control=["blitz", "all"], token="secret")

    request = requests[0]
    assert request.url.path == "/api/games/user/alice"
    assert request.url.params["max"] == "50"
    assert request.url.params["clocks"] == "true"
    assert request.url.params["perfType"] == "blitz"
    assert request.headers["Accept"] == "application/x-ndjson"
    assert request.headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_unreachable_lichess_raises_source_unavailable():
    client, requests = ndjson_client([], status=503)
    with patch("asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(SourceUnavailable) as excinfo:
            await stream_lichess_games(client, "alice", max_games=10)

    assert excinfo.value.source == "lichess"
    assert len(requests) == 4
