"""Tests for api/main.py"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from errors import PlayerNotFound, SourceUnavailable
from models import AnalysisDiagnostics, AnalysisReport


def make_report(**kwargs) -> AnalysisReport:
    defaults = dict(
        username="alice",
        games_analyzed=4,
        repeated_position_count=1,
        leaks=(),
        missed_tactics=(),
        total_tactics_found=0,
        diagnostics=AnalysisDiagnostics(),
        player_rating=1500,
    )
    defaults.update(kwargs)
    return AnalysisReport(**defaults)


@pytest.fixture
def client():
    from api.main import app
    return TestClient(app)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_analyze_returns_report(client):
    with patch("api.main.analyze", new_callable=AsyncMock, return_value=make_report()) as analyze:
        resp = client.post("/analyze", json={"username": "alice", "source": "chesscom", "max_games": 5000})

    assert resp.status_code == 200
    data = resp.json()
    assert data["username"] == "alice"
    assert data["games_analyzed"] == 4
    assert data["diagnostics"]["position_traces"] == []

    username, options = analyze.await_args.args
    assert username == "alice"
    assert options.source == "chesscom"
    assert options.max_games == 1000


def test_unknown_player_is_404(client):
    with patch("api.main.analyze", new_callable=AsyncMock, side_effect=PlayerNotFound("lichess", "no such user")):
        resp = client.post("/analyze", json={"username": "ghost"})
    assert resp.status_code == 404


def test_source_outage_is_502(client):
    with patch("api.main.analyze", new_callable=AsyncMock, side_effect=SourceUnavailable("lichess", "HTTP 503")):
        resp = client.post("/analyze", json={"username": "alice"})
    assert resp.status_code == 502


def test_invalid_request_is_422(client):
    resp = client.post("/analyze", json={"username": "alice", "scan_mode": "endgames"})
    assert resp.status_code == 422

    resp = client.post("/analyze", json={"username": ""})
    assert resp.status_code == 422
