"""Pytest configuration and shared fakes."""

import asyncio
import sys
from pathlib import Path

import chess
import chess.engine
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from models import EngineEvaluation, SourceGame


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: mark test as requiring a live engine or network (skipped in CI by default)"
    )


def fen_after(*moves: str) -> str:
    """FEN reached from the initial position after SAN moves."""
    board = chess.Board()
    for san in moves:
        board.push_san(san)
    return board.fen()


def make_game(moves: str, white: str = "alice", black: str = "bob", clocks=None, **kwargs) -> SourceGame:
    return SourceGame(
        move_tokens=tuple(moves.split()),
        white_name=white,
        black_name=black,
        clocks_centiseconds=tuple(clocks) if clocks else None,
        **kwargs,
    )


class FakeOracle:
    """Dictionary-backed oracle keyed by FEN; unknown positions get `default`."""

    def __init__(self, evals: dict | None = None, default=EngineEvaluation(0, None), error: Exception | None = None):
        self.evals = evals or {}
        self.default = default
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def evaluate(self, fen: str, depth: int = 10):
        self.calls.append((fen, depth))
        if self.error is not None:
            raise self.error
        return self.evals.get(fen, self.default)




class FakeTransport:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeEngine:
    """
    In-memory stand-in for a chess.engine.UciProtocol. Scores come from a
    table of fen -> (centipawns or chess.engine.Score, "uci pv"). Fails loudly
    if analyse is entered while another search is still outstanding.
    """

    def __init__(self, scores: dict | None = None, *, fail_start=False, hang_start=False, hang_on_analyse=False):
        self.scores = scores or {}
        self.fail_start = fail_start
        self.hang_start = hang_start
        self.hang_on_analyse = hang_on_analyse
        self.transport = FakeTransport()
        self.calls: list[tuple[str, int]] = []
        self.analyse_count = 0
        self.outstanding = False
        self.quit_called = False

    async def launch(self):
        if self.fail_start:
            raise FileNotFoundError("stockfish")
        if self.hang_start:
            await asyncio.Event().wait()
        return self.transport, self

    async def analyse(self, board: chess.Board, limit: chess.engine.Limit, **kwargs):
        assert not self.outstanding, "analyse entered while a search was outstanding"
        self.outstanding = True
        self.analyse_count += 1
        self.calls.append((board.fen(), limit.depth))
        try:
            if self.hang_on_analyse:
                await asyncio.Event().wait()
            await asyncio.sleep(0)
            entry = self.scores.get(board.fen())
            if entry is None:
                return {}
            score, pv = entry
            if isinstance(score, int):
                score = chess.engine.Cp(score)
            return {
                "depth": limit.depth,
                "score": chess.engine.PovScore(score, board.turn),
                "pv": [chess.Move.from_uci(uci) for uci in pv.split()],
            }
        finally:
            self.outstanding = False

    async def quit(self):
        self.quit_called = True
