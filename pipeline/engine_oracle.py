#!/usr/bin/env python3
"""
Engine Oracle Client

Owns the single long-lived UCI engine, driven through python-chess's asyncio
engine API. Every request passes through one FIFO lock so at most one search
is ever in flight; evaluations are cached by (fen, depth), and a deeper cached
search answers a shallower request.

Usage:
  python engine_oracle.py "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1" --depth 12
  STOCKFISH_PATH=/usr/bin/stockfish python engine_oracle.py "<fen>" --pv 8
"""

import argparse
import asyncio
import logging
import os
import sys
from collections import defaultdict
from pathlib import Path
from typing import Awaitable, Callable

import chess
import chess.engine

sys.path.insert(0, str(Path(__file__).resolve().parent))
from errors import EngineTimeout, EngineUnavailable, LeakScanError, MissingEvaluation
from models import EngineEvaluation, EngineLine

logger = logging.getLogger(__name__)

STOCKFISH_PATH = os.environ.get("STOCKFISH_PATH", "stockfish")
HANDSHAKE_TIMEOUT = float(os.environ.get("ENGINE_HANDSHAKE_TIMEOUT", "20"))
REQUEST_TIMEOUT = float(os.environ.get("ENGINE_REQUEST_TIMEOUT", "60"))
QUIT_TIMEOUT = 2.0
MATE_CP = 100000

EngineFactory = Callable[[], Awaitable[tuple[asyncio.SubprocessTransport, chess.engine.Protocol]]]

_MISSING = object()


async def open_stockfish(path: str = STOCKFISH_PATH):
    """Spawn the engine and complete the uci/isready handshake."""
    return await chess.engine.popen_uci(path)


def line_from_info(info: chess.engine.InfoDict, max_pv_plies: int = 0) -> EngineLine | None:
    """Side-to-move score, best move and principal variation. None without any score."""
    score = info.get("score")
    if score is None:
        return None
    pv = [move.uci() for move in info.get("pv", [])]
    best_move = pv[0] if pv else None
    if max_pv_plies > 0:
        pv = pv[:max_pv_plies]
    return EngineLine(
        centipawns=score.relative.score(mate_score=MATE_CP),
        best_move=best_move,
        principal_variation=tuple(pv),
    )


class EngineOracle:
    """Queue-guarded, caching client for one stateful UCI engine."""

    def __init__(
        self,
        engine_factory: EngineFactory | None = None,
        *,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        request_timeout: float = REQUEST_TIMEOUT,
    ):
        self._engine_factory = engine_factory or open_stockfish
        self.handshake_timeout = handshake_timeout
        self.request_timeout = request_timeout
        self._transport: asyncio.SubprocessTransport | None = None
        self._engine: chess.engine.Protocol | None = None
        self._lock = asyncio.Lock()
        self._cache: dict[str, dict[int, EngineEvaluation | None]] = defaultdict(dict)
        self.searches = 0

    async def __aenter__(self) -> "EngineOracle":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def evaluate(self, fen: str, depth: int = 10) -> EngineEvaluation | None:
        """Score fen at depth. Cached; returns None when the engine gave no score."""
        cached = self._lookup(fen, depth)
        if cached is not _MISSING:
            return cached

        async with self._lock:
            cached = self._lookup(fen, depth)
            if cached is not _MISSING:
                return cached
            line = await self._search(fen, depth, 0)
            result = EngineEvaluation(line.centipawns, line.best_move) if line else None
            self._cache[fen][depth] = result
            return result

    async def principal_variation(self, fen: str, max_plies: int = 10, depth: int = 12) -> EngineLine | None:
        async with self._lock:
            return await self._search(fen, depth, max_plies)

    async def close(self) -> None:
        async with self._lock:
            await self._teardown()

    def _lookup(self, fen: str, depth: int):
        by_depth = self._cache.get(fen)
        if not by_depth:
            return _MISSING
        if depth in by_depth:
            return by_depth[depth]
        deeper = [d for d, result in by_depth.items() if d > depth and result is not None]
        if not deeper:
            return _MISSING
        result = by_depth[max(deeper)]
        by_depth[depth] = result
        return result

    async def _ensure_ready(self) -> chess.engine.Protocol:
        if self._engine is not None:
            return self._engine
        try:
            self._transport, self._engine = await asyncio.wait_for(
                self._engine_factory(), timeout=self.handshake_timeout
            )
        except asyncio.TimeoutError as e:
            raise EngineUnavailable(f"Engine handshake timed out after {self.handshake_timeout}s") from e
        except (chess.engine.EngineError, OSError) as e:
            raise EngineUnavailable(f"Failed to start engine: {e}") from e
        return self._engine

    async def _search(self, fen: str, depth: int, max_pv_plies: int) -> EngineLine | None:
        engine = await self._ensure_ready()
        self.searches += 1
        try:
            info = await asyncio.wait_for(
                engine.analyse(chess.Board(fen), chess.engine.Limit(depth=depth)),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Engine timed out at depth %d on %s; restarting", depth, fen)
            await self._teardown()
            raise EngineTimeout(f"No bestmove within {self.request_timeout}s") from e
        except (chess.engine.EngineError, OSError) as e:
            # EngineTerminatedError included
            await self._teardown()
            raise EngineUnavailable(f"Engine connection lost: {e}") from e
        except asyncio.CancelledError:
            await self._teardown()
            raise
        return line_from_info(info, max_pv_plies)

    async def _teardown(self) -> None:
        engine, self._engine = self._engine, None
        transport, self._transport = self._transport, None
        if engine is None:
            return
        try:
            await asyncio.wait_for(engine.quit(), timeout=QUIT_TIMEOUT)
        except (asyncio.TimeoutError, chess.engine.EngineError, OSError) as e:
            logger.debug("Engine did not quit cleanly: %s", e)
        finally:
            if transport is not None:
                transport.close()


async def require_evaluation(oracle: "EngineOracle", fen: str, depth: int) -> EngineEvaluation:
    """Evaluate fen, raising MissingEvaluation when the engine gave no score."""
    result = await oracle.evaluate(fen, depth)
    if result is None:
        raise MissingEvaluation(f"No score for {fen} at depth {depth}")
    return result


async def evaluate_or_none(oracle: "EngineOracle", fen: str, depth: int) -> EngineEvaluation | None:
    """Evaluate fen, mapping every engine failure to a missing evaluation."""
    try:
        return await require_evaluation(oracle, fen, depth)
    except (EngineUnavailable, EngineTimeout, MissingEvaluation) as e:
        logger.debug("No evaluation for %s: %s", fen, e)
        return None


async def main_async():
    parser = argparse.ArgumentParser()
    parser.add_argument("fen")
    parser.add_argument("--depth", type=int, default=12)
    parser.add_argument("--pv", type=int, default=0, help="Print a principal variation of this many plies")
    args = parser.parse_args()

    async with EngineOracle() as oracle:
        try:
            if args.pv:
                line = await oracle.principal_variation(args.fen, args.pv, args.depth)
                if line is None:
                    raise MissingEvaluation(f"No score for {args.fen} at depth {args.depth}")
            else:
                line = await require_evaluation(oracle, args.fen, args.depth)
        except LeakScanError as e:
            print(f"Engine error: {e}", file=sys.stderr)
            sys.exit(1)
    print(line)


def main():
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
