"""
Missed Tactic Scanning

Replays whole games and, at each of the player's turns where some capture or
check exists, asks the engine for the best move. When that move is forcing,
the player chose something else, and the player-perspective swing exceeds the
tactic threshold, the position is a missed tactic.
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

import chess

sys.path.insert(0, str(Path(__file__).resolve().parent))
from engine_oracle import evaluate_or_none
from errors import InvalidMove
from leak_tags import derive_tactic_tags
from models import MissedTactic, PositionTrace, SourceGame
from move_replay import (
    has_forcing_moves,
    is_forcing_san,
    opponent,
    parse_move_token,
    player_perspective,
    position_key,
    san_for_move,
)

logger = logging.getLogger(__name__)

TACTIC_CP_THRESHOLD = 200
LOST_MARGIN = -300  # at or below this, there is nothing left to convert
MAX_TACTICS = 25


@dataclass
class TacticScan:
    tactics: list[MissedTactic] = field(default_factory=list)
    traces: list[PositionTrace] = field(default_factory=list)
    # every flagged position, including those cut from tactics by the cap
    total_found: int = 0


def time_remaining_seconds(game: SourceGame, ply: int) -> int | None:
    clocks = game.clocks_centiseconds
    if not clocks or ply >= len(clocks):
        return None
    return round(clocks[ply] / 100)


async def scan_missed_tactics(
    games: Sequence[SourceGame],
    username: str,
    oracle,
    depth: int,
    *,
    cp_threshold: int = TACTIC_CP_THRESHOLD,
    lost_margin: int = LOST_MARGIN,
    max_tactics: int = MAX_TACTICS,
    on_game: Callable[[int, int], None] | None = None,
) -> TacticScan:
    """Scan games for missed forcing wins; keeps the max_tactics worst, counts them all."""
    scan = TacticScan()
    seen_keys: set[str] = set()

    for game_index, game in enumerate(games):
        player = game.color_of(username)
        if player is None or not game.move_tokens:
            continue
        if on_game:
            on_game(game_index + 1, len(games))
        player_turn = chess.WHITE if player == "white" else chess.BLACK

        board = chess.Board()
        for ply, token in enumerate(game.move_tokens):
            try:
                move = parse_move_token(board, token)
            except InvalidMove as e:
                logger.debug("Game %d truncated at ply %d: %s", game_index + 1, ply + 1, e)
                scan.traces.append(PositionTrace.invalid_move(board.fen(), token))
                break

            if board.turn == player_turn and position_key(board) not in seen_keys and has_forcing_moves(board):
                tactic = await _check_position(
                    scan, oracle, depth, board, move, player,
                    cp_threshold=cp_threshold,
                    lost_margin=lost_margin,
                    game_index=game_index + 1,
                    ply=ply,
                    clock=time_remaining_seconds(game, ply),
                )
                if tactic is not None:
                    scan.tactics.append(tactic)
                    seen_keys.add(position_key(board))
            board.push(move)

    scan.total_found = len(scan.tactics)
    scan.tactics.sort(key=lambda t: -t.centipawn_loss)
    del scan.tactics[max_tactics:]
    if scan.total_found > max_tactics:
        logger.info("Found %d missed tactics; keeping the worst %d", scan.total_found, max_tactics)
    return scan


async def _check_position(
    scan: TacticScan,
    oracle,
    depth: int,
    board: chess.Board,
    move: chess.Move,
    player: str,
    *,
    cp_threshold: int,
    lost_margin: int,
    game_index: int,
    ply: int,
    clock: int | None,
) -> MissedTactic | None:
    fen_before = board.fen()
    player_uci = move.uci()

    before = await evaluate_or_none(oracle, fen_before, depth)
    if before is None:
        scan.traces.append(PositionTrace.missing_eval(fen_before, player_uci))
        return None
    best_san = san_for_move(fen_before, before.best_move)
    if not is_forcing_san(best_san) or before.best_move == player_uci:
        return None

    after_board = board.copy(stack=False)
    after_board.push(move)
    fen_after = after_board.fen()
    after = await evaluate_or_none(oracle, fen_after, depth)
    if after is None:
        scan.traces.append(PositionTrace.missing_eval(fen_before, player_uci, best_move=before.best_move))
        return None

    eval_before = player_perspective(before.centipawns, player, player)
    eval_after = player_perspective(after.centipawns, opponent(player), player)
    cp_loss = eval_before - eval_after
    flagged = eval_before > lost_margin and cp_loss > cp_threshold
    scan.traces.append(PositionTrace.evaluated(
        fen_before, player_uci, best_move=before.best_move,
        eval_before=eval_before, eval_after=eval_after, centipawn_loss=cp_loss, flagged=flagged,
    ))
    if not flagged:
        return None

    return MissedTactic(
        position_before=fen_before,
        position_after=fen_after,
        player_move=player_uci,
        engine_best_move=before.best_move,
        eval_before=eval_before,
        eval_after=eval_after,
        centipawn_loss=cp_loss,
        side_to_move=player,
        player_color=player,
        game_index=game_index,
        ply_number=ply + 1,
        move_number=ply // 2 + 1,
        tags=derive_tactic_tags(
            fen_before, player_uci, before.best_move,
            cp_loss=cp_loss, eval_before=eval_before, time_remaining_seconds=clock,
        ),
        time_remaining_seconds=clock,
    )
