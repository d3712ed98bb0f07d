"""
Heuristic labels for opening leaks and missed tactics.

Each check is a pure function of a MoveContrast that returns a label or None;
the rule lists are walked in order and only the labels that fire are kept.
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import chess

sys.path.insert(0, str(Path(__file__).resolve().parent))
from errors import InvalidMove
from move_replay import CENTER_SQUARES, parse_move_token

MAX_TAGS = 3
LOW_TIME_SECONDS = 30


@dataclass(frozen=True)
class MoveContrast:
    """The player's move and the engine's move from one position, plus score facts."""

    board: chess.Board
    player: chess.Move | None
    best: chess.Move | None
    player_san: str | None
    best_san: str | None
    cp_loss: int = 0
    eval_before: int = 0
    reach_count: int = 0
    move_count: int = 0


def _resolve(board: chess.Board, token: str | None) -> tuple[chess.Move | None, str | None]:
    if not token:
        return None, None
    try:
        move = parse_move_token(board, token)
    except InvalidMove:
        return None, None
    return move, board.san(move)


def contrast(fen: str, player_token: str | None, best_token: str | None, **facts) -> MoveContrast:
    board = chess.Board(fen)
    player, player_san = _resolve(board, player_token)
    best, best_san = _resolve(board, best_token)
    return MoveContrast(board, player, best, player_san, best_san, **facts)


def _has(san: str | None, marker: str) -> bool:
    return bool(san) and marker in san


# Opening leak checks


def leak_severity(c: MoveContrast) -> str | None:
    if c.cp_loss >= 250:
        return "Major Blunder"
    if c.cp_loss >= 150:
        return "Tactical Miss"
    return None


def repeated_habit(c: MoveContrast) -> str | None:
    if c.reach_count > 0 and c.move_count / c.reach_count >= 0.7:
        return "Repeated Habit"
    return None


def king_safety(c: MoveContrast) -> str | None:
    if _has(c.best_san, "O-O") and not _has(c.player_san, "O-O"):
        return "King Safety"
    return None


def missed_check(c: MoveContrast) -> str | None:
    if _has(c.best_san, "+") and not _has(c.player_san, "+"):
        return "Missed Check"
    return None


def missed_capture(c: MoveContrast) -> str | None:
    if _has(c.best_san, "x") and not _has(c.player_san, "x"):
        return "Missed Capture"
    return None


def center_control(c: MoveContrast) -> str | None:
    if c.best and c.player and c.best.to_square in CENTER_SQUARES and c.player.to_square not in CENTER_SQUARES:
        return "Center Control"
    return None


def early_queen_or_king(c: MoveContrast) -> str | None:
    if c.player is None or c.board.fullmove_number > 10:
        return None
    if c.board.piece_type_at(c.player.from_square) in (chess.QUEEN, chess.KING):
        return "Opening Development"
    return None


LEAK_RULES: list[Callable[[MoveContrast], str | None]] = [
    leak_severity,
    repeated_habit,
    king_safety,
    missed_check,
    missed_capture,
    center_control,
    early_queen_or_king,
]


# Missed tactic checks


def tactic_severity(c: MoveContrast) -> str | None:
    if c.cp_loss >= 600:
        return "Winning Blunder"
    if c.cp_loss >= 400:
        return "Major Miss"
    return "Tactical Miss"


def tactic_kind(c: MoveContrast) -> str | None:
    san = c.best_san
    if _has(san, "#"):
        return "Missed Mate"
    if _has(san, "+") and _has(san, "x"):
        return "Forcing Capture"
    if _has(san, "+"):
        return "Missed Check"
    if _has(san, "x"):
        return "Missed Capture"
    return None


def position_context(c: MoveContrast) -> str | None:
    if c.eval_before >= 200:
        return "Converting Advantage"
    if -50 <= c.eval_before <= 50:
        return "Equal Position"
    return None


def piece_hint(c: MoveContrast) -> str | None:
    if not _has(c.best_san, "x"):
        return None
    if c.best_san.startswith("N"):
        return "Knight Fork?"
    if c.best_san.startswith("Q"):
        return "Queen Tactic"
    return None


def back_rank(c: MoveContrast) -> str | None:
    if not (_has(c.best_san, "+") or _has(c.best_san, "#")):
        return None
    enemy = not c.board.turn
    king = c.board.king(enemy)
    home_rank = 7 if enemy == chess.BLACK else 0
    if king is not None and chess.square_rank(king) == home_rank:
        return "Back Rank"
    return None


TACTIC_RULES: list[Callable[[MoveContrast], str | None]] = [
    tactic_severity,
    tactic_kind,
    position_context,
    piece_hint,
    back_rank,
]


def _collect(rules: list[Callable[[MoveContrast], str | None]], c: MoveContrast) -> list[str]:
    tags: list[str] = []
    for rule in rules:
        label = rule(c)
        if label and label not in tags:
            tags.append(label)
    return tags[:MAX_TAGS]


def derive_leak_tags(
    fen: str, player_move: str, best_move: str | None, *, cp_loss: int, reach_count: int, move_count: int
) -> tuple[str, ...]:
    """Up to three labels for an opening leak; never empty."""
    c = contrast(fen, player_move, best_move, cp_loss=cp_loss, reach_count=reach_count, move_count=move_count)
    return tuple(_collect(LEAK_RULES, c) or ["Inaccuracy"])


def derive_tactic_tags(
    fen: str,
    player_move: str,
    best_move: str,
    *,
    cp_loss: int,
    eval_before: int,
    time_remaining_seconds: int | None = None,
) -> tuple[str, ...]:
    """Up to three labels for a missed tactic, plus "Time Pressure" when the clock was low."""
    c = contrast(fen, player_move, best_move, cp_loss=cp_loss, eval_before=eval_before)
    tags = _collect(TACTIC_RULES, c)
    if time_remaining_seconds is not None and time_remaining_seconds <= LOW_TIME_SECONDS:
        tags.append("Time Pressure")
    return tuple(tags)
