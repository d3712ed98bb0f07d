"""
Opening Leak Aggregation

Buckets every position where the player was to move within the opening by
position key, keeps the ones reached at least MIN_POSITION_REPEATS times, and
checks the player's habitual move there against the engine. A habit that gives
away more than the centipawn threshold is an opening leak.
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
from leak_tags import derive_leak_tags
from models import AggregatedPosition, GameOpeningTrace, PositionTrace, RepeatedOpeningLeak, SourceGame
from move_replay import apply_move_token, fen_after_move, opponent, player_perspective, position_key, side_to_move

logger = logging.getLogger(__name__)

MIN_POSITION_REPEATS = 3
CP_LOSS_THRESHOLD = 100


@dataclass
class OpeningAggregation:
    positions: dict[str, AggregatedPosition] = field(default_factory=dict)
    game_traces: list[GameOpeningTrace] = field(default_factory=list)
    games_analyzed: int = 0

    def repeated(self, min_repeats: int = MIN_POSITION_REPEATS) -> list[AggregatedPosition]:
        """Positions reached at least min_repeats times, in first-seen order."""
        return [p for p in self.positions.values() if p.total_reach_count >= min_repeats]


def aggregate_opening_positions(
    games: Sequence[SourceGame],
    username: str,
    max_opening_plies: int,
    on_game: Callable[[int, int], None] | None = None,
) -> OpeningAggregation:
    """Count the player's move choices per opening position across all games."""
    aggregation = OpeningAggregation()

    for game_index, game in enumerate(games):
        if on_game:
            on_game(game_index + 1, len(games))
        player = game.color_of(username)
        if player is None or not game.move_tokens:
            continue
        aggregation.games_analyzed += 1
        player_turn = chess.WHITE if player == "white" else chess.BLACK

        board = chess.Board()
        played: list[str] = []
        for token in game.move_tokens[:max_opening_plies]:
            if board.turn == player_turn:
                key = position_key(board)
                position = aggregation.positions.get(key)
                if position is None:
                    position = aggregation.positions[key] = AggregatedPosition(key=key, fen=board.fen())
                position.record(token)
            try:
                apply_move_token(board, token)
            except InvalidMove as e:
                logger.debug("Game %d truncated: %s", game_index + 1, e)
                break
            played.append(token)

        aggregation.game_traces.append(
            GameOpeningTrace(game_index=len(aggregation.game_traces) + 1, player_color=player, opening_moves=tuple(played))
        )

    return aggregation


async def evaluate_repeated_positions(
    positions: Sequence[AggregatedPosition],
    oracle,
    depth: int,
    cp_loss_threshold: int = CP_LOSS_THRESHOLD,
    on_position: Callable[[int, int], None] | None = None,
) -> tuple[list[RepeatedOpeningLeak], list[PositionTrace]]:
    """Evaluate each position's habitual move. Returns (leaks by descending loss, traces)."""
    leaks: list[RepeatedOpeningLeak] = []
    traces: list[PositionTrace] = []

    for index, position in enumerate(positions):
        if on_position:
            on_position(index + 1, len(positions))
        chosen, chosen_count = position.chosen_move()
        counts = dict(reach_count=position.total_reach_count, move_count=chosen_count)

        try:
            fen_after = fen_after_move(position.fen, chosen)
        except InvalidMove:
            traces.append(PositionTrace.invalid_move(position.fen, chosen, **counts))
            continue

        before = await evaluate_or_none(oracle, position.fen, depth)
        after = await evaluate_or_none(oracle, fen_after, depth) if before else None
        if before is None or after is None:
            best = before.best_move if before else None
            traces.append(PositionTrace.missing_eval(position.fen, chosen, best_move=best, **counts))
            continue

        player = side_to_move(position.fen)
        eval_before = player_perspective(before.centipawns, player, player)
        eval_after = player_perspective(after.centipawns, opponent(player), player)
        cp_loss = eval_before - eval_after
        flagged = cp_loss > cp_loss_threshold

        traces.append(PositionTrace.evaluated(
            position.fen, chosen, best_move=before.best_move,
            eval_before=eval_before, eval_after=eval_after, centipawn_loss=cp_loss, flagged=flagged, **counts,
        ))
        if not flagged:
            continue

        leaks.append(RepeatedOpeningLeak(
            position_before=position.fen,
            position_after=fen_after,
            player_move=chosen,
            engine_best_move=before.best_move,
            tags=derive_leak_tags(position.fen, chosen, before.best_move, cp_loss=cp_loss, **counts),
            reach_count=position.total_reach_count,
            move_count=chosen_count,
            centipawn_loss=cp_loss,
            eval_before=eval_before,
            eval_after=eval_after,
            side_to_move=player,
            player_color=player,
        ))

    leaks.sort(key=lambda leak: -leak.centipawn_loss)
    return leaks, traces
