"""Data models for the opening leak and missed tactic pipeline."""

from dataclasses import asdict, dataclass, field
from typing import Literal

PlayerColor = Literal["white", "black"]
SkipReason = Literal["invalid_move", "missing_eval"]
Phase = Literal["fetch", "parse", "aggregate", "eval", "tactics", "done"]


@dataclass(frozen=True)
class SourceGame:
    """One fetched game, normalized from either remote source."""

    move_tokens: tuple[str, ...] = ()
    white_name: str | None = None
    black_name: str | None = None
    white_rating: int | None = None
    black_rating: int | None = None
    # Remaining clock per ply, in centiseconds.
    clocks_centiseconds: tuple[int, ...] | None = None

    def color_of(self, identifier: str) -> PlayerColor | None:
        """Side played by identifier (case-insensitive), or None if not a participant."""
        target = identifier.strip().lower()
        if self.white_name and self.white_name.strip().lower() == target:
            return "white"
        if self.black_name and self.black_name.strip().lower() == target:
            return "black"
        return None

    def rating_of(self, color: PlayerColor) -> int | None:
        return self.white_rating if color == "white" else self.black_rating


@dataclass
class AggregatedPosition:
    """A player-to-move position and the moves chosen there across games."""

    key: str
    fen: str
    total_reach_count: int = 0
    move_counts: dict[str, int] = field(default_factory=dict)

    def record(self, token: str) -> None:
        self.total_reach_count += 1
        self.move_counts[token] = self.move_counts.get(token, 0) + 1

    def chosen_move(self) -> tuple[str, int]:
        """Plurality move and its count; ties go to the move seen first."""
        best_move, best_count = "", -1
        for move, count in self.move_counts.items():
            if count > best_count:
                best_move, best_count = move, count
        return best_move, best_count


@dataclass(frozen=True)
class EngineEvaluation:
    """Engine score in centipawns from the side to move's perspective."""

    centipawns: int
    best_move: str | None = None


@dataclass(frozen=True)
class EngineLine(EngineEvaluation):
    principal_variation: tuple[str, ...] = ()


@dataclass(frozen=True)
class RepeatedOpeningLeak:
    position_before: str
    position_after: str
    player_move: str
    engine_best_move: str | None
    tags: tuple[str, ...]
    reach_count: int
    move_count: int
    centipawn_loss: int
    eval_before: int
    eval_after: int
    side_to_move: PlayerColor
    player_color: PlayerColor


@dataclass(frozen=True)
class MissedTactic:
    position_before: str
    position_after: str
    player_move: str
    engine_best_move: str
    eval_before: int
    eval_after: int
    centipawn_loss: int
    side_to_move: PlayerColor
    player_color: PlayerColor
    game_index: int
    ply_number: int
    move_number: int
    tags: tuple[str, ...]
    time_remaining_seconds: int | None = None


@dataclass(frozen=True)
class PositionTrace:
    """Outcome of one position evaluation: evaluated, or skipped with a reason."""

    position_before: str
    player_move: str
    best_move: str | None = None
    reach_count: int = 0
    move_count: int = 0
    eval_before: int | None = None
    eval_after: int | None = None
    centipawn_loss: int | None = None
    flagged: bool = False
    skipped_reason: SkipReason | None = None

    @classmethod
    def evaluated(cls, position_before: str, player_move: str, **kwargs) -> "PositionTrace":
        return cls(position_before, player_move, **kwargs)

    @classmethod
    def invalid_move(cls, position_before: str, player_move: str, **kwargs) -> "PositionTrace":
        return cls(position_before, player_move, skipped_reason="invalid_move", **kwargs)

    @classmethod
    def missing_eval(cls, position_before: str, player_move: str, **kwargs) -> "PositionTrace":
        return cls(position_before, player_move, skipped_reason="missing_eval", **kwargs)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass(frozen=True)
class GameOpeningTrace:
    game_index: int
    player_color: PlayerColor
    opening_moves: tuple[str, ...]


@dataclass
class AnalysisDiagnostics:
    game_traces: list[GameOpeningTrace] = field(default_factory=list)
    position_traces: list[PositionTrace] = field(default_factory=list)
    tactic_traces: list[PositionTrace] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressEvent:
    phase: Phase
    message: str
    detail: str | None = None
    current: int | None = None
    total: int | None = None
    percent: int = 0


@dataclass(frozen=True)
class AnalysisReport:
    """Top-level result of one analysis run."""

    username: str
    games_analyzed: int
    repeated_position_count: int
    leaks: tuple[RepeatedOpeningLeak, ...]
    missed_tactics: tuple[MissedTactic, ...]
    total_tactics_found: int
    diagnostics: AnalysisDiagnostics
    player_rating: int | None = None
    time_management_score: int | None = None

    def to_dict(self) -> dict:
        """Plain JSON-compatible representation."""
        return asdict(self)
