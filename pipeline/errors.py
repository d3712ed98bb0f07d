"""Error taxonomy for the analysis pipeline."""


class LeakScanError(Exception):
    """Base class for pipeline errors."""


class SourceUnavailable(LeakScanError):
    """Remote game source could not be reached after exhausting retries."""

    def __init__(self, source: str, message: str, cause: BaseException | None = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.cause = cause


class PlayerNotFound(SourceUnavailable):
    """Remote game source does not know the requested player."""


class EngineUnavailable(LeakScanError):
    """Engine process failed to start or died mid-search."""


class EngineTimeout(LeakScanError):
    """A single engine request exceeded its time bound."""


class InvalidMove(LeakScanError, ValueError):
    """A recorded move token could not be legally applied."""

    def __init__(self, fen: str, token: str):
        super().__init__(f"Cannot apply {token!r} to {fen}")
        self.fen = fen
        self.token = token


class MissingEvaluation(LeakScanError):
    """Engine produced no usable score for a position."""
