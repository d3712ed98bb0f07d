"""Dispatch game fetching to the Lichess or Chess.com adapter."""

import os
import sys
from pathlib import Path
from typing import Callable, Iterable, Literal

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))
from chesscom_source import fetch_chesscom_games
from lichess_source import stream_lichess_games
from models import ProgressEvent, SourceGame

SourceKind = Literal["lichess", "chesscom"]
SOURCE_KINDS: tuple[str, ...] = ("lichess", "chesscom")


def _fetch_percent(current: int, total: int) -> int:
    return 2 + round(current / total * 36) if total else 2


async def fetch_games(
    identifier: str,
    max_games: int,
    source_kind: SourceKind = "lichess",
    *,
    client: httpx.AsyncClient | None = None,
    time_control: Iterable[str] = ("all",),
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> list[SourceGame]:
    """Fetch up to max_games games played by identifier. Raises SourceUnavailable."""
    if source_kind not in SOURCE_KINDS:
        raise ValueError(f"Unknown source kind: {source_kind!r}")

    def report(event: ProgressEvent) -> None:
        if on_progress:
            on_progress(event)

    if client is None:
        async with httpx.AsyncClient() as own_client:
            return await fetch_games(
                identifier, max_games, source_kind,
                client=own_client, time_control=time_control, on_progress=on_progress,
            )

    time_control = tuple(time_control)
    if source_kind == "chesscom":
        report(ProgressEvent("fetch", "Connecting to Chess.com", "Fetching recent game archives", percent=2))

        def on_archive(current: int, total: int) -> None:
            report(ProgressEvent(
                "fetch", "Downloading game archives", f"Archive {current} of {total}",
                current=current, total=total, percent=_fetch_percent(current, total),
            ))

        return await fetch_chesscom_games(
            client, identifier, max_games, time_control=time_control, on_archive=on_archive
        )

    report(ProgressEvent("fetch", "Connecting to Lichess", "Streaming recent games", percent=2))

    def on_game(count: int) -> None:
        report(ProgressEvent(
            "fetch", "Downloading from Lichess", f"{count} of {max_games} games received",
            current=count, total=max_games, percent=_fetch_percent(count, max_games),
        ))

    return await stream_lichess_games(
        client, identifier, max_games,
        time_control=time_control, token=os.environ.get("LICHESS_TOKEN"), on_game=on_game,
    )
