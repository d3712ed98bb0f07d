"""Celery application for running leak analyses in the background."""

import os
from celery import Celery

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

app = Celery("leakscan", broker=REDIS_URL, backend=REDIS_URL)
app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_acks_late=True,
    # One analysis per worker process: each run drives its own engine.
    worker_prefetch_multiplier=1,
)


@app.task(bind=True, max_retries=3)
def analyze_player_task(self, username: str, options: dict | None = None) -> dict:
    """Celery task: run a full analysis and return the report as a dict."""
    import asyncio
    from errors import PlayerNotFound, SourceUnavailable
    from leak_report import AnalyzeOptions, analyze

    opts = AnalyzeOptions(**(options or {}))
    try:
        report = asyncio.run(analyze(username, opts))
    except PlayerNotFound:
        raise
    except SourceUnavailable as exc:
        raise self.retry(exc=exc, countdown=5)
    return report.to_dict()
