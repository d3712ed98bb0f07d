"""Bounded exponential-backoff GET shared by the game source adapters."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))
from errors import PlayerNotFound, SourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3
BASE_DELAY = 0.5  # seconds, doubled each attempt
MAX_RETRY_AFTER = 60.0
TOTAL_TIMEOUT = 120.0  # seconds for one attempt's whole body
USER_AGENT = "opening-leak-scanner/1.0"


def is_transient_status(status: int) -> bool:
    return status in (408, 425, 429) or 500 <= status <= 599


def backoff_delay(attempt: int, base_delay: float = BASE_DELAY) -> float:
    return base_delay * (2**attempt)


def retry_after_seconds(response: httpx.Response) -> float | None:
    """Server-supplied Retry-After delay in seconds, if present and numeric."""
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return min(seconds, MAX_RETRY_AFTER) if seconds > 0 else None


async def read_json(response: httpx.Response):
    await response.aread()
    return response.json()


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    consume: Callable[[httpx.Response], Awaitable[T]],
    *,
    source: str,
    params: dict | None = None,
    headers: dict | None = None,
    timeout: float = 15.0,
    total_timeout: float = TOTAL_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    base_delay: float = BASE_DELAY,
) -> T:
    """
    GET url and hand the successful response to consume.

    Transport errors, timeouts (including ones raised while consume reads the
    body) and transient statuses are retried up to `retries` times. httpx's
    timeout bounds each read, so consume is also bounded by total_timeout to
    abort a body that keeps trickling in. 404 raises PlayerNotFound at once;
    other non-transient statuses raise SourceUnavailable.
    """
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
    last_error: Exception | None = None

    for attempt in range(retries + 1):
        delay = backoff_delay(attempt, base_delay)
        try:
            async with client.stream(
                "GET", url, params=params, headers=request_headers, timeout=timeout
            ) as response:
                if response.is_success:
                    return await asyncio.wait_for(consume(response), timeout=total_timeout)

                status = response.status_code
                if status == 404:
                    raise PlayerNotFound(source, f"{url} returned 404")
                last_error = httpx.HTTPStatusError(
                    f"{source} request failed ({status})", request=response.request, response=response
                )
                if not is_transient_status(status):
                    raise SourceUnavailable(source, str(last_error), cause=last_error) from last_error
                delay = retry_after_seconds(response) or delay
        except asyncio.TimeoutError:
            last_error = httpx.ReadTimeout(f"{source} body not read within {total_timeout}s")
        except (httpx.TransportError, json.JSONDecodeError) as e:
            last_error = e

        if attempt < retries:
            logger.warning(
                "%s request to %s failed (%s); retry %d/%d in %.1fs",
                source, url, last_error, attempt + 1, retries, delay,
            )
            await asyncio.sleep(delay)

    raise SourceUnavailable(
        source, f"Cannot reach {source} after {retries + 1} attempts: {last_error}", cause=last_error
    ) from last_error
