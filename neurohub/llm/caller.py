"""
Rate-limited external caller.

Every call to an external capability (GitHub API, Gemini summarization,
Gemini embedding) goes through one of two helpers:

- call_with_retry(): one logical call, retried on transient failures with
  exponential backoff (base_delay * 2^(attempt-1)), bounded by a per-attempt
  timeout. Permanent failures surface after the first attempt.
- run_batch(): many independent calls, processed in small concurrent groups
  with a delay between groups. "All settled" semantics: one failing item is
  recorded on its BatchOutcome and never aborts its siblings.

Usage:
    from neurohub.llm.caller import call_with_retry, run_batch

    text = await call_with_retry(lambda: llm.generate_text(prompt), label="summary")
    outcomes = await run_batch(commits, enrich_commit, label="commit stats")
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import httpx

from neurohub.errors import NeuroHubError
from neurohub.rag import config

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

# HTTP statuses worth another attempt (rate limit + server-side hiccups)
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}

_TRANSIENT_MARKERS = (
    "too many requests",
    "rate limit",
    "resource exhausted",
    "resource_exhausted",
    "service unavailable",
    "temporarily unavailable",
    "econnreset",
    "etimedout",
)


class ExternalServiceError(NeuroHubError):
    """Failure of an external capability (source-control host or LLM)."""

    def __init__(self, message: str, transient: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"ExternalServiceError({str(self)!r}, transient={self.transient}, "
            f"status_code={self.status_code})"
        )


def _status_code_of(exc: BaseException) -> Optional[int]:
    """Best-effort HTTP status extraction across SDK exception types."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(exc: BaseException) -> ExternalServiceError:
    """
    Map any exception raised by an external call to ExternalServiceError.

    Transient: 429/5xx statuses, timeouts, connection resets, httpx transport
    errors, and SDK messages that spell out a rate limit.
    Permanent: everything else (bad request, auth failure, not found...).
    """
    if isinstance(exc, ExternalServiceError):
        return exc

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ExternalServiceError(f"Timed out: {exc!r}", transient=True)

    if isinstance(exc, (ConnectionError, httpx.TransportError)):
        return ExternalServiceError(f"Network error: {exc!r}", transient=True)

    status = _status_code_of(exc)
    if status is not None:
        return ExternalServiceError(
            f"HTTP {status}: {exc}",
            transient=status in TRANSIENT_STATUS_CODES,
            status_code=status,
        )

    message = str(exc).lower()
    transient = any(marker in message for marker in _TRANSIENT_MARKERS)
    return ExternalServiceError(str(exc) or repr(exc), transient=transient)


# =============================================================================
# RETRY
# =============================================================================

@dataclass
class RetryPolicy:
    """How many times to try a call and how long to wait in between."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    timeout_seconds: Optional[float] = 60.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_retries=config.MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY,
            timeout_seconds=config.CALL_TIMEOUT_SECONDS,
        )

    def backoff(self, attempt: int) -> float:
        """Delay after a failed attempt (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))


async def call_with_retry(
    operation: Callable[[], Awaitable[Any]],
    *,
    policy: Optional[RetryPolicy] = None,
    label: str = "external call",
) -> Any:
    """
    Await operation() until it succeeds, fails permanently, or runs out of attempts.

    `operation` is a zero-argument factory so every attempt gets a fresh awaitable.
    Raises ExternalServiceError (the classified failure of the last attempt).
    """
    policy = policy or RetryPolicy.from_config()
    attempts = max(1, policy.max_retries)
    last_error: Optional[ExternalServiceError] = None

    for attempt in range(1, attempts + 1):
        try:
            if policy.timeout_seconds:
                return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_error(exc)
            if error is not exc:
                error.__cause__ = exc
            last_error = error

            if not error.transient:
                logger.error(f"[caller] {label}: permanent failure on attempt {attempt}: {error}")
                raise error

            if attempt < attempts:
                delay = policy.backoff(attempt)
                logger.warning(
                    f"[caller] {label}: transient failure on attempt {attempt}/{attempts}, "
                    f"retrying in {delay:.2f}s: {error}"
                )
                await asyncio.sleep(delay)

    logger.error(f"[caller] {label}: giving up after {attempts} attempts: {last_error}")
    raise last_error


# =============================================================================
# BATCH RUNNER
# =============================================================================

@dataclass
class BatchOutcome:
    """Result slot for one batch item: either `result` or `error` is set."""
    item: Any
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_batch(
    items: Iterable[Any],
    operation: Callable[[Any], Awaitable[Any]],
    *,
    batch_size: Optional[int] = None,
    delay_seconds: Optional[float] = None,
    label: str = "batch",
) -> List[BatchOutcome]:
    """
    Run `operation(item)` for every item, at most `batch_size` at a time.

    Groups run concurrently; a fixed delay separates consecutive groups so the
    external service sees a bounded request rate. Returns one BatchOutcome per
    item, in input order.
    """
    pending = list(items)
    size = max(1, batch_size or config.BATCH_SIZE)
    delay = config.BATCH_DELAY_SECONDS if delay_seconds is None else delay_seconds
    outcomes: List[BatchOutcome] = []

    for start in range(0, len(pending), size):
        group = pending[start:start + size]
        results = await asyncio.gather(
            *(operation(item) for item in group),
            return_exceptions=True,
        )

        for offset, (item, result) in enumerate(zip(group, results)):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"[caller] {label}: item {start + offset} failed: {result!r}")
                outcomes.append(BatchOutcome(item=item, error=result))
            else:
                outcomes.append(BatchOutcome(item=item, result=result))

        if start + size < len(pending) and delay > 0:
            await asyncio.sleep(delay)

    failed = sum(1 for o in outcomes if not o.ok)
    if failed:
        logger.info(f"[caller] {label}: {len(outcomes) - failed}/{len(outcomes)} items succeeded")
    return outcomes


__all__ = [
    "ExternalServiceError",
    "TRANSIENT_STATUS_CODES",
    "classify_error",
    "RetryPolicy",
    "call_with_retry",
    "BatchOutcome",
    "run_batch",
]
