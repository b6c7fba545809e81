# FILE: tests/test_caller.py
"""
Tests for neurohub/llm/caller.py
Rate-limited external caller - error classification, retry bound, batching.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import asyncio
import pytest
import httpx
from unittest.mock import AsyncMock, patch


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.github.com/repos/acme/widgets")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestClassifyError:
    """Test transient/permanent classification."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses_are_transient(self, status):
        from neurohub.llm.caller import classify_error
        err = classify_error(_status_error(status))
        assert err.transient is True
        assert err.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_are_permanent(self, status):
        from neurohub.llm.caller import classify_error
        assert classify_error(_status_error(status)).transient is False

    def test_timeouts_and_resets_are_transient(self):
        from neurohub.llm.caller import classify_error
        assert classify_error(asyncio.TimeoutError()).transient is True
        assert classify_error(ConnectionResetError("reset by peer")).transient is True
        assert classify_error(httpx.ConnectError("refused")).transient is True

    def test_rate_limit_message_is_transient(self):
        from neurohub.llm.caller import classify_error
        assert classify_error(Exception("429 Resource exhausted")).transient is True

    def test_unknown_error_is_permanent(self):
        from neurohub.llm.caller import classify_error
        assert classify_error(ValueError("malformed request")).transient is False

    def test_external_service_error_passes_through(self):
        from neurohub.llm.caller import ExternalServiceError, classify_error
        original = ExternalServiceError("boom", transient=True)
        assert classify_error(original) is original


class TestRetryPolicy:
    """Test backoff arithmetic."""

    def test_backoff_doubles(self):
        from neurohub.llm.caller import RetryPolicy
        policy = RetryPolicy(max_retries=3, base_delay=1.0)
        assert [policy.backoff(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_from_config_reads_current_values(self, monkeypatch):
        from neurohub.llm.caller import RetryPolicy
        from neurohub.rag import config

        monkeypatch.setattr(config, "MAX_RETRIES", 5)
        policy = RetryPolicy.from_config()
        assert policy.max_retries == 5
        assert policy.base_delay == 0.0  # zeroed by the autouse fixture


class TestCallWithRetry:
    """Test retry bound and failure surfacing."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, fast_policy):
        from neurohub.llm.caller import call_with_retry
        op = AsyncMock(return_value="ok")
        assert await call_with_retry(op, policy=fast_policy) == "ok"
        assert op.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_attempted_exactly_max_retries(self, fast_policy):
        from neurohub.llm.caller import ExternalServiceError, call_with_retry
        op = AsyncMock(side_effect=_status_error(503))

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retry(op, policy=fast_policy)

        assert op.await_count == fast_policy.max_retries == 3
        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, fast_policy):
        from neurohub.llm.caller import ExternalServiceError, call_with_retry
        op = AsyncMock(side_effect=_status_error(404))

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retry(op, policy=fast_policy)

        assert op.await_count == 1
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, fast_policy):
        from neurohub.llm.caller import call_with_retry
        op = AsyncMock(side_effect=[_status_error(429), "ok"])
        assert await call_with_retry(op, policy=fast_policy) == "ok"
        assert op.await_count == 2

    @pytest.mark.asyncio
    async def test_sleeps_follow_exponential_backoff(self):
        from neurohub.llm.caller import ExternalServiceError, RetryPolicy, call_with_retry
        policy = RetryPolicy(max_retries=3, base_delay=1.0, timeout_seconds=None)
        op = AsyncMock(side_effect=_status_error(429))

        with patch("neurohub.llm.caller.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ExternalServiceError):
                await call_with_retry(op, policy=policy)

        # No sleep after the final attempt
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_timeout_counts_as_transient(self):
        from neurohub.llm.caller import ExternalServiceError, RetryPolicy, call_with_retry
        policy = RetryPolicy(max_retries=2, base_delay=0.0, timeout_seconds=0.01)
        attempts = []

        async def slow():
            attempts.append(1)
            await asyncio.sleep(1)

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retry(slow, policy=policy)

        assert len(attempts) == 2
        assert exc_info.value.transient is True


class TestRunBatch:
    """Test grouped, all-settled batch execution."""

    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        from neurohub.llm.caller import run_batch

        async def double(x):
            await asyncio.sleep(0.001 * (5 - x))
            return x * 2

        outcomes = await run_batch([1, 2, 3, 4], double, batch_size=3, delay_seconds=0)
        assert [o.item for o in outcomes] == [1, 2, 3, 4]
        assert [o.result for o in outcomes] == [2, 4, 6, 8]
        assert all(o.ok for o in outcomes)

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        from neurohub.llm.caller import run_batch

        async def op(x):
            if x == 2:
                raise RuntimeError("bad item")
            return x

        outcomes = await run_batch([1, 2, 3], op, batch_size=3, delay_seconds=0)
        assert [o.ok for o in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, RuntimeError)
        assert outcomes[2].result == 3

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self):
        from neurohub.llm.caller import run_batch
        in_flight = 0
        peak = 0

        async def op(x):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return x

        await run_batch(range(10), op, batch_size=3, delay_seconds=0)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_delay_only_between_groups(self):
        from neurohub.llm.caller import run_batch

        async def op(x):
            return x

        with patch("neurohub.llm.caller.asyncio.sleep", new=AsyncMock()) as sleep:
            await run_batch(range(7), op, batch_size=3, delay_seconds=0.5)

        # 3 groups -> 2 pauses
        assert sleep.await_count == 2
        assert all(c.args[0] == 0.5 for c in sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_empty_input(self):
        from neurohub.llm.caller import run_batch
        assert await run_batch([], AsyncMock(), batch_size=3) == []
