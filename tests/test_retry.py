"""Tests for quipslop/retry.py."""

import logging
from unittest.mock import AsyncMock

import pytest

from quipslop.retry import RetryExecutor, RetryExhausted


def _delays(sleep: AsyncMock) -> list[float]:
    return [c.args[0] for c in sleep.await_args_list]


async def test_returns_first_valid_result(no_sleep):
    executor = RetryExecutor(max_attempts=3, base_delay=1.0, sleep=no_sleep)
    operation = AsyncMock(return_value="hello")

    result = await executor.execute(operation, lambda s: bool(s), "test")

    assert result == "hello"
    assert operation.await_count == 1
    no_sleep.assert_not_awaited()


async def test_succeeds_after_failures(no_sleep):
    executor = RetryExecutor(max_attempts=3, base_delay=1.0, sleep=no_sleep)
    operation = AsyncMock(side_effect=[RuntimeError("boom"), RuntimeError("boom"), "ok"])

    result = await executor.execute(operation, lambda s: s == "ok", "test")

    assert result == "ok"
    assert operation.await_count == 3
    assert _delays(no_sleep) == [1.0, 2.0]


async def test_exhaustion_carries_last_error(no_sleep):
    executor = RetryExecutor(max_attempts=3, base_delay=0.5, sleep=no_sleep)
    errors = [RuntimeError("first"), RuntimeError("second"), RuntimeError("third")]
    operation = AsyncMock(side_effect=errors)

    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(operation, lambda s: True, "label")

    assert exc_info.value.attempts == 3
    assert exc_info.value.last_error is errors[-1]
    assert exc_info.value.label == "label"
    assert operation.await_count == 3


async def test_delays_strictly_increase_and_skip_last_attempt(no_sleep):
    executor = RetryExecutor(max_attempts=4, base_delay=1.0, sleep=no_sleep)
    operation = AsyncMock(side_effect=RuntimeError("down"))

    with pytest.raises(RetryExhausted):
        await executor.execute(operation, lambda s: True)

    delays = _delays(no_sleep)
    assert len(delays) == 3
    assert all(a < b for a, b in zip(delays, delays[1:]))


async def test_invalid_result_counts_as_failed_attempt(no_sleep):
    executor = RetryExecutor(max_attempts=3, base_delay=0, sleep=no_sleep)
    operation = AsyncMock(side_effect=["", "x", "long enough"])

    result = await executor.execute(operation, lambda s: len(s) >= 5, "validate")

    assert result == "long enough"
    assert operation.await_count == 3


async def test_validation_exhaustion_reports_validation_error(no_sleep):
    executor = RetryExecutor(max_attempts=2, base_delay=0, sleep=no_sleep)
    operation = AsyncMock(return_value="nope")

    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(operation, lambda s: False, "validate")

    assert isinstance(exc_info.value.last_error, ValueError)
    assert "Validation failed (attempt 2/2)" in str(exc_info.value.last_error)


async def test_validator_exception_counts_as_failure(no_sleep):
    executor = RetryExecutor(max_attempts=2, base_delay=0, sleep=no_sleep)
    operation = AsyncMock(return_value=None)

    def validate(value):
        return len(value) > 0  # TypeError on None

    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(operation, validate)

    assert isinstance(exc_info.value.last_error, TypeError)


async def test_per_call_attempt_override(no_sleep):
    executor = RetryExecutor(max_attempts=5, base_delay=0, sleep=no_sleep)
    operation = AsyncMock(side_effect=RuntimeError("down"))

    with pytest.raises(RetryExhausted) as exc_info:
        await executor.execute(operation, lambda s: True, max_attempts=1)

    assert exc_info.value.attempts == 1
    assert operation.await_count == 1
    no_sleep.assert_not_awaited()


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryExecutor(max_attempts=0)


async def test_logs_each_attempt_and_final_failure(no_sleep, caplog):
    executor = RetryExecutor(max_attempts=3, base_delay=0, sleep=no_sleep)
    operation = AsyncMock(side_effect=RuntimeError("down"))

    with caplog.at_level(logging.INFO, logger="quipslop.retry"):
        with pytest.raises(RetryExhausted):
            await executor.execute(operation, lambda s: True, "R1:prompt:Alpha")

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(warnings) == 3
    assert len(errors) == 1
    assert all("R1:prompt:Alpha" in r.getMessage() for r in warnings + errors)
