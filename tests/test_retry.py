import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from webscreenshots.retry import retry
from tests.fakes import retry_options


@pytest.mark.parametrize("failures", [0, 1, 2])
def test_succeeds_after_k_failures(failures: int, caplog: pytest.LogCaptureFixture) -> None:
    """k < max_attempts failures then success => exactly k + 1 calls and no final-failure log."""
    effects = [RuntimeError("boom")] * failures + ["ok"]
    operation = AsyncMock(side_effect=effects)

    with patch("webscreenshots.retry.pause", new_callable=AsyncMock) as mock_pause:
        outcome = asyncio.run(retry(operation, retry_options(3, 100), "load page"))

    assert outcome.succeeded is True
    assert outcome.value == "ok"
    assert outcome.attempts == failures + 1
    assert operation.await_count == failures + 1
    assert mock_pause.await_count == failures
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_exhausted_attempts_log_one_final_failure(caplog: pytest.LogCaptureFixture) -> None:
    operation = AsyncMock(side_effect=RuntimeError("Persistent failure"))

    with patch("webscreenshots.retry.pause", new_callable=AsyncMock) as mock_pause:
        outcome = asyncio.run(retry(operation, retry_options(3, 50), "load page"))

    assert outcome.succeeded is False
    assert outcome.attempts == 3
    assert isinstance(outcome.error, RuntimeError)
    assert operation.await_count == 3
    # no pause after the last attempt
    assert mock_pause.await_count == 2
    mock_pause.assert_awaited_with(50)

    errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert "Persistent failure" in errors[0].getMessage()
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert "attempt 1/3" in warnings[0].getMessage()


def test_false_result_counts_as_failure() -> None:
    operation = AsyncMock(side_effect=[False, True])
    with patch("webscreenshots.retry.pause", new_callable=AsyncMock):
        outcome = asyncio.run(retry(operation, retry_options(2), "authenticate"))
    assert outcome.succeeded is True
    assert operation.await_count == 2


def test_empty_result_is_a_success() -> None:
    """An empty link list is a valid answer, only False means failure."""
    operation = AsyncMock(return_value=[])
    outcome = asyncio.run(retry(operation, retry_options(3), "crawl"))
    assert outcome.succeeded is True
    assert outcome.value == []
    assert operation.await_count == 1


def test_zero_delay_never_pauses() -> None:
    operation = AsyncMock(side_effect=RuntimeError("nope"))
    with patch("webscreenshots.retry.pause", new_callable=AsyncMock) as mock_pause:
        asyncio.run(retry(operation, retry_options(3, 0), "crawl"))
    mock_pause.assert_not_awaited()
