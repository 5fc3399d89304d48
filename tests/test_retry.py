"""Tests for bounded retry with backoff."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from roombook.infra.retry import (
    JITTER_MAX_MS,
    RetriesExhaustedError,
    backoff_delay_ms,
    run_with_retries,
)


class TestBackoffDelay:
    def test_exponential_growth(self):
        with patch("roombook.infra.retry.random.uniform", return_value=0):
            assert backoff_delay_ms(1, 100, 2000) == 100
            assert backoff_delay_ms(2, 100, 2000) == 200
            assert backoff_delay_ms(3, 100, 2000) == 400

    def test_capped_at_max(self):
        with patch("roombook.infra.retry.random.uniform", return_value=0):
            assert backoff_delay_ms(10, 100, 2000) == 2000

    def test_jitter_bounded(self):
        for attempt in range(1, 6):
            delay = backoff_delay_ms(attempt, 100, 2000)
            base = min(100 * 2 ** (attempt - 1), 2000)
            assert base <= delay <= base + JITTER_MAX_MS


class TestRunWithRetries:
    def test_success_first_try(self):
        fn = MagicMock(return_value="ok")
        sleep = MagicMock()

        assert run_with_retries(fn, operation="op", sleep=sleep) == "ok"
        fn.assert_called_once()
        sleep.assert_not_called()

    def test_transient_then_success(self):
        fn = MagicMock(side_effect=[psycopg2.OperationalError("lost"), "ok"])
        sleep = MagicMock()

        assert run_with_retries(fn, operation="op", max_attempts=3, sleep=sleep) == "ok"
        assert fn.call_count == 2
        sleep.assert_called_once()

    def test_statement_timeout_is_transient(self):
        fn = MagicMock(side_effect=[pg_errors.QueryCanceled(), "ok"])
        assert run_with_retries(fn, operation="op", max_attempts=2, sleep=MagicMock()) == "ok"

    def test_serialization_failure_is_transient(self):
        fn = MagicMock(side_effect=[pg_errors.SerializationFailure(), "ok"])
        assert run_with_retries(fn, operation="op", max_attempts=2, sleep=MagicMock()) == "ok"

    def test_exhausted(self):
        error = psycopg2.OperationalError("down")
        fn = MagicMock(side_effect=error)
        sleep = MagicMock()

        with pytest.raises(RetriesExhaustedError) as exc_info:
            run_with_retries(fn, operation="create_booking", max_attempts=3, sleep=sleep)

        assert fn.call_count == 3
        assert sleep.call_count == 2
        assert exc_info.value.operation == "create_booking"
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error

    def test_sleep_in_seconds(self):
        fn = MagicMock(side_effect=[psycopg2.OperationalError("lost"), "ok"])
        sleep = MagicMock()

        with patch("roombook.infra.retry.random.uniform", return_value=0):
            run_with_retries(fn, operation="op", base_delay_ms=250, max_attempts=2, sleep=sleep)

        sleep.assert_called_once_with(0.25)

    def test_non_transient_propagates_immediately(self):
        fn = MagicMock(side_effect=pg_errors.UniqueViolation())
        sleep = MagicMock()

        with pytest.raises(pg_errors.UniqueViolation):
            run_with_retries(fn, operation="op", max_attempts=5, sleep=sleep)

        fn.assert_called_once()
        sleep.assert_not_called()

    def test_attempts_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_RETRY_ATTEMPTS", "4")
        fn = MagicMock(side_effect=psycopg2.OperationalError("down"))

        with pytest.raises(RetriesExhaustedError):
            run_with_retries(fn, operation="op", sleep=MagicMock())

        assert fn.call_count == 4

    def test_at_least_one_attempt(self):
        fn = MagicMock(return_value="ok")
        assert run_with_retries(fn, operation="op", max_attempts=0, sleep=MagicMock()) == "ok"
