"""
InvoiceFlow - Login Rate Limiter Tests
"""

import threading
from datetime import timedelta

import pytest

from invoiceflow.services.rate_limiter import LoginRateLimiter


class TestLockout:

    def test_counts_down_remaining_attempts(self, rate_limiter):
        assert rate_limiter.get_remaining_attempts("10.0.0.1") == 3
        assert rate_limiter.record_failed_attempt("10.0.0.1") == 2
        assert rate_limiter.record_failed_attempt("10.0.0.1") == 1
        assert not rate_limiter.is_locked_out("10.0.0.1")

    def test_locks_after_max_attempts(self, rate_limiter, clock):
        for _ in range(3):
            remaining = rate_limiter.record_failed_attempt("10.0.0.1")

        assert remaining == 0
        assert rate_limiter.is_locked_out("10.0.0.1")
        assert rate_limiter.get_lockout_expiry("10.0.0.1") == clock.current + timedelta(minutes=15)

    def test_keys_are_independent(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_failed_attempt("10.0.0.1")

        assert not rate_limiter.is_locked_out("10.0.0.2")
        assert rate_limiter.get_remaining_attempts("10.0.0.2") == 3

    def test_lockout_expires(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.record_failed_attempt("10.0.0.1")

        clock.advance(minutes=14, seconds=59)
        assert rate_limiter.is_locked_out("10.0.0.1")

        clock.advance(seconds=1)
        assert not rate_limiter.is_locked_out("10.0.0.1")
        assert rate_limiter.get_remaining_attempts("10.0.0.1") == 3

    def test_success_clears_failures(self, rate_limiter):
        rate_limiter.record_failed_attempt("10.0.0.1")
        rate_limiter.record_failed_attempt("10.0.0.1")

        rate_limiter.record_successful_attempt("10.0.0.1")

        assert rate_limiter.get_remaining_attempts("10.0.0.1") == 3


class TestWindow:

    def test_failures_outside_window_start_over(self, clock):
        limiter = LoginRateLimiter(
            max_attempts=3,
            lockout_duration=timedelta(minutes=15),
            attempt_window=timedelta(minutes=5),
            clock=clock,
        )
        limiter.record_failed_attempt("user")
        limiter.record_failed_attempt("user")

        clock.advance(minutes=5)

        assert limiter.record_failed_attempt("user") == 2
        assert not limiter.is_locked_out("user")

    def test_window_defaults_to_lockout_duration(self):
        limiter = LoginRateLimiter(lockout_duration=timedelta(minutes=7))
        assert limiter.attempt_window == timedelta(minutes=7)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            LoginRateLimiter(max_attempts=0)


class TestCleanup:

    def test_removes_only_expired_entries(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.record_failed_attempt("locked")
        clock.advance(minutes=10)
        rate_limiter.record_failed_attempt("recent")

        clock.advance(minutes=6)

        assert rate_limiter.cleanup_expired_entries() == 1
        assert len(rate_limiter) == 1
        assert not rate_limiter.is_locked_out("locked")

    def test_cleanup_on_empty_limiter(self, rate_limiter):
        assert rate_limiter.cleanup_expired_entries() == 0


class TestThreadSafety:

    def test_concurrent_failures_are_all_counted(self):
        limiter = LoginRateLimiter(max_attempts=1000)
        workers = 8
        per_worker = 50

        def hammer():
            for _ in range(per_worker):
                limiter.record_failed_attempt("shared")

        threads = [threading.Thread(target=hammer) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert limiter.get_remaining_attempts("shared") == 1000 - workers * per_worker
