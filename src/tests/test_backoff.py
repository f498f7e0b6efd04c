"""Tests for backoff.py module."""

import threading
import time
from unittest.mock import patch

import pytest

import backoff
from backoff import BackoffController, stoppable_sleep


class TestStoppableSleep:
    """Interruptible sleep helper."""

    def test_returns_true_immediately_when_already_stopped(self, stop_event):
        stop_event.set()
        start = time.time()
        assert stoppable_sleep(30, stop_event) is True
        assert time.time() - start < 1.0

    def test_returns_false_after_full_duration(self, stop_event):
        assert stoppable_sleep(0.05, stop_event) is False

    def test_zero_duration_does_not_wait(self, stop_event):
        assert stoppable_sleep(0, stop_event) is False

    def test_wakes_within_one_second_of_stop_request(self, stop_event):
        results = []

        def sleeper():
            start = time.time()
            results.append(stoppable_sleep(30, stop_event))
            results.append(time.time() - start)

        t = threading.Thread(target=sleeper)
        t.start()
        time.sleep(0.05)
        stop_event.set()
        t.join(timeout=2)

        assert not t.is_alive(), "Sleeper should have exited"
        assert results[0] is True
        assert results[1] < 1.0, f"Sleep took {results[1]:.2f}s, expected < 1s"


class TestBackoffController:
    """Linear backoff with a reset valve."""

    def test_disabled_when_backoff_time_is_zero(self, stop_event):
        assert BackoffController(0, 0, stop_event).is_enabled() is False
        assert BackoffController(5, 0, stop_event).is_enabled() is True

    def test_sleep_grows_linearly_with_failed_runs(self, stop_event):
        controller = BackoffController(10, 0, stop_event)
        with patch("backoff.stoppable_sleep") as sleep:
            durations = [controller.on_quota_violation() for _ in range(4)]

        assert durations == [10, 20, 30, 40]
        assert [c.args[0] for c in sleep.call_args_list] == [10, 20, 30, 40]
        assert controller.failed_runs == 4

    @pytest.mark.parametrize("backoff_time,max_failed_runs", [(1, 2), (5, 3), (7, 5)])
    def test_kth_violation_sleeps_k_times_backoff_until_cap(
        self, stop_event, backoff_time, max_failed_runs
    ):
        controller = BackoffController(backoff_time, max_failed_runs, stop_event)
        with patch("backoff.stoppable_sleep") as sleep:
            for k in range(1, max_failed_runs):
                assert controller.on_quota_violation() == k * backoff_time

            # The M-th violation resets the counter without sleeping
            assert controller.on_quota_violation() == 0

        assert controller.failed_runs == 0
        assert sleep.call_count == max_failed_runs - 1

    def test_counter_starts_over_after_reset(self, stop_event):
        controller = BackoffController(2, 2, stop_event)
        with patch("backoff.stoppable_sleep"):
            controller.on_quota_violation()
            controller.on_quota_violation()
            assert controller.on_quota_violation() == 2

    def test_on_success_resets_counter(self, stop_event):
        controller = BackoffController(3, 0, stop_event)
        with patch("backoff.stoppable_sleep"):
            controller.on_quota_violation()
            controller.on_quota_violation()
        controller.on_success()

        assert controller.failed_runs == 0
        with patch("backoff.stoppable_sleep"):
            assert controller.on_quota_violation() == 3

    def test_on_success_is_noop_when_disabled(self, stop_event):
        controller = BackoffController(0, 0, stop_event)
        controller.failed_runs = 2
        controller.on_success()
        assert controller.failed_runs == 2

    def test_backoff_sleep_is_interrupted_by_stop(self, stop_event):
        controller = BackoffController(60, 0, stop_event)
        stop_event.set()
        start = time.time()
        controller.on_quota_violation()
        assert time.time() - start < 1.0

    def test_reset_is_logged_at_info(self, stop_event, caplog):
        controller = BackoffController(1, 1, stop_event)
        with caplog.at_level("INFO", logger=backoff.__name__):
            controller.on_quota_violation()
        assert "Maximum number of failed runs reached" in caplog.text
