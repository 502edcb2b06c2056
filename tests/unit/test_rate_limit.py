"""Tests for rate limiting utilities."""

from __future__ import annotations

from unittest.mock import patch

from ci_vm_operator.utils.rate_limit import (
    BucketRateLimiter,
    ItemExponentialFailureRateLimiter,
    MaxOfRateLimiter,
    default_controller_rate_limiter,
    rate_limit_gce,
    rate_limit_k8s,
)


class TestRateLimitDecorators:
    """Test cases for API call pacing decorators."""

    def test_rate_limit_k8s_passes_through(self):
        """Test that the decorated function is called with its arguments."""
        @rate_limit_k8s
        def test_func(a, b, c=None):
            return f"{a}-{b}-{c}"

        assert test_func("x", "y", c="z") == "x-y-z"

    def test_rate_limit_gce_passes_through(self):
        """Test that the GCE decorator returns the wrapped result."""
        assert rate_limit_gce(lambda: "ok")() == "ok"

    @patch("ci_vm_operator.utils.rate_limit.time.sleep")
    def test_rate_limit_k8s_sleeps_when_needed(self, mock_sleep):
        """Test that calls closer than the minimum interval are delayed."""
        import ci_vm_operator.utils.rate_limit as rl

        with patch.object(rl, "_K8S_RATE_LIMIT_PER_SECOND", 1.0):
            rl._k8s_last_call_time = 0.0
            wrapped = rate_limit_k8s(lambda: "ok")

            with patch("ci_vm_operator.utils.rate_limit.time.time", return_value=10.0):
                wrapped()
            mock_sleep.assert_not_called()

            with patch("ci_vm_operator.utils.rate_limit.time.time", return_value=10.5):
                wrapped()
            mock_sleep.assert_called_once()
            assert abs(mock_sleep.call_args[0][0] - 0.5) < 1e-9

    def test_rate_limit_propagates_exceptions(self):
        """Test that errors from the wrapped call are not swallowed."""
        @rate_limit_gce
        def failing():
            raise RuntimeError("boom")

        try:
            failing()
        except RuntimeError as e:
            assert str(e) == "boom"
        else:
            raise AssertionError("expected RuntimeError")


class TestItemExponentialFailureRateLimiter:
    """Test cases for per-item exponential backoff."""

    def test_delays_double(self):
        """Test that each failure doubles the delay."""
        limiter = ItemExponentialFailureRateLimiter(0.005, 1000.0)

        delays = [limiter.when("ci/vm-1") for _ in range(4)]

        assert delays == [0.005, 0.01, 0.02, 0.04]
        assert limiter.num_requeues("ci/vm-1") == 4

    def test_delay_is_capped(self):
        """Test that the delay never exceeds the maximum."""
        limiter = ItemExponentialFailureRateLimiter(0.005, 1000.0)

        for _ in range(30):
            delay = limiter.when("ci/vm-1")

        assert delay == 1000.0

    def test_pathological_failure_count(self):
        """Test that huge failure counts do not overflow."""
        limiter = ItemExponentialFailureRateLimiter(0.005, 1000.0)
        limiter._failures["ci/vm-1"] = 5000

        assert limiter.when("ci/vm-1") == 1000.0

    def test_forget_resets(self):
        """Test that forgetting an item resets its backoff."""
        limiter = ItemExponentialFailureRateLimiter(0.005, 1000.0)
        limiter.when("ci/vm-1")
        limiter.when("ci/vm-1")

        limiter.forget("ci/vm-1")

        assert limiter.num_requeues("ci/vm-1") == 0
        assert limiter.when("ci/vm-1") == 0.005

    def test_items_are_independent(self):
        """Test that failures of one item do not slow another."""
        limiter = ItemExponentialFailureRateLimiter(0.005, 1000.0)
        limiter.when("ci/vm-1")
        limiter.when("ci/vm-1")

        assert limiter.when("ci/vm-2") == 0.005


class TestBucketRateLimiter:
    """Test cases for the overall token bucket."""

    def test_burst_is_free(self):
        """Test that the burst is served without delay."""
        now = [0.0]
        limiter = BucketRateLimiter(qps=10.0, burst=3, clock=lambda: now[0])

        assert [limiter.when(i) for i in range(3)] == [0.0, 0.0, 0.0]

    def test_delay_after_burst(self):
        """Test that requests beyond the burst wait for tokens."""
        now = [0.0]
        limiter = BucketRateLimiter(qps=10.0, burst=1, clock=lambda: now[0])
        limiter.when("a")

        assert abs(limiter.when("b") - 0.1) < 1e-9
        assert abs(limiter.when("c") - 0.2) < 1e-9

    def test_tokens_refill(self):
        """Test that tokens refill over time."""
        now = [0.0]
        limiter = BucketRateLimiter(qps=10.0, burst=1, clock=lambda: now[0])
        limiter.when("a")

        now[0] = 1.0
        assert limiter.when("b") == 0.0

    def test_does_not_track_items(self):
        """Test that the bucket never reports requeues."""
        limiter = BucketRateLimiter()
        limiter.when("a")
        limiter.forget("a")

        assert limiter.num_requeues("a") == 0


class TestMaxOfRateLimiter:
    """Test cases for combined rate limiters."""

    def test_longest_delay_wins(self):
        """Test that the maximum of the limiters' delays is used."""
        now = [0.0]
        limiter = MaxOfRateLimiter(
            ItemExponentialFailureRateLimiter(0.005, 1000.0),
            BucketRateLimiter(qps=10.0, burst=1, clock=lambda: now[0]),
        )

        assert limiter.when("a") == 0.005
        assert abs(limiter.when("b") - 0.1) < 1e-9

    def test_forget_reaches_every_limiter(self):
        """Test that forget resets the per-item limiter."""
        limiter = default_controller_rate_limiter()
        limiter.when("a")

        limiter.forget("a")

        assert limiter.num_requeues("a") == 0

    def test_default_counts_requeues(self):
        """Test that the default limiter counts requeues per item."""
        limiter = default_controller_rate_limiter()
        for _ in range(15):
            limiter.when("a")

        assert limiter.num_requeues("a") == 15
