import time

from depwatch.apierrors import (
    ForbiddenError,
    TooManyRequestsError,
    UnauthorizedError,
)
from depwatch.probestatus import BACKOFF_DURATION_FOR_THROTTLED_REQUESTS, ProbeStatus
from depwatch.util import Context


def test_is_healthy():
    unhealthy = ProbeStatus(success_count=0, error_count=0)
    healthy = ProbeStatus(success_count=4, error_count=0)
    assert unhealthy.is_healthy(3) is False
    assert healthy.is_healthy(3) is True


def test_is_unhealthy():
    unhealthy = ProbeStatus(success_count=0, error_count=4)
    healthy = ProbeStatus(success_count=0, error_count=2)
    assert unhealthy.is_unhealthy(3) is True
    assert healthy.is_unhealthy(3) is False


def test_reset_backoff_replaces_existing_backoff():
    ps = ProbeStatus()
    ps.reset_backoff(60)
    previous = ps.backoff
    ps.reset_backoff(0.001)
    assert ps.backoff < previous


def test_reset_backoff_starts_new_backoff_when_none():
    ps = ProbeStatus()
    before = time.monotonic()
    ps.reset_backoff(0.001)
    assert ps.backoff is not None
    assert ps.backoff >= before


def test_record_success():
    ps = ProbeStatus(success_count=2, error_count=1, last_error=ValueError("x"))
    ps.reset_backoff(60)
    ps.record_success(3)
    assert ps.success_count == 3
    assert ps.error_count == 0
    assert ps.last_error is None
    assert ps.backoff <= time.monotonic()


def test_record_success_does_not_exceed_threshold():
    ps = ProbeStatus(success_count=3)
    ps.record_success(3)
    assert ps.success_count == 3


def test_record_failure():
    ps = ProbeStatus(success_count=0, error_count=1)
    err = ValueError("failure")
    ps.record_failure(err, 3, 0)
    assert ps.error_count == 2
    assert ps.backoff is None
    assert ps.success_count == 0
    assert ps.last_error is err

    before = time.monotonic()
    ps.record_failure(err, 3, 60)
    assert ps.error_count == 3
    assert ps.backoff is not None
    assert ps.backoff >= before + 59


def test_record_failure_caps_error_count_and_clears_successes():
    ps = ProbeStatus(success_count=5, error_count=3)
    ps.record_failure(ValueError("again"), 3, 0)
    assert ps.error_count == 3
    assert ps.success_count == 0


def test_can_ignore_probe_error():
    ps = ProbeStatus()
    assert ps.can_ignore_probe_error(ValueError("test")) is False
    assert ps.can_ignore_probe_error(ForbiddenError("", "test", "forbidden")) is True
    assert ps.can_ignore_probe_error(UnauthorizedError("unauthorized")) is True
    assert ps.can_ignore_probe_error(TooManyRequestsError("Too many requests", 10)) is True


def test_handle_ignorable_error():
    ps = ProbeStatus()
    ps.handle_ignorable_error(ForbiddenError("", "test", "forbidden"))
    assert ps.backoff is None
    before = time.monotonic()
    ps.handle_ignorable_error(TooManyRequestsError("Too many requests", 10))
    assert ps.backoff is not None
    assert ps.backoff >= before + BACKOFF_DURATION_FOR_THROTTLED_REQUESTS - 0.5


def test_wait_for_backoff_waits_and_clears():
    ps = ProbeStatus()
    ps.reset_backoff(0.02)
    start = time.monotonic()
    ps.wait_for_backoff(Context())
    assert time.monotonic() - start >= 0.015
    assert ps.backoff is None


def test_wait_for_backoff_stops_when_context_ends():
    ps = ProbeStatus()
    ps.reset_backoff(60)
    ctx = Context()
    ctx.cancel()
    start = time.monotonic()
    ps.wait_for_backoff(ctx)
    assert time.monotonic() - start < 5
    assert ps.backoff is None