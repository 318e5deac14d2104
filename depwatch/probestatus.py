"""Bookkeeping of consecutive probe successes and failures with back-off."""

from __future__ import annotations

import time
from dataclasses import dataclass

from depwatch.apierrors import is_forbidden, is_too_many_requests, is_unauthorized
from depwatch.util import Context

BACKOFF_DURATION_FOR_THROTTLED_REQUESTS = 10.0


@dataclass
class ProbeStatus:
    """Counts of consecutive probe results and the pending back-off deadline.

    ``backoff`` is a ``time.monotonic()`` deadline before which the next probe
    should not run, or None when there is no back-off.
    """

    success_count: int = 0
    error_count: int = 0
    last_error: Exception | None = None
    backoff: float | None = None

    def can_ignore_probe_error(self, error: Exception) -> bool:
        """Return True for errors that should not count as probe failures.

        Authentication and authorization failures may come from rotated secrets,
        and throttled requests say nothing about the server's health.
        """
        secrets_rotated = is_forbidden(error) or is_unauthorized(error)
        return secrets_rotated or is_too_many_requests(error)

    def handle_ignorable_error(self, error: Exception) -> None:
        """Back off for a while if the server throttled the request."""
        if is_too_many_requests(error):
            self.reset_backoff(BACKOFF_DURATION_FOR_THROTTLED_REQUESTS)

    def record_failure(
        self, error: Exception, failure_threshold: int, backoff_duration: float
    ) -> None:
        """Count a failed probe; back off once the failure threshold is reached."""
        if self.error_count < failure_threshold:
            self.error_count += 1
        self.last_error = error
        self.success_count = 0
        if self.is_unhealthy(failure_threshold):
            self.reset_backoff(backoff_duration)

    def record_success(self, success_threshold: int) -> None:
        """Count a successful probe and clear failures."""
        self.error_count = 0
        self.last_error = None
        if self.success_count < success_threshold:
            self.success_count += 1
        self.reset_backoff(0)

    def reset_backoff(self, duration: float) -> None:
        """Replace any pending back-off with one ending duration seconds from now."""
        self.backoff = time.monotonic() + duration

    def is_healthy(self, success_threshold: int) -> bool:
        """Return True once enough consecutive successes have been seen."""
        return self.success_count >= success_threshold

    def is_unhealthy(self, failure_threshold: int) -> bool:
        """Return True once enough consecutive failures have been seen."""
        return self.error_count >= failure_threshold

    def wait_for_backoff(self, ctx: Context) -> None:
        """Block until the pending back-off ends or ctx ends, then clear it."""
        if self.backoff is None:
            return
        remaining = self.backoff - time.monotonic()
        if remaining > 0:
            ctx.wait(remaining)
        self.backoff = None