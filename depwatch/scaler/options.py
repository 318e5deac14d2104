"""Tunable timings for scaling operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

# All durations are in seconds.
DEFAULT_RESOURCE_CHECK_TIMEOUT = 5.0
DEFAULT_RESOURCE_CHECK_INTERVAL = 1.0
DEFAULT_SCALE_RESOURCE_BACKOFF = 0.1


@dataclass
class ScalerOptions:
    """Timings used while scaling resources; unset values are None until defaulted."""

    resource_check_timeout: float | None = None
    resource_check_interval: float | None = None
    scale_resource_backoff: float | None = None


ScalerOption = Callable[[ScalerOptions], None]


def build_scaler_options(*options: ScalerOption) -> ScalerOptions:
    """Apply the given options in order and fill every unset value with its default."""
    opts = ScalerOptions()
    for option in options:
        option(opts)
    _fill_defaults(opts)
    return opts


def with_resource_check_timeout(timeout: float) -> ScalerOption:
    """Option setting how long to wait for a resource to reach its target replicas."""

    def apply(options: ScalerOptions) -> None:
        options.resource_check_timeout = timeout

    return apply


def with_resource_check_interval(interval: float) -> ScalerOption:
    """Option setting how often a resource's replicas are checked."""

    def apply(options: ScalerOptions) -> None:
        options.resource_check_interval = interval

    return apply


def with_scale_resource_backoff(interval: float) -> ScalerOption:
    """Option setting the pause between attempts to scale a resource."""

    def apply(options: ScalerOptions) -> None:
        options.scale_resource_backoff = interval

    return apply


def _fill_defaults(options: ScalerOptions) -> None:
    if options.resource_check_timeout is None:
        options.resource_check_timeout = DEFAULT_RESOURCE_CHECK_TIMEOUT
    if options.resource_check_interval is None:
        options.resource_check_interval = DEFAULT_RESOURCE_CHECK_INTERVAL
    if options.scale_resource_backoff is None:
        options.scale_resource_backoff = DEFAULT_SCALE_RESOURCE_BACKOFF