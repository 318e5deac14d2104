"""Probing of a cluster's API server through internal and external endpoints."""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Protocol

from depwatch.apierrors import is_not_found
from depwatch.config import ProberConfig
from depwatch.probestatus import ProbeStatus
from depwatch.retry import retry
from depwatch.util import Context, sleep_with_context

logger = logging.getLogger(__name__)

DEFAULT_GET_SECRET_BACKOFF = 0.1
DEFAULT_GET_SECRET_MAX_ATTEMPTS = 3


class ShootClient(Protocol):
    """A client for a cluster's API server."""

    def server_version(self) -> Any:
        """Return the server version, raising if the server cannot be reached."""


class ShootClientCreator(Protocol):
    """Creates clients for the API server of a cluster."""

    def create_client(
        self, ctx: Context, namespace: str, secret_name: str, connection_timeout: float
    ) -> ShootClient:
        """Create a client from the kubeconfig held in the named secret."""


class Scaler(Protocol):
    """Scales the dependent resources of a cluster."""

    def scale_up(self, ctx: Context) -> None:
        """Restore the dependent resources."""

    def scale_down(self, ctx: Context) -> None:
        """Scale the dependent resources down."""


def can_retry_secret_get(error: Exception) -> bool:
    """Return False when the secret does not exist, True for any other error."""
    return not is_not_found(error)


class SecretShootClientCreator:
    """Creates shoot clients from kubeconfigs stored in secrets.

    ``secret_getter(ctx, namespace, secret_name)`` returns the kubeconfig bytes
    and ``client_factory(kubeconfig, connection_timeout)`` builds the client.
    """

    def __init__(
        self,
        secret_getter: Callable[[Context, str, str], bytes],
        client_factory: Callable[[bytes, float], ShootClient],
    ) -> None:
        self._secret_getter = secret_getter
        self._client_factory = client_factory

    def create_client(
        self, ctx: Context, namespace: str, secret_name: str, connection_timeout: float
    ) -> ShootClient:
        """Fetch the kubeconfig, retrying transient failures, and build a client from it."""
        operation = f"get-secret-{secret_name}-for-namespace-{namespace}"
        result = retry(
            ctx,
            operation,
            lambda: self._secret_getter(ctx, namespace, secret_name),
            DEFAULT_GET_SECRET_MAX_ATTEMPTS,
            DEFAULT_GET_SECRET_BACKOFF,
            can_retry_secret_get,
        )
        if result.error is not None:
            raise result.error
        return self._client_factory(result.value, connection_timeout)


def _jitter(duration: float, max_factor: float) -> float:
    if max_factor <= 0:
        max_factor = 1.0
    return duration + random.random() * max_factor * duration


class Prober:
    """Periodically probes a cluster's API server and scales dependents accordingly."""

    def __init__(
        self,
        parent_ctx: Context,
        namespace: str,
        config: ProberConfig,
        scaler: Scaler | None,
        shoot_client_creator: ShootClientCreator | None,
    ) -> None:
        self.namespace = namespace
        self.config = config
        self.scaler = scaler
        self.shoot_client_creator = shoot_client_creator
        self.internal_probe_status = ProbeStatus()
        self.external_probe_status = ProbeStatus()
        self._ctx = parent_ctx.with_cancel()

    def close(self) -> None:
        """Stop the prober."""
        self._ctx.cancel()

    def is_closed(self) -> bool:
        """Return True once the prober has been stopped."""
        return self._ctx.done()

    def run(self) -> None:
        """Probe repeatedly at the configured interval with jitter until closed."""
        try:
            sleep_with_context(self._ctx, self.config.initial_delay or 0.0)
        except Exception:  # noqa: BLE001 - a stopped prober simply ends below
            pass
        interval = self.config.probe_interval or 0.0
        jitter_factor = self.config.backoff_jitter_factor or 0.0
        while not self._ctx.done():
            period = _jitter(interval, jitter_factor)
            self.probe()
            if self._ctx.wait(period):
                return

    def probe(self) -> None:
        """Run one internal probe and, if healthy, one external probe followed by scaling."""
        ctx = self._ctx
        try:
            internal_client = self._create_client(self.config.internal_kube_config_secret_name)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to create shoot client using internal secret, internal probe will be "
                "re-attempted (namespace=%s): %s",
                self.namespace,
                exc,
            )
            return
        self._probe_internal(internal_client)
        if not self.internal_probe_status.is_healthy(self.config.success_threshold):
            return
        try:
            external_client = self._create_client(self.config.external_kube_config_secret_name)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to create shoot client using external secret, probe will be "
                "re-attempted (namespace=%s): %s",
                self.namespace,
                exc,
            )
            return
        self._probe_external(external_client)
        if self.external_probe_status.is_unhealthy(self.config.failure_threshold):
            logger.info(
                "External probe is un-healthy, checking if scale down is already done or is "
                "still pending (namespace=%s)",
                self.namespace,
            )
            try:
                self.scaler.scale_down(ctx)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to scale down resources (namespace=%s): %s", self.namespace, exc)
            return
        if self.external_probe_status.is_healthy(self.config.success_threshold):
            logger.info(
                "External probe is healthy, checking if scale up is already done or is still "
                "pending (namespace=%s)",
                self.namespace,
            )
            try:
                self.scaler.scale_up(ctx)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to scale up resources (namespace=%s): %s", self.namespace, exc)

    def _create_client(self, secret_name: str) -> ShootClient:
        return self.shoot_client_creator.create_client(
            self._ctx, self.namespace, secret_name, self.config.probe_timeout
        )

    def _probe_internal(self, client: ShootClient) -> None:
        status = self.internal_probe_status
        status.wait_for_backoff(self._ctx)
        try:
            client.server_version()
        except Exception as exc:  # noqa: BLE001
            if not status.can_ignore_probe_error(exc):
                status.record_failure(
                    exc,
                    self.config.failure_threshold,
                    self.config.internal_probe_failure_backoff_duration or 0.0,
                )
                logger.info(
                    "Recording internal probe failure, skipping external probe and scaling "
                    "(namespace=%s, failed_attempts=%d, failure_threshold=%s): %s",
                    self.namespace,
                    status.error_count,
                    self.config.failure_threshold,
                    exc,
                )
            else:
                status.handle_ignorable_error(exc)
                logger.info(
                    "Internal probe was not successful, ignoring this error (namespace=%s): %s",
                    self.namespace,
                    exc,
                )
            return
        status.record_success(self.config.success_threshold)
        logger.info(
            "Internal probe is successful (namespace=%s, successful_attempts=%d, "
            "success_threshold=%s)",
            self.namespace,
            status.success_count,
            self.config.success_threshold,
        )

    def _probe_external(self, client: ShootClient) -> None:
        status = self.external_probe_status
        status.wait_for_backoff(self._ctx)
        try:
            client.server_version()
        except Exception as exc:  # noqa: BLE001
            if not status.can_ignore_probe_error(exc):
                status.record_failure(exc, self.config.failure_threshold, 0)
                logger.info(
                    "Recording external probe failure (namespace=%s, failed_attempts=%d, "
                    "failure_threshold=%s): %s",
                    self.namespace,
                    status.error_count,
                    self.config.failure_threshold,
                    exc,
                )
                return
            status.handle_ignorable_error(exc)
            logger.info(
                "External probe was not successful, ignoring this error (namespace=%s): %s",
                self.namespace,
                exc,
            )
            return
        status.record_success(self.config.success_threshold)
        logger.info(
            "External probe is successful (namespace=%s, successful_attempts=%d, "
            "success_threshold=%s)",
            self.namespace,
            status.success_count,
            self.config.success_threshold,
        )