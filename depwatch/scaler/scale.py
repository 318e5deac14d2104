"""Scaling of a single dependent resource."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from depwatch.apierrors import is_not_found
from depwatch.retry import retry_until_predicate
from depwatch.scaler.options import ScalerOptions, build_scaler_options
from depwatch.scaler.resources import Operation, ScalableResourceInfo
from depwatch.types import CrossVersionObjectReference
from depwatch.util import Context, sleep_with_context

logger = logging.getLogger(__name__)

IGNORE_SCALING_ANNOTATION_KEY = "dependency-watchdog.gardener.cloud/ignore-scaling"
REPLICAS_ANNOTATION_KEY = "dependency-watchdog.gardener.cloud/replicas"
DEFAULT_SCALE_UP_REPLICAS = 1
DEFAULT_SCALE_DOWN_REPLICAS = 0

_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}
_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass
class Scale:
    """The scale subresource of a resource."""

    name: str
    namespace: str
    replicas: int


class ResourceClient(Protocol):
    """Access to the resources being scaled."""

    def get_annotations(
        self, ctx: Context, namespace: str, ref: CrossVersionObjectReference
    ) -> dict[str, str] | None:
        """Return the resource's annotations, or None if it has none."""

    def get_scale(
        self, ctx: Context, namespace: str, ref: CrossVersionObjectReference, timeout: float
    ) -> Scale:
        """Return the resource's scale subresource."""

    def update_scale(
        self, ctx: Context, namespace: str, ref: CrossVersionObjectReference, scale: Scale
    ) -> None:
        """Write the scale subresource back."""

    def patch_annotations(
        self,
        ctx: Context,
        namespace: str,
        ref: CrossVersionObjectReference,
        annotations: Mapping[str, str],
    ) -> None:
        """Merge the given annotations into the resource's annotations."""

    def get_ready_replicas(
        self, ctx: Context, namespace: str, ref: CrossVersionObjectReference
    ) -> int:
        """Return the number of ready replicas of the resource."""


def ignore_scaling(annotations: Mapping[str, str] | None) -> bool:
    """Return True if the ignore-scaling annotation is set to a true boolean value."""
    if not annotations:
        return False
    value = annotations.get(IGNORE_SCALING_ANNOTATION_KEY)
    if value is None or value in _FALSE_VALUES:
        return False
    return value in _TRUE_VALUES


class ResourceScaler:
    """Scales one resource up or down and waits for it to settle."""

    def __init__(
        self,
        client: ResourceClient,
        namespace: str,
        resource_info: ScalableResourceInfo,
        options: ScalerOptions | None = None,
    ) -> None:
        self.client = client
        self.namespace = namespace
        self.resource_info = resource_info
        self.options = options if options is not None else build_scaler_options()

    def _describe(self) -> str:
        ref = self.resource_info.ref
        return (
            f"namespace={self.namespace}, kind={ref.kind}, apiVersion={ref.api_version}, "
            f"name={ref.name}, level={self.resource_info.level}"
        )

    def scale(self, ctx: Context) -> None:
        """Scale the resource if needed, then wait until it reaches its minimum target."""
        info = self.resource_info
        try:
            sleep_with_context(ctx, info.initial_delay or 0.0)
        except Exception:
            logger.error("Context has been cancelled, exiting scaling operation (%s)", self._describe())
            raise

        try:
            annotations = self.client.get_annotations(ctx, self.namespace, info.ref)
        except Exception as exc:
            if is_not_found(exc) and info.optional:
                logger.info(
                    "Resource not found, ignoring it as it is marked optional (%s)", self._describe()
                )
                return
            logger.error("Error trying to get annotations for resource (%s): %s", self._describe(), exc)
            raise

        if ignore_scaling(annotations):
            logger.info(
                "Scaling ignored due to annotation %s (%s)",
                IGNORE_SCALING_ANNOTATION_KEY,
                self._describe(),
            )
            return

        try:
            current = self.client.get_scale(ctx, self.namespace, info.ref, info.timeout)
        except Exception as exc:
            if is_not_found(exc):
                logger.error(
                    "Resource does not have a scale subresource, invalid config (%s): %s",
                    self._describe(),
                    exc,
                )
            raise

        if info.operation.should_scale_replicas(current.replicas):
            self._update_resource_and_scale(ctx, current, annotations)
        elif info.operation is Operation.SCALE_UP:
            logger.info("Skipping scale-up as current spec replicas > 0 (%s)", self._describe())
        else:
            logger.info("Skipping scale-down as current spec replicas == 0 (%s)", self._describe())

        self._wait_till_min_target_replicas_reached(ctx)

    def _wait_till_min_target_replicas_reached(self, ctx: Context) -> None:
        info = self.resource_info
        min_target = info.operation.min_target_replicas()

        def reached() -> bool:
            try:
                ready = self.client.get_ready_replicas(ctx, self.namespace, info.ref)
            except Exception:  # noqa: BLE001 - keep polling until the timeout
                return False
            if info.operation.min_target_replicas_reached(ready):
                logger.info(
                    "Resource has reached desired replicas %d (%s)", min_target, self._describe()
                )
                return True
            return False

        description = f"wait for resource to reach minimum required target replicas {min_target}"
        if not retry_until_predicate(
            ctx,
            description,
            reached,
            self.options.resource_check_timeout,
            self.options.resource_check_interval,
        ):
            raise TimeoutError(
                f"timed out waiting for {{namespace: {self.namespace}, resource: {info.ref.name}}} "
                f"to reach minTargetReplicas {min_target}"
            )

    def _update_resource_and_scale(
        self, ctx: Context, current: Scale, annotations: Mapping[str, str] | None
    ) -> None:
        info = self.resource_info
        with ctx.with_timeout(info.timeout) as child:
            if info.operation is Operation.SCALE_DOWN:
                try:
                    self.client.patch_annotations(
                        ctx,
                        self.namespace,
                        info.ref,
                        {REPLICAS_ANNOTATION_KEY: str(current.replicas)},
                    )
                except Exception as exc:
                    logger.error(
                        "Failed to record current replicas before scaling down (%s): %s",
                        self._describe(),
                        exc,
                    )
                    raise
            target = self.determine_target_replicas(annotations)
            latest = self.client.get_scale(ctx, self.namespace, info.ref, info.timeout)
            latest.replicas = target
            logger.info(
                "Scaling %s kubernetes resource to %d replicas (%s)",
                "up" if info.operation is Operation.SCALE_UP else "down",
                target,
                self._describe(),
            )
            self.client.update_scale(child, self.namespace, info.ref, latest)
        logger.info("Waiting for resource readiness (%s)", self._describe())

    def determine_target_replicas(self, annotations: Mapping[str, str] | None) -> int:
        """Return the replicas to scale to; scale-up restores the recorded count if any."""
        if self.resource_info.operation is Operation.SCALE_DOWN:
            return DEFAULT_SCALE_DOWN_REPLICAS
        value = (annotations or {}).get(REPLICAS_ANNOTATION_KEY)
        if value is not None:
            if not _INTEGER.fullmatch(value):
                raise ValueError(
                    f"unexpected and invalid replicasStr set as value for annotation: "
                    f"{REPLICAS_ANNOTATION_KEY} for resource, Err: invalid syntax {value!r}"
                )
            return int(value)
        logger.info(
            "Replicas annotation not found, falling back to default scale-up replicas %d (%s)",
            DEFAULT_SCALE_UP_REPLICAS,
            self._describe(),
        )
        return DEFAULT_SCALE_UP_REPLICAS