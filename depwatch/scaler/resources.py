"""Scaling operations and per-resource scaling settings grouped by level."""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from depwatch.types import CrossVersionObjectReference, DependentResourceInfo


class Operation(Enum):
    """Direction of a scaling action."""

    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"

    def __str__(self) -> str:
        return self.value

    def min_target_replicas(self) -> int:
        """Return the fewest ready replicas that count as done for this operation."""
        return 1 if self is Operation.SCALE_UP else 0

    def should_scale_replicas(self, current_replicas: int) -> bool:
        """Return True if a resource with current_replicas needs scaling."""
        if self is Operation.SCALE_UP:
            return current_replicas == 0
        return current_replicas > 0

    def min_target_replicas_reached(self, current_replicas: int) -> bool:
        """Return True once current_replicas satisfies the minimum target."""
        target = self.min_target_replicas()
        if self is Operation.SCALE_UP:
            return current_replicas >= target
        return current_replicas == target


@dataclass
class ScalableResourceInfo:
    """Scaling settings of one dependent resource for one operation."""

    ref: CrossVersionObjectReference
    optional: bool = False
    level: int = 0
    initial_delay: float = 0.0
    timeout: float = 0.0
    operation: Operation = Operation.SCALE_UP


def create_scalable_resource_infos(
    op: Operation, dependent_resource_infos: Iterable[DependentResourceInfo]
) -> list[ScalableResourceInfo]:
    """Select the scale-up or scale-down settings of each dependent resource."""
    result = []
    for info in dependent_resource_infos:
        scale_info = info.scale_up_info if op is Operation.SCALE_UP else info.scale_down_info
        result.append(
            ScalableResourceInfo(
                ref=info.ref,
                optional=info.optional,
                level=scale_info.level,
                initial_delay=scale_info.initial_delay,
                timeout=scale_info.timeout,
                operation=op,
            )
        )
    return result


def sort_and_get_unique_levels(resource_infos: Iterable[ScalableResourceInfo]) -> list[int]:
    """Return the distinct levels in ascending order."""
    return sorted({info.level for info in resource_infos})


def collect_resource_infos_by_level(
    resource_infos: Iterable[ScalableResourceInfo],
) -> dict[int, list[ScalableResourceInfo]]:
    """Group resource infos by level, keeping their order within each level."""
    by_level: dict[int, list[ScalableResourceInfo]] = {}
    for info in resource_infos:
        by_level.setdefault(info.level, []).append(info)
    return by_level


def map_to_cross_version_object_refs(
    resource_infos: Iterable[ScalableResourceInfo],
) -> list[CrossVersionObjectReference]:
    """Return copies of the references of the given resource infos."""
    return [copy.copy(info.ref) for info in resource_infos]


def create_task_name(resource_infos: Iterable[ScalableResourceInfo], level: int) -> str:
    """Name a task as ``scale:level-<level>:<name>#<name>...``."""
    names = "#".join(info.ref.name for info in resource_infos)
    return f"scale:level-{level}:{names}"