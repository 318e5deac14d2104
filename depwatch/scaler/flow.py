"""Level-ordered flows that scale dependent resources."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from depwatch.retry import always_retry, retry
from depwatch.scaler.options import ScalerOptions, build_scaler_options
from depwatch.scaler.resources import (
    Operation,
    ScalableResourceInfo,
    collect_resource_infos_by_level,
    create_scalable_resource_infos,
    create_task_name,
    map_to_cross_version_object_refs,
    sort_and_get_unique_levels,
)
from depwatch.scaler.scale import ResourceClient, ResourceScaler
from depwatch.types import CrossVersionObjectReference, DependentResourceInfo
from depwatch.util import Context

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESOURCE_SCALING_ATTEMPTS = 3

TaskFn = Callable[[Context], None]


class FlowError(Exception):
    """Raised when tasks of a flow fail or the flow is stopped by its context."""

    def __init__(
        self,
        flow_name: str,
        task_errors: dict[str, BaseException],
        context_error: Exception | None = None,
    ) -> None:
        self.flow_name = flow_name
        self.task_errors = dict(task_errors)
        self.context_error = context_error
        parts = [f"{task_id}: {error}" for task_id, error in self.task_errors.items()]
        if context_error is not None:
            parts.append(f"flow stopped: {context_error}")
        super().__init__(f'flow "{flow_name}" encountered errors: ' + "; ".join(parts))


@dataclass(frozen=True)
class _Task:
    task_id: str
    fn: TaskFn
    dependencies: frozenset[str]


class Graph:
    """A set of named tasks and the tasks each of them depends on."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._tasks: dict[str, _Task] = {}

    def add(self, name: str, fn: TaskFn, dependencies: Iterable[str] | None = None) -> str:
        """Add a task and return its id, which is its name."""
        if name in self._tasks:
            raise ValueError(f"task {name!r} already exists in graph {self.name!r}")
        deps = frozenset(dependencies or ())
        unknown = deps - self._tasks.keys()
        if unknown:
            raise ValueError(f"task {name!r} depends on unknown tasks {sorted(unknown)}")
        self._tasks[name] = _Task(name, fn, deps)
        return name

    def compile(self) -> Flow:
        """Freeze the graph into a runnable flow."""
        return Flow(self.name, dict(self._tasks))


class Flow:
    """Runs tasks concurrently as soon as all their dependencies have succeeded."""

    def __init__(self, name: str, tasks: dict[str, _Task]) -> None:
        self.name = name
        self._tasks = tasks

    @property
    def task_ids(self) -> list[str]:
        return list(self._tasks)

    def run(self, ctx: Context) -> None:
        """Run every task; raise FlowError if any fails or ctx ends before all have run.

        Tasks whose dependencies failed are skipped; independent tasks still run.
        """
        remaining = dict(self._tasks)
        succeeded: set[str] = set()
        failed: dict[str, BaseException] = {}
        skipped: set[str] = set()
        with ThreadPoolExecutor(max_workers=max(1, len(remaining))) as pool:
            running = {}
            while True:
                progressed = True
                while progressed:
                    progressed = False
                    for task_id, task in list(remaining.items()):
                        if task.dependencies & (failed.keys() | skipped):
                            skipped.add(task_id)
                            del remaining[task_id]
                            progressed = True
                if not ctx.done():
                    for task_id, task in list(remaining.items()):
                        if task.dependencies <= succeeded:
                            running[pool.submit(task.fn, ctx)] = task_id
                            del remaining[task_id]
                if not running:
                    break
                finished, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in finished:
                    task_id = running.pop(future)
                    error = future.exception()
                    if error is None:
                        succeeded.add(task_id)
                    else:
                        logger.error("Task %s of flow %s failed: %s", task_id, self.name, error)
                        failed[task_id] = error
        context_error = ctx.error() if remaining else None
        if failed or context_error is not None:
            raise FlowError(self.name, failed, context_error)


@dataclass
class ScaleStepInfo:
    """One step of a scale flow: its task, what it waits on and which resources."""

    task_id: str
    dependent_task_ids: frozenset[str] = frozenset()
    wait_on_resources: list[CrossVersionObjectReference] = field(default_factory=list)

    def __str__(self) -> str:
        deps = ", ".join(sorted(self.dependent_task_ids))
        refs = ", ".join(ref.name for ref in self.wait_on_resources)
        return f"{{taskID: {self.task_id}, dependentTaskIDs: [{deps}], waitOnResources: [{refs}]}}"


@dataclass
class ScaleFlow:
    """A compiled flow together with a description of its steps."""

    flow: Flow | None = None
    flow_step_infos: list[ScaleStepInfo] = field(default_factory=list)


def _run_parallel(ctx: Context, fns: list[TaskFn]) -> None:
    errors: list[Exception] = []
    with ThreadPoolExecutor(max_workers=len(fns)) as pool:
        for future in [pool.submit(fn, ctx) for fn in fns]:
            error = future.exception()
            if error is not None:
                errors.append(error)
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup("scaling of resources failed", errors)


class FlowCreator:
    """Builds scale flows in which each level waits for all lower levels."""

    def __init__(
        self,
        client: ResourceClient,
        options: ScalerOptions | None,
        dependent_resource_infos: Iterable[DependentResourceInfo],
    ) -> None:
        self._client = client
        self._options = options if options is not None else build_scaler_options()
        self._dependent_resource_infos = list(dependent_resource_infos)

    def create_flow(self, name: str, namespace: str, op: Operation) -> ScaleFlow:
        """Create the flow that scales every dependent resource for op, level by level."""
        infos = create_scalable_resource_infos(op, self._dependent_resource_infos)
        by_level = collect_resource_infos_by_level(infos)
        graph = Graph(name)
        scale_flow = ScaleFlow()
        previous_infos: list[ScalableResourceInfo] = []
        previous_ids: frozenset[str] = frozenset()
        for level in sort_and_get_unique_levels(infos):
            level_infos = by_level[level]
            task_id = graph.add(
                create_task_name(level_infos, level),
                self._create_scale_task_fn(namespace, level_infos),
                previous_ids,
            )
            scale_flow.flow_step_infos.append(
                ScaleStepInfo(
                    task_id=task_id,
                    dependent_task_ids=previous_ids,
                    wait_on_resources=map_to_cross_version_object_refs(previous_infos),
                )
            )
            previous_infos = previous_infos + level_infos
            previous_ids = previous_ids | {task_id}
        scale_flow.flow = graph.compile()
        return scale_flow

    def _create_scale_task_fn(
        self, namespace: str, resource_infos: list[ScalableResourceInfo]
    ) -> TaskFn:
        fns = [self._create_task_fn(namespace, info) for info in resource_infos]
        if len(fns) == 1:
            return fns[0]
        return lambda ctx: _run_parallel(ctx, fns)

    def _create_task_fn(self, namespace: str, info: ScalableResourceInfo) -> TaskFn:
        prefix = "scaleUp" if info.operation is Operation.SCALE_UP else "scaleDown"
        operation = f"{prefix}-resource-{namespace}.{info.ref.name}"

        def task(ctx: Context) -> None:
            scaler = ResourceScaler(self._client, namespace, info, self._options)
            result = retry(
                ctx,
                operation,
                lambda: scaler.scale(ctx),
                DEFAULT_MAX_RESOURCE_SCALING_ATTEMPTS,
                self._options.scale_resource_backoff,
                always_retry,
            )
            if result.error is not None:
                raise result.error

        return task