import threading

import pytest

from depwatch.scaler.flow import FlowCreator, FlowError, Graph, ScaleStepInfo
from depwatch.scaler.options import ScalerOptions
from depwatch.scaler.resources import Operation
from depwatch.types import CrossVersionObjectReference, DependentResourceInfo, ScaleInfo
from depwatch.util import Context, ContextCancelledError

MCM = "machine-controller-manager"
KCM = "kube-controller-manager"
CA = "cluster-autoscaler"


def make_info(name, up_level, down_level, timeout=10.0, initial_delay=0.01, optional=False):
    return DependentResourceInfo(
        ref=CrossVersionObjectReference(kind="Deployment", name=name, api_version="apps/v1"),
        optional=optional,
        scale_up_info=ScaleInfo(level=up_level, initial_delay=initial_delay, timeout=timeout),
        scale_down_info=ScaleInfo(level=down_level, initial_delay=initial_delay, timeout=timeout),
    )


def parse_task_id(task_id):
    parts = task_id.split(":")
    if len(parts) < 3 or "-" not in parts[1]:
        raise ValueError(task_id)
    level = int(parts[1][parts[1].index("-") + 1 :])
    return level, parts[2].split("#")


def test_create_scale_up_sequential_flow():
    infos = [make_info(KCM, 0, 2), make_info(MCM, 1, 1), make_info(CA, 2, 0)]
    expected_names = [KCM, MCM, CA]
    creator = FlowCreator(object(), ScalerOptions(), infos)
    flow = creator.create_flow("testCreateSequentialFlow", "test-sequential", Operation.SCALE_UP)
    assert len(flow.flow_step_infos) == 3
    previous = []
    for i, step in enumerate(flow.flow_step_infos):
        level, names = parse_task_id(step.task_id)
        assert level == i
        assert names == [expected_names[i]]
        assert len(step.dependent_task_ids) == i
        assert set(step.dependent_task_ids) == set(previous)
        previous.append(step.task_id)


def test_create_scale_down_sequential_and_concurrent_flow():
    infos = [make_info(KCM, 0, 1), make_info(MCM, 1, 0), make_info(CA, 2, 0)]
    expected = {0: [MCM, CA], 1: [KCM]}
    creator = FlowCreator(object(), ScalerOptions(), infos)
    flow = creator.create_flow("testCreateSequentialAndConcurrentFlow", "ns", Operation.SCALE_DOWN)
    assert len(flow.flow_step_infos) == 2
    previous = []
    for i, step in enumerate(flow.flow_step_infos):
        level, names = parse_task_id(step.task_id)
        assert level == i
        assert names == expected[i]
        assert set(step.dependent_task_ids) == set(previous)
        previous.append(step.task_id)


def test_step_wait_on_resources_are_previous_levels():
    infos = [make_info(KCM, 0, 1), make_info(MCM, 1, 0), make_info(CA, 2, 0)]
    flow = FlowCreator(object(), None, infos).create_flow("f", "ns", Operation.SCALE_UP)
    waits = [[ref.name for ref in step.wait_on_resources] for step in flow.flow_step_infos]
    assert waits == [[], [KCM], [KCM, MCM]]
    assert flow.flow.task_ids == [step.task_id for step in flow.flow_step_infos]


def test_scale_step_info_str():
    info = ScaleStepInfo("a", frozenset({"y", "x"}), [CrossVersionObjectReference(name=MCM)])
    assert str(info) == f"{{taskID: a, dependentTaskIDs: [x, y], waitOnResources: [{MCM}]}}"


def test_graph_rejects_duplicate_task():
    graph = Graph("g")
    graph.add("a", lambda ctx: None)
    with pytest.raises(ValueError):
        graph.add("a", lambda ctx: None)


def test_graph_rejects_unknown_dependency():
    graph = Graph("g")
    with pytest.raises(ValueError):
        graph.add("a", lambda ctx: None, ["missing"])


def _recorder(order, lock, name, fail=False):
    def fn(ctx):
        with lock:
            order.append(name)
        if fail:
            raise RuntimeError(f"{name} failed")

    return fn


def test_flow_runs_in_dependency_order():
    order, lock = [], threading.Lock()
    graph = Graph("g")
    graph.add("a", _recorder(order, lock, "a"))
    graph.add("b", _recorder(order, lock, "b"), ["a"])
    graph.add("c", _recorder(order, lock, "c"), ["a"])
    graph.add("d", _recorder(order, lock, "d"), ["b", "c"])
    graph.compile().run(Context())
    assert order[0] == "a"
    assert order[-1] == "d"
    assert sorted(order) == ["a", "b", "c", "d"]


def test_flow_failure_skips_dependents_but_runs_others():
    order, lock = [], threading.Lock()
    graph = Graph("g")
    graph.add("a", _recorder(order, lock, "a"))
    graph.add("b", _recorder(order, lock, "b", fail=True), ["a"])
    graph.add("c", _recorder(order, lock, "c"), ["a"])
    graph.add("d", _recorder(order, lock, "d"), ["b"])
    with pytest.raises(FlowError) as excinfo:
        graph.compile().run(Context())
    assert set(excinfo.value.task_errors) == {"b"}
    assert excinfo.value.context_error is None
    assert sorted(order) == ["a", "b", "c"]
    assert "b failed" in str(excinfo.value)


def test_flow_with_cancelled_context_runs_nothing():
    order, lock = [], threading.Lock()
    graph = Graph("g")
    graph.add("a", _recorder(order, lock, "a"))
    ctx = Context()
    ctx.cancel()
    with pytest.raises(FlowError) as excinfo:
        graph.compile().run(ctx)
    assert order == []
    assert isinstance(excinfo.value.context_error, ContextCancelledError)