"""Scaling of all dependent resources of a namespace up or down."""

from __future__ import annotations

import logging

from depwatch.scaler.flow import Flow, FlowCreator
from depwatch.scaler.options import ScalerOption, ScalerOptions, build_scaler_options
from depwatch.scaler.resources import Operation
from depwatch.scaler.scale import ResourceClient
from depwatch.types import ProberConfig
from depwatch.util import Context

logger = logging.getLogger(__name__)


class ScaleFlowRunner:
    """Runs the prepared scale-up and scale-down flows of a namespace."""

    def __init__(
        self, namespace: str, scale_up_flow: Flow, scale_down_flow: Flow, options: ScalerOptions
    ) -> None:
        self.namespace = namespace
        self.options = options
        self._scale_up_flow = scale_up_flow
        self._scale_down_flow = scale_down_flow

    def scale_up(self, ctx: Context) -> None:
        """Restore the dependent resources to their replicas before scale-down."""
        self._scale_up_flow.run(ctx)

    def scale_down(self, ctx: Context) -> None:
        """Scale the dependent resources down to zero."""
        self._scale_down_flow.run(ctx)


def new_scaler(
    namespace: str, config: ProberConfig, client: ResourceClient, *options: ScalerOption
) -> ScaleFlowRunner:
    """Create a scaler for the dependent resources named in config."""
    opts = build_scaler_options(*options)
    creator = FlowCreator(client, opts, config.dependent_resource_infos)
    up = creator.create_flow(f"scale-up-{namespace}", namespace, Operation.SCALE_UP)
    logger.debug("Created scale-up flow: %s", [str(step) for step in up.flow_step_infos])
    down = creator.create_flow(f"scale-down-{namespace}", namespace, Operation.SCALE_DOWN)
    logger.debug("Created scale-down flow: %s", [str(step) for step in down.flow_step_infos])
    return ScaleFlowRunner(namespace, up.flow, down.flow, opts)