"""Loading, defaulting and validation of the prober configuration."""

from __future__ import annotations

from depwatch.types import ProberConfig, ScaleInfo, config_from_dict
from depwatch.util import read_and_unmarshal
from depwatch.validator import Scheme, Validator

# All durations are in seconds.
DEFAULT_PROBE_INTERVAL = 10.0
DEFAULT_PROBE_INITIAL_DELAY = 30.0
DEFAULT_SCALE_INITIAL_DELAY = 0.0
DEFAULT_PROBE_TIMEOUT = 30.0
DEFAULT_INTERNAL_PROBE_FAILURE_BACKOFF_DURATION = 30.0
DEFAULT_SUCCESS_THRESHOLD = 1
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_BACKOFF_JITTER_FACTOR = 0.2
DEFAULT_SCALE_UPDATE_TIMEOUT = 30.0


def load_config(file: str, scheme: Scheme) -> ProberConfig:
    """Read a prober config file, fill in defaults and validate it.

    Raises OSError if the file cannot be read, ValueError (or a YAML error) if it
    cannot be parsed, and ValidationError if mandatory values are missing.
    """
    config = config_from_dict(read_and_unmarshal(file))
    fill_default_values(config)
    validate(config, scheme)
    return config


def validate(config: ProberConfig, scheme: Scheme) -> None:
    """Check mandatory values, raising ValidationError with every failure found."""
    v = Validator()
    v.must_not_be_empty("InternalKubeConfigSecretName", config.internal_kube_config_secret_name)
    v.must_not_be_empty("ExternalKubeConfigSecretName", config.external_kube_config_secret_name)
    v.must_not_be_empty("ScaleResourceInfos", config.dependent_resource_infos)
    for info in config.dependent_resource_infos:
        v.resource_ref_must_be_valid(info.ref, scheme)
        v.must_not_be_nil("scaleUp", info.scale_up_info)
        v.must_not_be_nil("scaleDown", info.scale_down_info)
    v.raise_if_errors()


def fill_default_values(config: ProberConfig) -> None:
    """Set every unset optional value of the config to its default, in place."""
    if config.probe_interval is None:
        config.probe_interval = DEFAULT_PROBE_INTERVAL
    if config.initial_delay is None:
        config.initial_delay = DEFAULT_PROBE_INITIAL_DELAY
    if config.probe_timeout is None:
        config.probe_timeout = DEFAULT_PROBE_TIMEOUT
    if config.internal_probe_failure_backoff_duration is None:
        config.internal_probe_failure_backoff_duration = (
            DEFAULT_INTERNAL_PROBE_FAILURE_BACKOFF_DURATION
        )
    if config.success_threshold is None:
        config.success_threshold = DEFAULT_SUCCESS_THRESHOLD
    if config.failure_threshold is None:
        config.failure_threshold = DEFAULT_FAILURE_THRESHOLD
    if config.backoff_jitter_factor is None:
        config.backoff_jitter_factor = DEFAULT_BACKOFF_JITTER_FACTOR
    for info in config.dependent_resource_infos:
        _fill_scale_info_defaults(info.scale_up_info)
        _fill_scale_info_defaults(info.scale_down_info)


def _fill_scale_info_defaults(scale_info: ScaleInfo | None) -> None:
    if scale_info is None:
        return
    if scale_info.timeout is None:
        scale_info.timeout = DEFAULT_SCALE_UPDATE_TIMEOUT
    if scale_info.initial_delay is None:
        scale_info.initial_delay = DEFAULT_SCALE_INITIAL_DELAY