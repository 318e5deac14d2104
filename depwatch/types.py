"""Configuration types for the prober and helpers to build them from raw data."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any

_UNIT_SECONDS = {
    "ns": Fraction(1, 1_000_000_000),
    "us": Fraction(1, 1_000_000),
    "µs": Fraction(1, 1_000_000),
    "μs": Fraction(1, 1_000_000),
    "ms": Fraction(1, 1_000),
    "s": Fraction(1),
    "m": Fraction(60),
    "h": Fraction(3600),
}

_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a duration string such as ``"1m30s"`` or ``"250ms"`` into seconds."""
    if not isinstance(value, str):
        raise TypeError(f"duration must be a string, got {type(value).__name__}")
    text = value
    sign = 1
    if text[:1] in ("-", "+"):
        if text[0] == "-":
            sign = -1
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += Fraction(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return float(sign * total)


@dataclass
class CrossVersionObjectReference:
    """Reference to a resource by kind, name and API version."""

    kind: str = ""
    name: str = ""
    api_version: str = ""


@dataclass
class ScaleInfo:
    """Scaling settings for one direction (up or down) of a dependent resource."""

    level: int = 0
    initial_delay: float | None = None
    timeout: float | None = None


@dataclass
class DependentResourceInfo:
    """A resource that is scaled depending on the probe outcome."""

    ref: CrossVersionObjectReference | None = None
    optional: bool = False
    scale_up_info: ScaleInfo | None = None
    scale_down_info: ScaleInfo | None = None


@dataclass
class ProberConfig:
    """Prober configuration; all durations are in seconds."""

    internal_kube_config_secret_name: str = ""
    external_kube_config_secret_name: str = ""
    probe_interval: float | None = None
    initial_delay: float | None = None
    probe_timeout: float | None = None
    internal_probe_failure_backoff_duration: float | None = None
    success_threshold: int | None = None
    failure_threshold: int | None = None
    backoff_jitter_factor: float | None = None
    dependent_resource_infos: list[DependentResourceInfo] = field(default_factory=list)


def _type_error(value: Any, path: str, owner: str, expected: str) -> ValueError:
    return ValueError(
        f"cannot unmarshal {type(value).__name__} into field {owner}.{path} of type {expected}"
    )


def _get_str(data: Mapping, key: str, path: str, owner: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _type_error(value, path, owner, "string")
    return value


def _get_int(data: Mapping, key: str, path: str, owner: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise _type_error(value, path, owner, "int")
    return value


def _get_float(data: Mapping, key: str, path: str, owner: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _type_error(value, path, owner, "float64")
    return float(value)


def _get_bool(data: Mapping, key: str, path: str, owner: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _type_error(value, path, owner, "bool")
    return value


def _get_duration(data: Mapping, key: str, path: str, owner: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _type_error(value, path, owner, "Duration")
    return parse_duration(value)


def _get_mapping(data: Mapping, key: str, path: str, owner: str, expected: str) -> Mapping | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise _type_error(value, path, owner, expected)
    return value


def _scale_info(data: Mapping, key: str, path: str) -> ScaleInfo | None:
    owner = "DependentResourceInfo"
    raw = _get_mapping(data, key, path, owner, "ScaleInfo")
    if raw is None:
        return None
    level = _get_int(raw, "level", f"{path}.level", owner)
    return ScaleInfo(
        level=0 if level is None else level,
        initial_delay=_get_duration(raw, "initialDelay", f"{path}.initialDelay", owner),
        timeout=_get_duration(raw, "timeout", f"{path}.timeout", owner),
    )


def _resource_ref(data: Mapping, path: str) -> CrossVersionObjectReference | None:
    owner = "DependentResourceInfo"
    raw = _get_mapping(data, "ref", path, owner, "CrossVersionObjectReference")
    if raw is None:
        return None
    return CrossVersionObjectReference(
        kind=_get_str(raw, "kind", f"{path}.kind", owner),
        name=_get_str(raw, "name", f"{path}.name", owner),
        api_version=_get_str(raw, "apiVersion", f"{path}.apiVersion", owner),
    )


def _dependent_resource_info(data: Any) -> DependentResourceInfo:
    base = "dependentResourceInfos"
    if not isinstance(data, Mapping):
        raise _type_error(data, base, "Config", "DependentResourceInfo")
    return DependentResourceInfo(
        ref=_resource_ref(data, f"{base}.ref"),
        optional=_get_bool(data, "optional", f"{base}.optional", "DependentResourceInfo"),
        scale_up_info=_scale_info(data, "scaleUp", f"{base}.scaleUp"),
        scale_down_info=_scale_info(data, "scaleDown", f"{base}.scaleDown"),
    )


def config_from_dict(data: Mapping | None) -> ProberConfig:
    """Build a ProberConfig from a mapping with the camelCase keys of the config file."""
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"cannot unmarshal {type(data).__name__} into Config")
    owner = "Config"
    raw_infos = data.get("dependentResourceInfos")
    if raw_infos is None:
        raw_infos = []
    if isinstance(raw_infos, (str, bytes, Mapping)) or not isinstance(raw_infos, list):
        raise _type_error(raw_infos, "dependentResourceInfos", owner, "[]DependentResourceInfo")
    return ProberConfig(
        internal_kube_config_secret_name=_get_str(
            data, "internalKubeConfigSecretName", "internalKubeConfigSecretName", owner
        ),
        external_kube_config_secret_name=_get_str(
            data, "externalKubeConfigSecretName", "externalKubeConfigSecretName", owner
        ),
        probe_interval=_get_duration(data, "probeInterval", "probeInterval", owner),
        initial_delay=_get_duration(data, "initialDelay", "initialDelay", owner),
        probe_timeout=_get_duration(data, "probeTimeout", "probeTimeout", owner),
        internal_probe_failure_backoff_duration=_get_duration(
            data,
            "internalProbeFailureBackoffDuration",
            "internalProbeFailureBackoffDuration",
            owner,
        ),
        success_threshold=_get_int(data, "successThreshold", "successThreshold", owner),
        failure_threshold=_get_int(data, "failureThreshold", "failureThreshold", owner),
        backoff_jitter_factor=_get_float(
            data, "backoffJitterFactor", "backoffJitterFactor", owner
        ),
        dependent_resource_infos=[_dependent_resource_info(item) for item in raw_infos],
    )