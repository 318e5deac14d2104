import pytest

from depwatch.config import (
    DEFAULT_BACKOFF_JITTER_FACTOR,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_INTERNAL_PROBE_FAILURE_BACKOFF_DURATION,
    DEFAULT_PROBE_INITIAL_DELAY,
    DEFAULT_PROBE_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_SCALE_INITIAL_DELAY,
    DEFAULT_SCALE_UPDATE_TIMEOUT,
    DEFAULT_SUCCESS_THRESHOLD,
    fill_default_values,
    load_config,
    validate,
)
from depwatch.types import config_from_dict
from depwatch.validator import Scheme, ValidationError

MISSING_VOLUNTARY_VALUES = """\
internalKubeConfigSecretName: dwd-internal-probe-kubeconfig
externalKubeConfigSecretName: dwd-external-probe-kubeconfig
dependentResourceInfos:
  - ref:
      kind: Deployment
      name: kube-controller-manager
      apiVersion: apps/v1
    scaleUp:
      level: 1
    scaleDown:
      level: 0
  - ref:
      kind: Deployment
      name: machine-controller-manager
      apiVersion: apps/v1
    scaleUp:
      level: 0
    scaleDown:
      level: 1
"""

MISSING_MANDATORY_VALUES = """\
probeInterval: 20s
dependentResourceInfos:
  - ref:
      kind: Deployment
      name: kube-controller-manager
      apiVersion: apps/v1
  - ref:
      kind: Deployment
      name: machine-controller-manager
      apiVersion: apps/v1
"""

MISSING_DEPENDENT_RESOURCE_INFOS = """\
probeInterval: 20s
successThreshold: 2
"""

INVALID_SYNTAX = """\
internalKubeConfigSecretName: dwd-internal-probe-kubeconfig
externalKubeConfigSecretName: dwd-external-probe-kubeconfig
dependentResourceInfos:
  - ref:
      kind: Deployment
      name: kube-controller-manager
      apiVersion: apps/v1
    scaleUp: "level 1"
"""

VALID_CONFIG = """\
internalKubeConfigSecretName: dwd-internal-probe-kubeconfig
externalKubeConfigSecretName: dwd-external-probe-kubeconfig
probeInterval: 20s
initialDelay: 5s
probeTimeout: 40s
successThreshold: 2
failureThreshold: 4
backoffJitterFactor: 0.5
internalProbeFailureBackoffDuration: 1m
dependentResourceInfos:
  - ref:
      kind: Deployment
      name: kube-controller-manager
      apiVersion: apps/v1
    scaleUp:
      level: 1
      initialDelay: 30s
      timeout: 30s
    scaleDown:
      level: 0
      initialDelay: 15s
      timeout: 30s
  - ref:
      kind: Deployment
      name: machine-controller-manager
      apiVersion: apps/v1
    scaleUp:
      level: 1
      timeout: 30s
    scaleDown:
      level: 1
  - ref:
      kind: Deployment
      name: cluster-autoscaler
      apiVersion: apps/v1
    optional: true
    scaleUp:
      level: 2
    scaleDown:
      level: 0
"""


@pytest.fixture
def scheme():
    s = Scheme()
    s.add_known_kinds("apps", "v1", "Deployment", "StatefulSet")
    s.add_known_kinds("", "v1", "ConfigMap", "Secret")
    return s


def write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return str(path)


def test_default_values_are_set_for_missing_optional_fields(tmp_path, scheme):
    config = load_config(write(tmp_path, "c.yaml", MISSING_VOLUNTARY_VALUES), scheme)
    assert config.initial_delay == DEFAULT_PROBE_INITIAL_DELAY
    assert config.probe_interval == DEFAULT_PROBE_INTERVAL
    assert config.probe_timeout == DEFAULT_PROBE_TIMEOUT
    assert config.success_threshold == DEFAULT_SUCCESS_THRESHOLD
    assert config.failure_threshold == DEFAULT_FAILURE_THRESHOLD
    assert (
        config.internal_probe_failure_backoff_duration
        == DEFAULT_INTERNAL_PROBE_FAILURE_BACKOFF_DURATION
    )
    assert config.backoff_jitter_factor == DEFAULT_BACKOFF_JITTER_FACTOR
    assert len(config.dependent_resource_infos) == 2
    for info in config.dependent_resource_infos:
        assert info.scale_up_info.initial_delay == DEFAULT_SCALE_INITIAL_DELAY
        assert info.scale_up_info.timeout == DEFAULT_SCALE_UPDATE_TIMEOUT
        assert info.scale_down_info.initial_delay == DEFAULT_SCALE_INITIAL_DELAY
        assert info.scale_down_info.timeout == DEFAULT_SCALE_UPDATE_TIMEOUT


@pytest.mark.parametrize(
    "content, expected_err_count",
    [
        (MISSING_MANDATORY_VALUES, 6),
        (MISSING_DEPENDENT_RESOURCE_INFOS, 3),
    ],
)
def test_missing_mandatory_values_raise_all_errors(tmp_path, scheme, content, expected_err_count):
    with pytest.raises(ValidationError) as info:
        load_config(write(tmp_path, "c.yaml", content), scheme)
    assert len(info.value.errors) == expected_err_count


def test_config_file_not_found(tmp_path, scheme):
    with pytest.raises(FileNotFoundError) as info:
        load_config(str(tmp_path / "notfound.yaml"), scheme)
    assert "no such file or directory" in str(info.value).lower()


def test_invalid_configuration_yaml(tmp_path, scheme):
    with pytest.raises(ValueError) as info:
        load_config(write(tmp_path, "invalidsyntax.yaml", INVALID_SYNTAX), scheme)
    assert "cannot unmarshal" in str(info.value)
    assert "DependentResourceInfo.dependentResourceInfos.scaleUp" in str(info.value)


def test_valid_configuration_yaml(tmp_path, scheme):
    config = load_config(write(tmp_path, "valid_config.yaml", VALID_CONFIG), scheme)
    assert len(config.dependent_resource_infos) == 3
    assert config.probe_interval == 20.0
    assert config.success_threshold == 2
    assert config.backoff_jitter_factor == 0.5
    assert config.dependent_resource_infos[0].scale_down_info.initial_delay == 15.0
    assert config.dependent_resource_infos[1].scale_down_info.timeout == DEFAULT_SCALE_UPDATE_TIMEOUT


def test_fill_default_values_keeps_set_values():
    config = config_from_dict({"probeInterval": "20s", "failureThreshold": 5})
    fill_default_values(config)
    assert config.probe_interval == 20.0
    assert config.failure_threshold == 5
    assert config.success_threshold == DEFAULT_SUCCESS_THRESHOLD


def test_validate_reports_unparsable_api_version(scheme):
    config = config_from_dict(
        {
            "internalKubeConfigSecretName": "internal",
            "externalKubeConfigSecretName": "external",
            "dependentResourceInfos": [
                {
                    "ref": {"kind": "Deployment", "name": "d2", "apiVersion": "core/apps/v1"},
                    "scaleUp": {"level": 0},
                    "scaleDown": {"level": 0},
                }
            ],
        }
    )
    with pytest.raises(ValidationError) as info:
        validate(config, scheme)
    assert len(info.value.errors) == 1
    assert "core/apps/v1" in info.value.errors[0]