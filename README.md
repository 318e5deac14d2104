# depwatch

`depwatch` probes the API server of a cluster. It scales dependent workloads
down when the server cannot be reached from outside and back up when it can.

A prober checks the API server in two ways. The internal probe goes through an
in-cluster endpoint. The external probe goes through the public endpoint. The
external probe only runs while the internal probe is healthy, and its result
decides what happens:

- **External probe healthy:** the configured resources are scaled back up.
- **External probe unhealthy:** the resources are scaled down to zero.

Scaling follows levels. All resources on one level are scaled at the same time.
Each level waits until every level before it has finished.

## Installation

```
pip install depwatch
```

To also install the test dependencies:

```
pip install "depwatch[test]"
```

## What the package does not do

`depwatch` has no Kubernetes client of its own, no command-line program and no
controller that discovers clusters. You supply the parts that talk to a cluster:

- a way to fetch a kubeconfig from a secret;
- a way to build a client from that kubeconfig;
- a `depwatch.scaler.scale.ResourceClient` that reads and updates resources.

You also create, run and stop the probers yourself.

## Configuration

A prober configuration is a YAML file with camelCase keys. Durations are
strings such as `10s`, `250ms` or `1m30s`. In Python they become floats that
count seconds.

```yaml
internalKubeConfigSecretName: internal-kubeconfig
externalKubeConfigSecretName: external-kubeconfig
probeInterval: 10s
initialDelay: 30s
successThreshold: 1
failureThreshold: 3
dependentResourceInfos:
  - ref:
      kind: Deployment
      name: kube-controller-manager
      apiVersion: apps/v1
    scaleUp:
      level: 0
    scaleDown:
      level: 1
  - ref:
      kind: Deployment
      name: machine-controller-manager
      apiVersion: apps/v1
    optional: true
    scaleUp:
      level: 1
      initialDelay: 5s
      timeout: 20s
    scaleDown:
      level: 0
```

`depwatch.config.load_config(file, scheme)` does three things. It reads the file
with `depwatch.util.read_and_unmarshal`, builds a `depwatch.types.ProberConfig`
with `depwatch.types.config_from_dict`, and fills in a default for every missing
setting:

| Setting                                      | Default |
|----------------------------------------------|---------|
| `probeInterval`                              | 10s     |
| `initialDelay`                               | 30s     |
| `probeTimeout`                               | 30s     |
| `internalProbeFailureBackoffDuration`        | 30s     |
| `successThreshold`                           | 1       |
| `failureThreshold`                           | 3       |
| `backoffJitterFactor`                        | 0.2     |
| `timeout` of `scaleUp` / `scaleDown`         | 30s     |
| `initialDelay` of `scaleUp` / `scaleDown`    | 0s      |

The configuration is then validated. `load_config` raises
`depwatch.validator.ValidationError` if any of these is missing or invalid:

- either secret name;
- the list of dependent resources;
- the `scaleUp` or `scaleDown` section of a resource;
- the `ref` of a resource;
- an `apiVersion` that cannot be parsed.

The error's `errors` attribute lists every problem found.

Other failures raise other errors. A file that cannot be read raises `OSError`.
A value of the wrong type raises `ValueError`.

```python
from depwatch.config import load_config
from depwatch.validator import Scheme

scheme = Scheme()
scheme.add_known_kinds("apps", "v1", "Deployment", "StatefulSet")
config = load_config("prober-config.yaml", scheme)
```

## Contexts

Functions that may block take a `depwatch.util.Context`. A context is a
cancellation signal:

- `Context()` creates a root context.
- `with_cancel()` and `with_timeout(seconds)` derive child contexts.
- `cancel()` ends a context and all of its children.

Once a context has ended, `error()` returns either `ContextCancelledError` or
`DeadlineExceededError`.

## Scaling

You implement `depwatch.scaler.scale.ResourceClient` for your cluster. It has
these methods:

- `get_annotations`
- `get_scale`, which returns a `depwatch.scaler.scale.Scale`
- `update_scale`
- `patch_annotations`
- `get_ready_replicas`

Raise the errors from `depwatch.apierrors` where they apply, such as
`NotFoundError` when a resource does not exist.

```python
from depwatch.scaler.options import with_resource_check_timeout
from depwatch.scaler.scaler import new_scaler
from depwatch.util import Context

scaler = new_scaler("my-namespace", config, resource_client,
                    with_resource_check_timeout(10.0))
scaler.scale_down(Context())
scaler.scale_up(Context())
```

Each resource is scaled by a `depwatch.scaler.scale.ResourceScaler`:

- It first waits for the resource's `initialDelay`.
- A resource marked `optional` that is not found is skipped.
- A resource whose annotation `dependency-watchdog.gardener.cloud/ignore-scaling`
  holds a true value (`true`, `1`, `t`, ...) is never scaled.
- **Scale-down** only touches resources with more than zero replicas. Before
  setting replicas to 0, it saves the current count in the annotation
  `dependency-watchdog.gardener.cloud/replicas`.
- **Scale-up** only touches resources with zero replicas. It restores the saved
  count, or sets one replica if the annotation is missing. An annotation that is
  not an integer raises `ValueError`.
- After scaling, it polls the ready replicas until the minimum target is
  reached: at least 1 for scale-up, exactly 0 for scale-down. If that does not
  happen in time, it raises `TimeoutError`.

Options in `depwatch.scaler.options` tune the waiting:

| Option                          | Default | Used for                                |
|---------------------------------|---------|-----------------------------------------|
| `with_resource_check_timeout`   | 5s      | how long to wait for the minimum target |
| `with_resource_check_interval`  | 1s      | how often to poll ready replicas        |
| `with_scale_resource_backoff`   | 0.1s    | pause between attempts                  |

A resource is tried up to three times. If any resource still fails, the flow
raises `depwatch.scaler.flow.FlowError`, and levels that depend on the failed
one are not run.

## Probing

`depwatch.prober.Prober(parent_ctx, namespace, config, scaler, shoot_client_creator)`
does the probing.

`depwatch.prober.SecretShootClientCreator(secret_getter, client_factory)` builds
a fresh client for every probe:

- `secret_getter(ctx, namespace, secret_name)` returns the kubeconfig bytes.
  Fetching is tried up to three times, 0.1s apart. It is not retried when the
  secret is not found.
- `client_factory(kubeconfig, timeout)` returns an object with a
  `server_version()` method. A probe succeeds when that call does not raise.

`Prober.run()` works like this:

1. It waits for the initial delay.
2. It calls `Prober.probe()`.
3. It waits for the probe interval, plus up to `backoffJitterFactor` times the
   interval as random jitter, then probes again.

This repeats until `Prober.close()` is called. `Prober.is_closed()` reports
whether the prober has stopped.

Not every failed probe counts as a failure:

- **Forbidden and unauthorized responses** do not count. The secret may have
  been rotated.
- **Throttled responses** do not count either. They add a 10s back-off before
  the next probe.
- **Other errors** do count. Once an internal probe reaches the failure
  threshold, the internal probe backs off for
  `internalProbeFailureBackoffDuration`.

`depwatch.probermgr.ProberManager` keeps one prober per namespace:

- `register(prober)` returns `False` if a prober is already registered for that
  namespace.
- `unregister(namespace)` closes the prober, removes it and returns `True`.
  It returns `False` if there is no such prober.
- `get_prober(namespace)` returns the prober for that namespace, or `None`.
- `get_all_probers()` returns every registered prober.

## Running the tests

```
pytest
```