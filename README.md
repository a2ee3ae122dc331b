# release_service

Building blocks for a service that releases application snapshots through pipelines.

## Modules

- `release_service.metadata`: label names used on release objects and pipeline runs
  (`AUTO_RELEASE_LABEL`, `PIPELINES_TYPE_LABEL`, `RELEASE_NAME_LABEL`,
  `RELEASE_NAMESPACE_LABEL`, `APPLICATION_NAME_LABEL` and others), the `KubeObject`
  dataclass that holds an object's name, namespace, kind, labels, annotations, spec and
  status, and helpers (`add_labels`, `add_annotations`, `get_labels_with_prefix`,
  `get_annotations_with_prefix`, `add_entries`, `filter_by_prefix`, `safe_copy`) that add
  or filter labels and annotations without overwriting keys that are already present.
- `release_service.metrics`: in-process `Gauge`, `Counter` and `Histogram` classes and the
  module-level metrics that count concurrent releases, deployments, processings and
  post-actions and record how long completed ones took. The `register_new_*` functions
  raise a concurrency gauge; the `register_completed_*` functions lower it and record the
  duration, and do nothing when either time is `None`. `reset_metrics()` clears them all.
- `release_service.pipeline_run`: `new_release_pipeline_run(prefix, namespace)` returns a
  `ReleasePipelineRun` with chainable builders: `with_release_strategy`, `with_workspace`,
  `with_service_account`, `with_extra_param`, `with_object_references`, `with_owner`,
  `with_release_and_application_metadata`, `with_enterprise_contract_config_map` and
  `with_enterprise_contract_policy`. `get_pipeline_ref` references a strategy's pipeline by
  name, or through a bundle resolver (`get_bundle_resolver`) when the strategy names a bundle.
  `PipelineRunStatus` keeps the run's `Succeeded` condition.
- `release_service.predicates`: `ReleasePipelineRunSucceededPredicate` rejects create,
  delete and generic events and accepts an update only when the new object is a release
  pipeline run whose `Succeeded` condition is no longer unknown. `is_release_pipeline_run`
  and `has_pipeline_succeeded` are the two checks it uses.
- `release_service.loader`: `Loader` looks up the objects a release depends on (release
  plan, active release plan admission, strategy, policy, snapshot, environment, components,
  bindings and pipeline run) through a client, and gathers them in `DeploymentResources` or
  `ProcessingResources`. `InMemoryClient` is a dictionary-backed store with `create`, `get`,
  `list` and `delete`. Failures raise `LoaderError`; `NotFoundError` and
  `AlreadyExistsError` are its subclasses.
- `release_service.syncer`: `Syncer(client, logger=None).sync_snapshot(snapshot, namespace)`
  copies a snapshot into another namespace; an existing copy is left as it is.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from release_service.pipeline_run import new_release_pipeline_run

run = (
    new_release_pipeline_run("release", "managed")
    .with_service_account("release-bot")
    .with_workspace("release-workspace", "release-pvc")
)
pipeline_run = run.as_pipeline_run()
```

Recording metrics:

```python
from release_service import metrics

metrics.register_new_release()
print(metrics.RELEASE_CONCURRENT_TOTAL.value())  # 1.0
```

## Environment

`with_release_strategy` reads the workspace name from the `DEFAULT_RELEASE_WORKSPACE_NAME`
environment variable and takes the claim from `DEFAULT_RELEASE_PVC` when the strategy names
no claim of its own; no workspace is added if either is empty.
`Loader.get_enterprise_contract_config_map` reads `ENTERPRISE_CONTRACT_CONFIG_MAP`, given in
the form `namespace/name`, and returns `None` when it holds no `/`.

## What this package does not do

It has no command to run and no long-running service that watches objects and acts on
them. It does not talk to a cluster: the only client it provides is `InMemoryClient`,
which keeps objects in memory for the life of the process. Metrics are kept in memory and
are not served over HTTP.