import copy
from types import SimpleNamespace

import pytest

from release_service.loader import (
    AlreadyExistsError,
    InMemoryClient,
    Loader,
    LoaderError,
    NotFoundError,
)
from release_service.metadata import (
    AUTO_RELEASE_LABEL,
    RELEASE_NAME_LABEL,
    RELEASE_NAMESPACE_LABEL,
    KubeObject,
)


@pytest.fixture
def env():
    client = InMemoryClient()
    ns = "default"

    application = KubeObject(
        kind="Application", name="application", namespace=ns,
        spec=SimpleNamespace(display_name="application"),
    )
    component = KubeObject(
        kind="Component", name="component", namespace=ns,
        spec=SimpleNamespace(application="application", component_name="component"),
    )
    config_map = KubeObject(kind="ConfigMap", name="ec-defaults", namespace=ns)
    policy = KubeObject(
        kind="EnterpriseContractPolicy", name="enterprise-contract-policy", namespace=ns,
        spec=SimpleNamespace(sources=[{"name": "foo"}]),
    )
    environment = KubeObject(
        kind="Environment", name="environment", namespace=ns,
        spec=SimpleNamespace(display_name="production"),
    )
    release_plan = KubeObject(
        kind="ReleasePlan", name="release-plan", namespace=ns,
        spec=SimpleNamespace(application="application", target="default"),
    )
    strategy = KubeObject(
        kind="ReleaseStrategy", name="release-strategy", namespace=ns,
        spec=SimpleNamespace(pipeline="release-pipeline", policy="enterprise-contract-policy"),
    )
    admission = KubeObject(
        kind="ReleasePlanAdmission", name="release-plan-admission", namespace=ns,
        labels={AUTO_RELEASE_LABEL: "true"},
        spec=SimpleNamespace(
            application="application", origin="default",
            environment="environment", release_strategy="release-strategy",
        ),
    )
    snapshot = KubeObject(
        kind="Snapshot", name="snapshot", namespace=ns,
        spec=SimpleNamespace(application="application"),
    )
    binding = KubeObject(
        kind="SnapshotEnvironmentBinding", name="snapshot-environment-binding", namespace=ns,
        spec=SimpleNamespace(
            application="application", environment="environment",
            snapshot="snapshot", components=[],
        ),
    )
    release = KubeObject(
        kind="Release", name="release", namespace=ns,
        spec=SimpleNamespace(snapshot="snapshot", release_plan="release-plan"),
        status=SimpleNamespace(deployment=SimpleNamespace(snapshot_environment_binding="")),
    )
    pipeline_run = KubeObject(
        kind="PipelineRun", name="pipeline-run", namespace=ns,
        labels={RELEASE_NAME_LABEL: "release", RELEASE_NAMESPACE_LABEL: ns},
    )
    for obj in (application, component, config_map, policy, environment, release_plan,
                strategy, admission, snapshot, binding, release, pipeline_run):
        client.create(obj)

    return SimpleNamespace(
        client=client, loader=Loader(), application=application, component=component,
        config_map=config_map, policy=policy, environment=environment,
        release_plan=release_plan, strategy=strategy, admission=admission,
        snapshot=snapshot, binding=binding, release=release, pipeline_run=pipeline_run,
    )


def test_active_release_plan_admission(env):
    result = env.loader.get_active_release_plan_admission(env.client, env.release_plan)
    assert result.name == "release-plan-admission"


def test_active_release_plan_admission_target_mismatch(env):
    plan = copy.deepcopy(env.release_plan)
    plan.spec.target = "non-existent-target"
    with pytest.raises(LoaderError, match="no ReleasePlanAdmission found in the target"):
        env.loader.get_active_release_plan_admission(env.client, plan)


def test_active_release_plan_admission_multiple_matches(env):
    extra = copy.deepcopy(env.admission)
    extra.name = "new-release-plan-admission"
    env.client.create(extra)
    with pytest.raises(LoaderError, match="multiple ReleasePlanAdmissions"):
        env.loader.get_active_release_plan_admission(env.client, env.release_plan)


def test_active_release_plan_admission_auto_release_disabled(env):
    disabled = copy.deepcopy(env.admission)
    disabled.labels[AUTO_RELEASE_LABEL] = "false"
    disabled.name = "disabled-release-plan-admission"
    env.client.create(disabled)
    with pytest.raises(LoaderError, match="with auto-release label set to false"):
        env.loader.get_active_release_plan_admission(env.client, env.release_plan)


def test_active_release_plan_admission_missing_label_counts_as_enabled(env):
    env.client.delete(env.admission)
    unlabelled = copy.deepcopy(env.admission)
    unlabelled.labels = None
    env.client.create(unlabelled)
    result = env.loader.get_active_release_plan_admission(env.client, env.release_plan)
    assert result.name == "release-plan-admission"


def test_active_release_plan_admission_from_release(env):
    result = env.loader.get_active_release_plan_admission_from_release(env.client, env.release)
    assert result.name == "release-plan-admission"


def test_active_release_plan_admission_from_release_missing_plan(env):
    release = copy.deepcopy(env.release)
    release.spec.release_plan = "non-existent-release-plan"
    with pytest.raises(NotFoundError):
        env.loader.get_active_release_plan_admission_from_release(env.client, release)


def test_get_application(env):
    assert env.loader.get_application(env.client, env.release_plan).name == "application"


def test_config_map_none_when_variable_unset(env, monkeypatch):
    monkeypatch.delenv("ENTERPRISE_CONTRACT_CONFIG_MAP", raising=False)
    assert env.loader.get_enterprise_contract_config_map(env.client) is None


def test_config_map_none_when_variable_invalid(env, monkeypatch):
    monkeypatch.setenv("ENTERPRISE_CONTRACT_CONFIG_MAP", "ec-defaults")
    assert env.loader.get_enterprise_contract_config_map(env.client) is None


def test_config_map_returned(env, monkeypatch):
    monkeypatch.setenv("ENTERPRISE_CONTRACT_CONFIG_MAP", "default/ec-defaults")
    result = env.loader.get_enterprise_contract_config_map(env.client)
    assert result.name == "ec-defaults"


def test_config_map_missing_raises(env, monkeypatch):
    monkeypatch.setenv("ENTERPRISE_CONTRACT_CONFIG_MAP", "default/absent")
    with pytest.raises(NotFoundError):
        env.loader.get_enterprise_contract_config_map(env.client)


def test_get_enterprise_contract_policy(env):
    result = env.loader.get_enterprise_contract_policy(env.client, env.strategy)
    assert result.name == "enterprise-contract-policy"


def test_get_environment(env):
    assert env.loader.get_environment(env.client, env.admission).name == "environment"


def test_get_managed_application(env):
    assert env.loader.get_managed_application(env.client, env.admission).name == "application"


def test_get_managed_application_components(env):
    result = env.loader.get_managed_application_components(env.client, env.application)
    assert [c.name for c in result] == ["component"]


def test_get_release(env):
    assert env.loader.get_release(env.client, "release", "default").name == "release"


def test_get_release_pipeline_run(env):
    result = env.loader.get_release_pipeline_run(env.client, env.release)
    assert result.name == "pipeline-run"


def test_get_release_pipeline_run_no_match(env):
    release = copy.deepcopy(env.release)
    release.name = "non-existing-release"
    assert env.loader.get_release_pipeline_run(env.client, release) is None


def test_get_release_plan(env):
    assert env.loader.get_release_plan(env.client, env.release).name == "release-plan"


def test_get_release_strategy(env):
    assert env.loader.get_release_strategy(env.client, env.admission).name == "release-strategy"


def test_get_snapshot(env):
    assert env.loader.get_snapshot(env.client, env.release).name == "snapshot"


def test_get_snapshot_environment_binding(env):
    result = env.loader.get_snapshot_environment_binding(env.client, env.admission)
    assert result.name == "snapshot-environment-binding"


def test_get_snapshot_environment_binding_no_match(env):
    admission = copy.deepcopy(env.admission)
    admission.spec.environment = "non-existing-environment"
    assert env.loader.get_snapshot_environment_binding(env.client, admission) is None


def test_binding_from_release_status_without_reference(env):
    with pytest.raises(LoaderError, match="release doesn't contain a valid reference"):
        env.loader.get_snapshot_environment_binding_from_release_status(env.client, env.release)


def test_binding_from_release_status(env):
    release = copy.deepcopy(env.release)
    release.status.deployment.snapshot_environment_binding = (
        "default/snapshot-environment-binding"
    )
    result = env.loader.get_snapshot_environment_binding_from_release_status(env.client, release)
    assert result.name == "snapshot-environment-binding"


def test_get_deployment_resources(env):
    resources = env.loader.get_deployment_resources(env.client, env.release, env.admission)
    assert resources.application.name == "application"
    assert [c.name for c in resources.application_components] == ["component"]
    assert resources.environment.name == "environment"
    assert resources.snapshot.name == "snapshot"


def test_get_deployment_resources_fails(env):
    admission = copy.deepcopy(env.admission)
    admission.spec.application = "non-existent-application"
    with pytest.raises(NotFoundError):
        env.loader.get_deployment_resources(env.client, env.release, admission)


def test_get_processing_resources(env, monkeypatch):
    monkeypatch.setenv("ENTERPRISE_CONTRACT_CONFIG_MAP", "default/ec-defaults")
    resources = env.loader.get_processing_resources(env.client, env.release)
    assert resources.enterprise_contract_config_map.name == "ec-defaults"
    assert resources.enterprise_contract_policy.name == "enterprise-contract-policy"
    assert resources.release_plan.name == "release-plan"
    assert resources.release_plan_admission.name == "release-plan-admission"
    assert resources.release_strategy.name == "release-strategy"
    assert resources.snapshot.name == "snapshot"


def test_get_processing_resources_fails(env, monkeypatch):
    monkeypatch.setenv("ENTERPRISE_CONTRACT_CONFIG_MAP", "default/ec-defaults")
    release = copy.deepcopy(env.release)
    release.spec.snapshot = "non-existent-snapshot"
    with pytest.raises(NotFoundError):
        env.loader.get_processing_resources(env.client, release)


def test_client_create_duplicate_raises():
    client = InMemoryClient()
    client.create(KubeObject(kind="Snapshot", name="a", namespace="default"))
    with pytest.raises(AlreadyExistsError):
        client.create(KubeObject(kind="Snapshot", name="a", namespace="default"))


def test_client_generates_names():
    client = InMemoryClient()
    obj = client.create(KubeObject(kind="Snapshot", generate_name="snap-", namespace="default"))
    assert obj.name.startswith("snap-")
    assert len(obj.name) == len("snap-") + 5
    assert client.get("Snapshot", obj.name, "default").name == obj.name


def test_client_delete_missing_raises():
    client = InMemoryClient()
    with pytest.raises(NotFoundError):
        client.delete(KubeObject(kind="Snapshot", name="a", namespace="default"))


def test_client_delete_then_get_raises():
    client = InMemoryClient()
    obj = client.create(KubeObject(kind="Snapshot", name="a", namespace="default"))
    client.delete(obj)
    with pytest.raises(NotFoundError):
        client.get("Snapshot", "a", "default")


def test_client_list_limit_and_order():
    client = InMemoryClient()
    for name in ("c", "a", "b"):
        client.create(KubeObject(kind="Snapshot", name=name, namespace="default"))
    assert [o.name for o in client.list("Snapshot")] == ["a", "b", "c"]
    assert [o.name for o in client.list("Snapshot", limit=2)] == ["a", "b"]