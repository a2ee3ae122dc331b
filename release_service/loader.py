"""Look up the cluster objects that take part in a release."""

from __future__ import annotations

import copy
import os
import random
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .metadata import (
    AUTO_RELEASE_LABEL,
    NAMESPACE_SEPARATOR,
    RELEASE_NAME_LABEL,
    RELEASE_NAMESPACE_LABEL,
    KubeObject,
)

APPLICATION_KIND = "Application"
COMPONENT_KIND = "Component"
CONFIG_MAP_KIND = "ConfigMap"
ENTERPRISE_CONTRACT_POLICY_KIND = "EnterpriseContractPolicy"
ENVIRONMENT_KIND = "Environment"
PIPELINE_RUN_KIND = "PipelineRun"
RELEASE_KIND = "Release"
RELEASE_PLAN_KIND = "ReleasePlan"
RELEASE_PLAN_ADMISSION_KIND = "ReleasePlanAdmission"
RELEASE_STRATEGY_KIND = "ReleaseStrategy"
SNAPSHOT_KIND = "Snapshot"
SNAPSHOT_ENVIRONMENT_BINDING_KIND = "SnapshotEnvironmentBinding"

ENTERPRISE_CONTRACT_CONFIG_MAP_ENV = "ENTERPRISE_CONTRACT_CONFIG_MAP"

_NAME_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_NAME_SUFFIX_LENGTH = 5


class LoaderError(Exception):
    """Raised when the requested objects cannot be loaded."""


class NotFoundError(LoaderError):
    """Raised when an object does not exist."""


class AlreadyExistsError(LoaderError):
    """Raised when creating an object that already exists."""


def _resolve(obj: Any, path: str) -> Any:
    """Follow a dotted path through attributes or mapping keys; None if absent."""
    value = obj
    for part in path.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


class InMemoryClient:
    """A minimal object store with the create, get, list and delete operations."""

    def __init__(self) -> None:
        self._objects: Dict[Tuple[str, str, str], KubeObject] = {}

    @staticmethod
    def _key(obj: KubeObject) -> Tuple[str, str, str]:
        if not obj.kind:
            raise ValueError("object has no kind")
        if not obj.name:
            raise ValueError("object has no name")
        return (obj.kind, obj.namespace, obj.name)

    def _generate_name(self, obj: KubeObject) -> str:
        while True:
            suffix = "".join(random.choices(_NAME_SUFFIX_ALPHABET, k=_NAME_SUFFIX_LENGTH))
            name = f"{obj.generate_name}{suffix}"
            if (obj.kind, obj.namespace, name) not in self._objects:
                return name

    def create(self, obj: KubeObject) -> KubeObject:
        """Store the object, generating its name if needed; the name is set on ``obj``."""
        if not obj.name and obj.generate_name:
            obj.name = self._generate_name(obj)
        key = self._key(obj)
        if key in self._objects:
            raise AlreadyExistsError(f'{obj.kind} "{obj.name}" already exists')
        self._objects[key] = copy.deepcopy(obj)
        return obj

    def get(self, kind: str, name: str, namespace: str) -> KubeObject:
        """Return a copy of the stored object."""
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(f'{kind} "{name}" not found') from None

    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        field_selector: Optional[Mapping[str, Any]] = None,
        label_selector: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[KubeObject]:
        """Return copies of the matching objects, ordered by namespace and name."""
        matches = (
            obj for obj in self._matching(kind, namespace, field_selector, label_selector)
        )
        result = []
        for obj in matches:
            if limit is not None and len(result) >= limit:
                break
            result.append(copy.deepcopy(obj))
        return result

    def _matching(
        self,
        kind: str,
        namespace: Optional[str],
        field_selector: Optional[Mapping[str, Any]],
        label_selector: Optional[Mapping[str, str]],
    ) -> Iterator[KubeObject]:
        for key in sorted(self._objects):
            obj_kind, obj_namespace, _ = key
            if obj_kind != kind:
                continue
            if namespace is not None and obj_namespace != namespace:
                continue
            obj = self._objects[key]
            if field_selector and any(
                _resolve(obj, path) != value for path, value in field_selector.items()
            ):
                continue
            labels = obj.labels or {}
            if label_selector and any(
                labels.get(name) != value for name, value in label_selector.items()
            ):
                continue
            yield obj

    def delete(self, obj: KubeObject) -> None:
        key = self._key(obj)
        if key not in self._objects:
            raise NotFoundError(f'{obj.kind} "{obj.name}" not found')
        del self._objects[key]


@dataclass
class DeploymentResources:
    """The resources required to trigger a deployment."""

    application: Optional[KubeObject] = None
    application_components: List[KubeObject] = field(default_factory=list)
    environment: Optional[KubeObject] = None
    snapshot: Optional[KubeObject] = None


@dataclass
class ProcessingResources:
    """The resources required to process a Release."""

    enterprise_contract_config_map: Optional[KubeObject] = None
    enterprise_contract_policy: Optional[KubeObject] = None
    release_plan: Optional[KubeObject] = None
    release_plan_admission: Optional[KubeObject] = None
    release_strategy: Optional[KubeObject] = None
    snapshot: Optional[KubeObject] = None


class Loader:
    """Fetches the objects a release refers to through a client."""

    def get_active_release_plan_admission(
        self, client: InMemoryClient, release_plan: KubeObject
    ) -> KubeObject:
        """Return the single ReleasePlanAdmission targeted by the ReleasePlan.

        Raises LoaderError if none matches, if several match, or if the match
        has its auto-release label set to false.
        """
        target = _resolve(release_plan, "spec.target")
        application = _resolve(release_plan, "spec.application")
        admissions = client.list(
            RELEASE_PLAN_ADMISSION_KIND,
            namespace=target,
            field_selector={"spec.origin": release_plan.namespace},
        )

        active: Optional[KubeObject] = None
        for admission in admissions:
            if _resolve(admission, "spec.application") != application:
                continue
            if active is not None:
                raise LoaderError(
                    f"multiple ReleasePlanAdmissions found with the target ({target}) "
                    f"for application '{application}'"
                )
            if (admission.labels or {}).get(AUTO_RELEASE_LABEL) == "false":
                raise LoaderError(
                    f"found ReleasePlanAdmission '{admission.name}' "
                    "with auto-release label set to false"
                )
            active = admission

        if active is None:
            raise LoaderError(
                f"no ReleasePlanAdmission found in the target ({target}) "
                f"for application '{application}'"
            )
        return active

    def get_active_release_plan_admission_from_release(
        self, client: InMemoryClient, release: KubeObject
    ) -> KubeObject:
        release_plan = self.get_release_plan(client, release)
        return self.get_active_release_plan_admission(client, release_plan)

    def get_application(self, client: InMemoryClient, release_plan: KubeObject) -> KubeObject:
        return client.get(
            APPLICATION_KIND, _resolve(release_plan, "spec.application"), release_plan.namespace
        )

    def get_enterprise_contract_config_map(self, client: InMemoryClient) -> Optional[KubeObject]:
        """Return the ConfigMap named ``namespace/name`` by the environment, or None."""
        namespaced_name = os.environ.get(ENTERPRISE_CONTRACT_CONFIG_MAP_ENV, "")
        namespace, separator, name = namespaced_name.partition(NAMESPACE_SEPARATOR)
        if not separator:
            return None
        return client.get(CONFIG_MAP_KIND, name, namespace)

    def get_enterprise_contract_policy(
        self, client: InMemoryClient, release_strategy: KubeObject
    ) -> KubeObject:
        return client.get(
            ENTERPRISE_CONTRACT_POLICY_KIND,
            _resolve(release_strategy, "spec.policy"),
            release_strategy.namespace,
        )

    def get_environment(
        self, client: InMemoryClient, release_plan_admission: KubeObject
    ) -> KubeObject:
        return client.get(
            ENVIRONMENT_KIND,
            _resolve(release_plan_admission, "spec.environment"),
            release_plan_admission.namespace,
        )

    def get_managed_application(
        self, client: InMemoryClient, release_plan_admission: KubeObject
    ) -> KubeObject:
        return client.get(
            APPLICATION_KIND,
            _resolve(release_plan_admission, "spec.application"),
            release_plan_admission.namespace,
        )

    def get_managed_application_components(
        self, client: InMemoryClient, application: KubeObject
    ) -> List[KubeObject]:
        return client.list(
            COMPONENT_KIND,
            namespace=application.namespace,
            field_selector={"spec.application": application.name},
        )

    def get_release(self, client: InMemoryClient, name: str, namespace: str) -> KubeObject:
        return client.get(RELEASE_KIND, name, namespace)

    def get_release_pipeline_run(
        self, client: InMemoryClient, release: KubeObject
    ) -> Optional[KubeObject]:
        """Return the PipelineRun labelled with the Release, or None if there is none."""
        pipeline_runs = client.list(
            PIPELINE_RUN_KIND,
            label_selector={
                RELEASE_NAME_LABEL: release.name,
                RELEASE_NAMESPACE_LABEL: release.namespace,
            },
            limit=1,
        )
        return pipeline_runs[0] if pipeline_runs else None

    def get_release_plan(self, client: InMemoryClient, release: KubeObject) -> KubeObject:
        return client.get(
            RELEASE_PLAN_KIND, _resolve(release, "spec.release_plan"), release.namespace
        )

    def get_release_strategy(
        self, client: InMemoryClient, release_plan_admission: KubeObject
    ) -> KubeObject:
        return client.get(
            RELEASE_STRATEGY_KIND,
            _resolve(release_plan_admission, "spec.release_strategy"),
            release_plan_admission.namespace,
        )

    def get_snapshot(self, client: InMemoryClient, release: KubeObject) -> KubeObject:
        return client.get(SNAPSHOT_KIND, _resolve(release, "spec.snapshot"), release.namespace)

    def get_snapshot_environment_binding(
        self, client: InMemoryClient, release_plan_admission: KubeObject
    ) -> Optional[KubeObject]:
        """Return the binding sharing the admission's environment and application, or None."""
        bindings = client.list(
            SNAPSHOT_ENVIRONMENT_BINDING_KIND,
            namespace=release_plan_admission.namespace,
            field_selector={
                "spec.environment": _resolve(release_plan_admission, "spec.environment")
            },
        )
        application = _resolve(release_plan_admission, "spec.application")
        return next(
            (b for b in bindings if _resolve(b, "spec.application") == application), None
        )

    def get_snapshot_environment_binding_from_release_status(
        self, client: InMemoryClient, release: KubeObject
    ) -> KubeObject:
        """Return the binding whose ``namespace/name`` is stored in the Release status."""
        reference = _resolve(release, "status.deployment.snapshot_environment_binding") or ""
        parts = reference.split(NAMESPACE_SEPARATOR)
        if len(parts) != 2:
            raise LoaderError(
                "release doesn't contain a valid reference to an "
                f"SnapshotEnvironmentBinding ('{reference}')"
            )
        namespace, name = parts
        return client.get(SNAPSHOT_ENVIRONMENT_BINDING_KIND, name, namespace)

    def get_deployment_resources(
        self, client: InMemoryClient, release: KubeObject, release_plan_admission: KubeObject
    ) -> DeploymentResources:
        application = self.get_managed_application(client, release_plan_admission)
        return DeploymentResources(
            application=application,
            application_components=self.get_managed_application_components(client, application),
            environment=self.get_environment(client, release_plan_admission),
            snapshot=self.get_snapshot(client, release),
        )

    def get_processing_resources(
        self, client: InMemoryClient, release: KubeObject
    ) -> ProcessingResources:
        release_plan = self.get_release_plan(client, release)
        admission = self.get_active_release_plan_admission_from_release(client, release)
        strategy = self.get_release_strategy(client, admission)
        config_map = self.get_enterprise_contract_config_map(client)
        policy = self.get_enterprise_contract_policy(client, strategy)
        snapshot = self.get_snapshot(client, release)
        return ProcessingResources(
            enterprise_contract_config_map=config_map,
            enterprise_contract_policy=policy,
            release_plan=release_plan,
            release_plan_admission=admission,
            release_strategy=strategy,
            snapshot=snapshot,
        )