"""Builders for the PipelineRuns that carry out a release."""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from .metadata import (
    APPLICATION_NAME_LABEL,
    NAMESPACE_SEPARATOR,
    PIPELINES_TYPE_LABEL,
    RELEASE_NAME_LABEL,
    RELEASE_NAMESPACE_LABEL,
    KubeObject,
    add_annotations,
    add_labels,
    get_annotations_with_prefix,
    get_labels_with_prefix,
)

PIPELINE_TYPE_RELEASE = "release"
"""Value of the pipelines type label for release PipelineRuns."""

PIPELINES_AS_CODE_PREFIX = "pipelinesascode.tekton.dev"

ENTERPRISE_CONTRACT_CONFIG_MAP_BUNDLE_FIELD = "verify_ec_task_bundle"

OWNER_NAMESPACED_NAME_ANNOTATION = "operator-sdk/primary-resource"
OWNER_TYPE_ANNOTATION = "operator-sdk/primary-resource-type"

DEFAULT_WORKSPACE_NAME_ENV = "DEFAULT_RELEASE_WORKSPACE_NAME"
DEFAULT_PVC_ENV = "DEFAULT_RELEASE_PVC"

CONDITION_SUCCEEDED = "Succeeded"
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


class ParamType(str, Enum):
    """Kind of value a pipeline parameter holds."""

    STRING = "string"
    ARRAY = "array"


@dataclass
class ParamValue:
    type: ParamType = ParamType.STRING
    string_val: str = ""
    array_val: List[str] = field(default_factory=list)


@dataclass
class Param:
    name: str
    value: ParamValue = field(default_factory=ParamValue)


@dataclass
class ResolverRef:
    resolver: str = ""
    params: List[Param] = field(default_factory=list)


@dataclass
class PipelineRef:
    name: str = ""
    resolver_ref: ResolverRef = field(default_factory=ResolverRef)


@dataclass
class WorkspaceBinding:
    """A workspace backed by the named PersistentVolumeClaim."""

    name: str
    persistent_volume_claim: str = ""


@dataclass
class Condition:
    type: str
    status: str = CONDITION_UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineRunStatus:
    conditions: List[Condition] = field(default_factory=list)
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None

    def _set_condition(self, condition_type: str, status: str, reason: str, message: str) -> None:
        condition = Condition(condition_type, status, reason, message, _now())
        self.conditions = [c for c in self.conditions if c.type != condition_type]
        self.conditions.append(condition)

    def initialize_conditions(self) -> None:
        """Record the start time and mark the run's outcome as unknown."""
        if self.start_time is None:
            self.start_time = _now()
        if self.get_condition(CONDITION_SUCCEEDED) is None:
            self._set_condition(CONDITION_SUCCEEDED, CONDITION_UNKNOWN, "", "")

    def mark_running(self, reason: str, message: str) -> None:
        self._set_condition(CONDITION_SUCCEEDED, CONDITION_UNKNOWN, reason, message)

    def mark_succeeded(self, reason: str, message: str) -> None:
        self._set_condition(CONDITION_SUCCEEDED, CONDITION_TRUE, reason, message)
        self.completion_time = _now()

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        return next((c for c in self.conditions if c.type == condition_type), None)


@dataclass
class PipelineRun(KubeObject):
    kind: str = "PipelineRun"
    api_version: str = "tekton.dev/v1beta1"
    status: PipelineRunStatus = field(default_factory=PipelineRunStatus)
    params: List[Param] = field(default_factory=list)
    pipeline_ref: Optional[PipelineRef] = None
    service_account_name: str = ""
    workspaces: List[WorkspaceBinding] = field(default_factory=list)


def _spec_json(spec: Any) -> str:
    if dataclasses.is_dataclass(spec) and not isinstance(spec, type):
        spec = dataclasses.asdict(spec)
    return json.dumps(spec, separators=(",", ":"), ensure_ascii=False)


def _group_of(api_version: str) -> str:
    group, separator, _ = api_version.rpartition("/")
    return group if separator else ""


@dataclass
class ReleasePipelineRun(PipelineRun):
    """A PipelineRun with chainable builders for release metadata and parameters."""

    def as_pipeline_run(self) -> PipelineRun:
        """Return the run for use with a client; the same object is shared."""
        return self

    def with_enterprise_contract_config_map(self, config_map: Any) -> "ReleasePipelineRun":
        """Add the verify EC task bundle held by the ConfigMap as a parameter."""
        bundle = (config_map.data or {}).get(ENTERPRISE_CONTRACT_CONFIG_MAP_BUNDLE_FIELD, "")
        return self.with_extra_param(
            ENTERPRISE_CONTRACT_CONFIG_MAP_BUNDLE_FIELD,
            ParamValue(ParamType.STRING, string_val=bundle),
        )

    def with_enterprise_contract_policy(self, policy: KubeObject) -> "ReleasePipelineRun":
        """Add the policy spec as a JSON string, named after the policy kind."""
        if not policy.kind:
            raise ValueError("the EnterpriseContractPolicy has no kind")
        name = policy.kind[0].lower() + policy.kind[1:]
        return self.with_extra_param(
            name, ParamValue(ParamType.STRING, string_val=_spec_json(policy.spec))
        )

    def with_extra_param(self, name: str, value: ParamValue) -> "ReleasePipelineRun":
        self.params.append(Param(name, value))
        return self

    def with_object_references(self, *args: KubeObject) -> "ReleasePipelineRun":
        """Add a ``namespace/name`` parameter per object, named after its kind."""
        for obj in args:
            self.with_extra_param(
                obj.kind.lower(),
                ParamValue(ParamType.STRING, string_val=obj.namespaced_name()),
            )
        return self

    def with_owner(self, release: KubeObject) -> "ReleasePipelineRun":
        """Annotate the run with its owning Release; owners without name or kind are ignored."""
        if not release.name or not release.kind:
            return self
        group = _group_of(release.api_version)
        owner_type = f"{release.kind}.{group}" if group else release.kind
        if self.annotations is None:
            self.annotations = {}
        self.annotations[OWNER_NAMESPACED_NAME_ANNOTATION] = (
            f"{release.namespace}{NAMESPACE_SEPARATOR}{release.name}"
        )
        self.annotations[OWNER_TYPE_ANNOTATION] = owner_type
        return self

    def with_release_and_application_metadata(
        self, release: KubeObject, application_name: str
    ) -> "ReleasePipelineRun":
        self.labels = {
            PIPELINES_TYPE_LABEL: PIPELINE_TYPE_RELEASE,
            RELEASE_NAME_LABEL: release.name,
            RELEASE_NAMESPACE_LABEL: release.namespace,
            APPLICATION_NAME_LABEL: application_name,
        }
        add_annotations(self, get_annotations_with_prefix(release, PIPELINES_AS_CODE_PREFIX) or {})
        add_labels(self, get_labels_with_prefix(release, PIPELINES_AS_CODE_PREFIX) or {})
        return self

    def with_release_strategy(self, strategy: KubeObject) -> "ReleasePipelineRun":
        """Add the pipeline reference, parameters, workspace and service account."""
        spec = strategy.spec
        self.pipeline_ref = get_pipeline_ref(strategy)

        value_type = ParamType.STRING
        for param in spec.params or ():
            if param.values:
                value_type = ParamType.ARRAY
            self.with_extra_param(
                param.name,
                ParamValue(value_type, string_val=param.value or "", array_val=list(param.values or [])),
            )

        workspace_name = os.environ.get(DEFAULT_WORKSPACE_NAME_ENV, "")
        claim = spec.persistent_volume_claim or os.environ.get(DEFAULT_PVC_ENV, "")
        self.with_workspace(workspace_name, claim)
        self.with_service_account(spec.service_account)
        return self

    def with_service_account(self, service_account: str) -> "ReleasePipelineRun":
        self.service_account_name = service_account
        return self

    def with_workspace(self, name: str, persistent_volume_claim: str) -> "ReleasePipelineRun":
        """Add a workspace; nothing is added if either value is empty."""
        if name and persistent_volume_claim:
            self.workspaces.append(WorkspaceBinding(name, persistent_volume_claim))
        return self


def new_release_pipeline_run(prefix: str, namespace: str) -> ReleasePipelineRun:
    """Create an empty run whose name will be generated from ``prefix``."""
    return ReleasePipelineRun(generate_name=f"{prefix}-", namespace=namespace)


def get_bundle_resolver(bundle: str, pipeline: str) -> ResolverRef:
    return ResolverRef(
        resolver="bundles",
        params=[
            Param("bundle", ParamValue(ParamType.STRING, string_val=bundle)),
            Param("kind", ParamValue(ParamType.STRING, string_val="pipeline")),
            Param("name", ParamValue(ParamType.STRING, string_val=pipeline)),
        ],
    )


def get_pipeline_ref(strategy: KubeObject) -> PipelineRef:
    """Reference the strategy's pipeline by name, or through a bundle resolver."""
    spec = strategy.spec
    if not spec.bundle:
        return PipelineRef(name=spec.pipeline)
    return PipelineRef(resolver_ref=get_bundle_resolver(spec.bundle, spec.pipeline))