"""Event filters and checks for release PipelineRuns."""

from __future__ import annotations

from typing import Any, ClassVar, FrozenSet

from .metadata import PIPELINES_TYPE_LABEL
from .pipeline_run import (
    CONDITION_SUCCEEDED,
    CONDITION_UNKNOWN,
    PIPELINE_TYPE_RELEASE,
    PipelineRun,
)


def is_release_pipeline_run(obj: Any) -> bool:
    """Tell whether the object is a PipelineRun labelled as a release pipeline."""
    if not isinstance(obj, PipelineRun):
        return False
    return (obj.labels or {}).get(PIPELINES_TYPE_LABEL) == PIPELINE_TYPE_RELEASE


def has_pipeline_succeeded(obj: Any) -> bool:
    """Tell whether the PipelineRun has a known outcome; False for other objects."""
    if not isinstance(obj, PipelineRun):
        return False
    condition = obj.status.get_condition(CONDITION_SUCCEEDED)
    return condition is not None and condition.status != CONDITION_UNKNOWN


class ReleasePipelineRunSucceededPredicate:
    """Lets through only updates of release PipelineRuns that have just finished."""

    _EXAMINED_EVENTS: ClassVar[FrozenSet[str]] = frozenset({"update"})

    def _passes(self, event: str, obj: Any) -> bool:
        """Apply the release-succeeded check to events this predicate examines."""
        if event not in self._EXAMINED_EVENTS:
            return False
        return is_release_pipeline_run(obj) and has_pipeline_succeeded(obj)

    def create(self, obj: Any) -> bool:
        return self._passes("create", obj)

    def delete(self, obj: Any) -> bool:
        return self._passes("delete", obj)

    def generic(self, obj: Any) -> bool:
        return self._passes("generic", obj)

    def update(self, old: Any, new: Any) -> bool:
        return self._passes("update", new)


def release_pipeline_run_succeeded_predicate() -> ReleasePipelineRunSucceededPredicate:
    return ReleasePipelineRunSucceededPredicate()