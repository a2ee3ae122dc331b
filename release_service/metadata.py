"""Well-known label names and helpers for object labels and annotations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

RHTAP_DOMAIN = "appstudio.openshift.io"

MAX_LABEL_LENGTH = 63
"""Maximum number of characters allowed in a label value."""

NAMESPACE_SEPARATOR = "/"

# Labels used by the release API
ATTRIBUTION_LABEL = f"release.{RHTAP_DOMAIN}/standing-attribution"
AUTO_RELEASE_LABEL = f"release.{RHTAP_DOMAIN}/auto-release"
AUTHOR_LABEL = f"release.{RHTAP_DOMAIN}/author"
AUTOMATED_LABEL = f"release.{RHTAP_DOMAIN}/automated"

_PIPELINES_LABEL_PREFIX = f"pipelines.{RHTAP_DOMAIN}"
_RELEASE_LABEL_PREFIX = f"release.{RHTAP_DOMAIN}"

# Labels used within release PipelineRuns
APPLICATION_NAME_LABEL = f"{RHTAP_DOMAIN}/application"
PIPELINES_TYPE_LABEL = f"{_PIPELINES_LABEL_PREFIX}/type"
RELEASE_NAME_LABEL = f"{_RELEASE_LABEL_PREFIX}/name"
RELEASE_NAMESPACE_LABEL = f"{_RELEASE_LABEL_PREFIX}/namespace"


@dataclass
class KubeObject:
    """Common metadata shared by every cluster object."""

    name: str = ""
    namespace: str = ""
    kind: str = ""
    api_version: str = ""
    generate_name: str = ""
    labels: Optional[Dict[str, str]] = None
    annotations: Optional[Dict[str, str]] = None
    spec: Any = None
    status: Any = None
    owner_references: list = field(default_factory=list)

    def namespaced_name(self) -> str:
        """Return the object reference in the form ``namespace/name``."""
        return f"{self.namespace}{NAMESPACE_SEPARATOR}{self.name}"


def add_annotations(obj: KubeObject, entries: Mapping[str, str]) -> None:
    """Copy entries into the object's annotations, creating them if absent.

    Existing keys are never overwritten.
    """
    if obj.annotations is None:
        obj.annotations = {}
    add_entries(entries, obj.annotations)


def add_labels(obj: KubeObject, entries: Mapping[str, str]) -> None:
    """Copy entries into the object's labels, creating them if absent.

    Existing keys are never overwritten.
    """
    if obj.labels is None:
        obj.labels = {}
    add_entries(entries, obj.labels)


def get_annotations_with_prefix(obj: KubeObject, prefix: str) -> Optional[Dict[str, str]]:
    """Return the object's annotations whose keys start with ``prefix``."""
    return filter_by_prefix(obj.annotations, prefix)


def get_labels_with_prefix(obj: KubeObject, prefix: str) -> Optional[Dict[str, str]]:
    """Return the object's labels whose keys start with ``prefix``."""
    return filter_by_prefix(obj.labels, prefix)


def add_entries(source: Optional[Mapping[str, str]], destination: Dict[str, str]) -> None:
    """Copy every pair of ``source`` into ``destination`` without clobbering keys."""
    for key, value in (source or {}).items():
        safe_copy(destination, key, value)


def filter_by_prefix(
    entries: Optional[Mapping[str, str]], prefix: str
) -> Optional[Dict[str, str]]:
    """Return the pairs whose keys start with ``prefix``.

    An empty prefix returns the given mapping itself.
    """
    if not prefix:
        return entries  # type: ignore[return-value]
    return {key: value for key, value in (entries or {}).items() if key.startswith(prefix)}


def safe_copy(destination: Dict[str, str], key: str, value: str) -> None:
    """Set ``key`` to ``value`` unless the key is already present."""
    destination.setdefault(key, value)