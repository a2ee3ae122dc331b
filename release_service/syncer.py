"""Copy objects between namespaces."""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from .loader import AlreadyExistsError
from .metadata import KubeObject


class Syncer:
    """Copies Snapshots into other namespaces through a client."""

    def __init__(self, client: Any, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def sync_snapshot(self, snapshot: KubeObject, namespace: str) -> None:
        """Create a copy of the Snapshot in ``namespace``; an existing copy is left alone."""
        synced = copy.deepcopy(snapshot)
        synced.namespace = namespace
        synced.generate_name = ""
        synced.owner_references = []
        try:
            self.client.create(synced)
        except AlreadyExistsError:
            pass

        self.logger.info(
            "Snapshot synced: name=%s origin namespace=%s target namespace=%s",
            synced.name,
            snapshot.namespace,
            synced.namespace,
        )