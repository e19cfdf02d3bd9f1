"""On-disk persistence of built graphs, one JSON document per organization."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from depgraph.config import settings
from depgraph.entities import node_from_dict, node_to_dict

logger = logging.getLogger(__name__)


class SnapshotNotFoundError(FileNotFoundError):
    """Raised when no cached snapshot exists for an organization."""


class SnapshotStore:
    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else settings.DATA_DIR

    def path_for(self, org_name: str) -> Path:
        return self.data_dir / f"{org_name}.json"

    def save(self, org_name: str, snapshot: Dict[str, Dict[str, Any]]) -> Path:
        path = self.path_for(org_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot, indent=4), encoding="utf-8")
        logger.info(f"Snapshot of {org_name} written to {path}")
        return path

    def load(self, org_name: str) -> Dict[str, Dict[str, Any]]:
        """
        Read a cached snapshot.

        Raises:
            SnapshotNotFoundError: nothing was saved for this organization
            ValueError: the file is not valid JSON or holds an invalid node
        """
        path = self.path_for(org_name)
        if not path.exists():
            raise SnapshotNotFoundError(f"No snapshot for {org_name} at {path}")
        raw = json.loads(path.read_text(encoding="utf-8"))
        return {name: node_to_dict(node_from_dict(data)) for name, data in raw.items()}
