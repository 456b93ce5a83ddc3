"""Single-slot offline copy of the active route."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .models import CachedRoute

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class OfflineRouteCache:
    """
    Holds the most recent CachedRoute so alert text can be composed without
    network access. One slot, overwritten by every new trip; no TTL or eviction.

    With no ``path`` the slot lives in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path).expanduser() if path else None
        self._memory: Optional[Dict[str, Any]] = None

    def save(self, cached: CachedRoute) -> None:
        record = {"schema_version": SCHEMA_VERSION, "trip": cached.route.train_number}
        record.update(cached.to_dict())

        if self.path is None:
            self._memory = record
        else:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record, f)
            os.replace(tmp_path, self.path)

        logger.info(f"Route data cached for offline use (train {cached.route.train_number})")

    def load(self) -> Optional[CachedRoute]:
        """Return the cached route, or None if the slot is empty or unreadable."""
        record = self._memory if self.path is None else self._read()
        if not isinstance(record, dict):
            return None

        version = record.get("schema_version")
        if version != SCHEMA_VERSION:
            logger.warning(f"Ignoring cached route with schema version {version}")
            return None

        try:
            return CachedRoute.from_dict(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Cached route is corrupt: {e}")
            return None

    def clear(self) -> None:
        self._memory = None
        if self.path is not None and self.path.exists():
            self.path.unlink()
        logger.debug("Cleared offline route cache")

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read cached route from {self.path}: {e}")
            return None
