"""
Snapshot persistence.

A store holds at most one RateSnapshot. save() replaces it as a whole, so
readers see either the old or the new record and never a mix.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Optional, Union

from .access import normalize_address
from .errors import InvalidParameterError, StoreError
from .models.snapshot import RateSnapshot, SNAPSHOT_VERSION, INT_FIELDS
from .validation import is_valid_max_difference_percent, require_uint256

logger = logging.getLogger(__name__)


class SnapshotStore(ABC):
    """Abstract storage for the single rate snapshot"""

    @abstractmethod
    def load(self) -> Optional[RateSnapshot]:
        """Return the stored snapshot, or None if nothing was saved yet"""
        pass

    @abstractmethod
    def save(self, snapshot: RateSnapshot) -> None:
        """Replace the stored snapshot"""
        pass


class MemorySnapshotStore(SnapshotStore):
    """Keeps the snapshot in process memory"""

    def __init__(self, snapshot: Optional[RateSnapshot] = None):
        self._snapshot = snapshot

    def load(self) -> Optional[RateSnapshot]:
        return self._snapshot

    def save(self, snapshot: RateSnapshot) -> None:
        self._snapshot = snapshot


class JsonSnapshotStore(SnapshotStore):
    """
    Stores the snapshot as a JSON file.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[RateSnapshot]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            snapshot = RateSnapshot.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            raise StoreError(f"Cannot load snapshot from {self.path}: {e}") from e

        snapshot = self._checked(snapshot)

        if snapshot.version != SNAPSHOT_VERSION:
            logger.info(
                f"Snapshot at {self.path} is {snapshot.version}, "
                f"will be written as {SNAPSHOT_VERSION}"
            )
        return snapshot

    def save(self, snapshot: RateSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(snapshot.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Cannot save snapshot to {self.path}: {e}") from e

        logger.debug(f"Snapshot saved to {self.path}")

    def _checked(self, snapshot: RateSnapshot) -> RateSnapshot:
        """
        Enforce the invariants a live provider keeps on every write: non-zero
        role addresses, uint256 amounts and a threshold in (0, 1e18].

        Returns the snapshot with addresses in checksum form.
        """
        try:
            addresses = {
                name: normalize_address(getattr(snapshot, name), name.replace("_", " "))
                for name in ("owner", "reserve_feed", "updater")
            }
            for name in INT_FIELDS:
                require_uint256(getattr(snapshot, name), name.replace("_", " "))
        except InvalidParameterError as e:
            raise StoreError(f"Invalid snapshot in {self.path}: {e}") from e

        if not is_valid_max_difference_percent(snapshot.max_difference_percent):
            raise StoreError(
                f"Invalid snapshot in {self.path}: max difference percent "
                f"{snapshot.max_difference_percent} outside (0, 1e18]"
            )

        return replace(snapshot, **addresses)
