#!/usr/bin/env python3
"""
Snapshot/undo store.

Holds exactly one backup of the ledger state, written before each bulk import
and overwritten by the next. Storage is a single keyed text blob so the store
works the same over memory or a JSON file on disk.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loyalty_ledger.normalizer import utc_now_iso
from loyalty_ledger.serialization import state_from_document, state_to_document
from loyalty_ledger.state import LedgerState
from loyalty_ledger.utils.contracts import ContractError

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_KEY = "import_backup"


class BlobStorage(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, blob: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryBlobStorage:
    def __init__(self) -> None:
        self.blobs: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self.blobs.get(key)

    def write(self, key: str, blob: str) -> None:
        self.blobs[key] = blob

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


class JsonFileBlobStorage:
    """One `<key>.json` file per blob inside `directory`."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        tmp_path.replace(path)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class SnapshotInfo:
    timestamp: str
    source: str


@dataclass(frozen=True)
class Snapshot:
    state: LedgerState
    timestamp: str
    source: str

    @property
    def info(self) -> SnapshotInfo:
        return SnapshotInfo(timestamp=self.timestamp, source=self.source)


class SnapshotStore:
    def __init__(self, storage: BlobStorage, key: str = DEFAULT_SNAPSHOT_KEY) -> None:
        self.storage = storage
        self.key = key

    def capture(self, state: LedgerState, source: str, timestamp: str | None = None) -> SnapshotInfo:
        """Overwrite the backup with `state`. Storage errors propagate to the caller."""
        info = SnapshotInfo(timestamp=timestamp or utc_now_iso(), source=source)
        blob = json.dumps(
            {
                "timestamp": info.timestamp,
                "source": info.source,
                "state": state_to_document(state),
            }
        )
        self.storage.write(self.key, blob)
        logger.info("Captured import backup (%s) at %s", info.source, info.timestamp)
        return info

    def _read(self) -> dict | None:
        blob = self.storage.read(self.key)
        if blob is None:
            return None
        try:
            payload = json.loads(blob)
        except json.JSONDecodeError:
            logger.error("Import backup %r is not valid JSON; treating it as missing.", self.key)
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            logger.error("Import backup %r has an unexpected shape; treating it as missing.", self.key)
            return None
        return payload

    def restore(self) -> Snapshot | None:
        """Return the backed-up state without deleting it; callers clear after applying it."""
        payload = self._read()
        if payload is None:
            return None
        try:
            state = state_from_document(payload["state"])
        except ContractError:
            logger.error("Import backup %r failed validation; treating it as missing.", self.key, exc_info=True)
            return None
        return Snapshot(
            state=state,
            timestamp=str(payload.get("timestamp", "")),
            source=str(payload.get("source", "")),
        )

    def has_snapshot(self) -> bool:
        return self._read() is not None

    def info(self) -> SnapshotInfo | None:
        payload = self._read()
        if payload is None:
            return None
        return SnapshotInfo(timestamp=str(payload.get("timestamp", "")), source=str(payload.get("source", "")))

    def clear(self) -> None:
        self.storage.delete(self.key)
        logger.info("Cleared import backup %r", self.key)
