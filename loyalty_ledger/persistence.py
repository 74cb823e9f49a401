#!/usr/bin/env python3
"""
Persistence backend and write scheduler.

Mutations produce write intents per logical table. The scheduler coalesces
intents (last write wins per table) and flushes them once no new intent has
arrived for the quiet window. Time comes from an injectable clock and
flushing happens on `poll()` or `flush()`; there are no background threads.
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol

from loyalty_ledger.serialization import (
    flight_to_dict,
    manual_ledger_to_dict,
    miles_record_to_dict,
    profile_to_dict,
    state_from_document,
)
from loyalty_ledger.state import (
    FLIGHTS_TABLE,
    MANUAL_TABLE,
    MILES_TABLE,
    PROFILE_TABLE,
    LedgerState,
)
from loyalty_ledger.utils.migration import CURRENT_SCHEMA_VERSION

logger = logging.getLogger(__name__)


class SaveStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVED = "saved"
    FAILED = "failed"


class PersistenceBackend(Protocol):
    def load_all(self, user_id: str) -> dict[str, Any] | None: ...

    def save_flights(self, user_id: str, flights: list[dict[str, Any]]) -> None: ...

    def save_miles_records(self, user_id: str, records: list[dict[str, Any]]) -> None: ...

    def save_manual_ledger(self, user_id: str, ledger: dict[str, Any]) -> None: ...

    def save_profile(self, user_id: str, profile: dict[str, Any]) -> None: ...


class JsonDirectoryBackend:
    """One `<user>_<table>.json` file per table. Saves replace the whole table."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, user_id: str, table: str) -> Path:
        return self.directory / f"{user_id}_{table}.json"

    def _read(self, user_id: str, table: str) -> Any:
        path = self.path_for(user_id, table)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write(self, user_id: str, table: str, payload: Any) -> None:
        path = self.path_for(user_id, table)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def load_all(self, user_id: str) -> dict[str, Any] | None:
        tables = {table: self._read(user_id, table) for table in (FLIGHTS_TABLE, MILES_TABLE, MANUAL_TABLE, PROFILE_TABLE)}
        if all(value is None for value in tables.values()):
            return None
        document: dict[str, Any] = {
            "schema_version": CURRENT_SCHEMA_VERSION,
            "flights": tables[FLIGHTS_TABLE] or [],
            "monthly_miles_records": tables[MILES_TABLE] or [],
            "manual_ledger": tables[MANUAL_TABLE] or {},
        }
        document.update(tables[PROFILE_TABLE] or {})
        return document

    def save_flights(self, user_id: str, flights: list[dict[str, Any]]) -> None:
        self._write(user_id, FLIGHTS_TABLE, flights)

    def save_miles_records(self, user_id: str, records: list[dict[str, Any]]) -> None:
        self._write(user_id, MILES_TABLE, records)

    def save_manual_ledger(self, user_id: str, ledger: dict[str, Any]) -> None:
        self._write(user_id, MANUAL_TABLE, ledger)

    def save_profile(self, user_id: str, profile: dict[str, Any]) -> None:
        self._write(user_id, PROFILE_TABLE, profile)


def table_payload(state: LedgerState, table: str) -> Any:
    if table == FLIGHTS_TABLE:
        return [flight_to_dict(f) for f in state.flights]
    if table == MILES_TABLE:
        return [miles_record_to_dict(r) for r in state.miles_records]
    if table == MANUAL_TABLE:
        return manual_ledger_to_dict(state.manual_ledger)
    if table == PROFILE_TABLE:
        return profile_to_dict(state)
    raise ValueError(f"Unknown table: {table}")


def load_state(backend: PersistenceBackend, user_id: str) -> LedgerState | None:
    document = backend.load_all(user_id)
    if document is None:
        return None
    return state_from_document(document)


class WriteScheduler:
    def __init__(
        self,
        backend: PersistenceBackend,
        user_id: str,
        quiet_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.user_id = user_id
        self.quiet_seconds = quiet_seconds
        self.clock = clock
        self.pending: dict[str, Any] = {}
        self.failed_tables: list[str] = []
        self.status = SaveStatus.IDLE
        self._last_submit: float | None = None

    def submit(self, table: str, payload: Any) -> None:
        self.pending[table] = payload
        self._last_submit = self.clock()
        self.status = SaveStatus.PENDING

    def submit_state(self, state: LedgerState, tables: tuple[str, ...] | list[str]) -> None:
        for table in tables:
            self.submit(table, table_payload(state, table))

    def is_due(self) -> bool:
        if not self.pending or self._last_submit is None:
            return False
        return self.clock() - self._last_submit >= self.quiet_seconds

    def poll(self) -> bool:
        """Flush if the quiet window has elapsed. Returns True when a flush ran."""
        if not self.is_due():
            return False
        self.flush()
        return True

    def _write(self, table: str, payload: Any) -> None:
        if table == FLIGHTS_TABLE:
            self.backend.save_flights(self.user_id, payload)
        elif table == MILES_TABLE:
            self.backend.save_miles_records(self.user_id, payload)
        elif table == MANUAL_TABLE:
            self.backend.save_manual_ledger(self.user_id, payload)
        elif table == PROFILE_TABLE:
            self.backend.save_profile(self.user_id, payload)
        else:
            raise ValueError(f"Unknown table: {table}")

    def flush(self) -> SaveStatus:
        if not self.pending:
            return self.status

        intents, self.pending = self.pending, {}
        self._last_submit = None
        self.failed_tables = []
        for table, payload in intents.items():
            for attempt in (1, 2):
                try:
                    self._write(table, payload)
                    break
                except OSError:
                    if attempt == 1:
                        logger.warning("Saving %s failed; retrying once.", table)
                        continue
                    logger.error("Saving %s failed twice; local state is kept.", table, exc_info=True)
                    self.failed_tables.append(table)

        self.status = SaveStatus.FAILED if self.failed_tables else SaveStatus.SAVED
        return self.status
