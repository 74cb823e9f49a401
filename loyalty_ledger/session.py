#!/usr/bin/env python3
"""
Ledger session: owns the current state and routes every change through the
reducers, the merge engine and the snapshot store, queueing persistence
writes as it goes.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules, SessionConfig
from loyalty_ledger.ledger import ComputedLedger
from loyalty_ledger.merge import MergeResult, merge_import
from loyalty_ledger.normalizer import ImportBatch
from loyalty_ledger.persistence import JsonDirectoryBackend, PersistenceBackend, WriteScheduler, load_state
from loyalty_ledger.qualification import QualificationCycle, current_status
from loyalty_ledger.snapshots import JsonFileBlobStorage, SnapshotInfo, SnapshotStore
from loyalty_ledger.state import TABLES, LedgerState, MutationResult

logger = logging.getLogger(__name__)


class LedgerSession:
    def __init__(
        self,
        state: LedgerState | None = None,
        snapshot_store: SnapshotStore | None = None,
        scheduler: WriteScheduler | None = None,
        rules: ProgramRules = DEFAULT_RULES,
    ) -> None:
        self.state = state or LedgerState()
        self.snapshot_store = snapshot_store
        self.scheduler = scheduler
        self.rules = rules

    @classmethod
    def open(
        cls,
        config: SessionConfig,
        backend: PersistenceBackend | None = None,
        rules: ProgramRules = DEFAULT_RULES,
    ) -> "LedgerSession":
        backend = backend or JsonDirectoryBackend(config.data_dir)
        state = load_state(backend, config.user_id)
        store = SnapshotStore(JsonFileBlobStorage(config.effective_snapshot_dir), key=config.snapshot_key)
        scheduler = WriteScheduler(backend, config.user_id, quiet_seconds=config.debounce_seconds)
        logger.info("Opened ledger session for %s (%s)", config.user_id, "existing" if state else "new")
        return cls(state=state, snapshot_store=store, scheduler=scheduler, rules=rules)

    def _queue(self, tables: tuple[str, ...]) -> None:
        if self.scheduler is not None and tables:
            self.scheduler.submit_state(self.state, tables)

    def dispatch(self, reducer: Callable[..., MutationResult], *args: Any, **kwargs: Any) -> MutationResult:
        """Run a state reducer; adopt its state and queue writes only on success."""
        result = reducer(self.state, *args, **kwargs)
        if result.ok:
            self.state = result.state
            self._queue(result.changed_tables)
        else:
            logger.info("Rejected %s: %s", getattr(reducer, "__name__", "mutation"), result.error)
        return result

    def import_statement(self, batch: ImportBatch, source: str = "pdf", now: str | None = None) -> MergeResult:
        result = merge_import(self.state, batch, snapshot_store=self.snapshot_store, source=source, now=now)
        self.state = result.state
        self._queue(TABLES)
        return result

    def can_undo(self) -> bool:
        return self.snapshot_store is not None and self.snapshot_store.has_snapshot()

    def backup_info(self) -> SnapshotInfo | None:
        if self.snapshot_store is None:
            return None
        return self.snapshot_store.info()

    def undo_import(self) -> MutationResult:
        if self.snapshot_store is None:
            return MutationResult.failure(self.state, "No import backup available.")
        snapshot = self.snapshot_store.restore()
        if snapshot is None:
            return MutationResult.failure(self.state, "No import backup available.")

        self.state = snapshot.state
        self._queue(TABLES)
        self.snapshot_store.clear()
        logger.info("Restored state from %s import backup taken at %s", snapshot.source, snapshot.timestamp)
        return MutationResult.success(self.state, *TABLES)

    def computed_ledger(self) -> ComputedLedger:
        return self.state.computed_ledger()

    def cycles(self, as_of: date | None = None) -> list[QualificationCycle]:
        return self.state.cycles(rules=self.rules, as_of=as_of)

    def current_status(self, as_of: date | None = None) -> str:
        return current_status(self.cycles(as_of=as_of), as_of=as_of)

    def save(self) -> None:
        if self.scheduler is not None:
            self.scheduler.flush()
