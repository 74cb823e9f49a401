#!/usr/bin/env python3
"""
Import merge engine.

Folds a normalized statement batch into the ledger state:

- flights are deduplicated on (date, route) and appended, never replaced;
- a statement month replaces the stored miles record for that month wholesale;
- point corrections and bonus XP are added to the manual ledger;
- cycle settings are adopted only when none are stored yet.

A backup of the pre-merge state is captured before anything changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from loyalty_ledger.core import FlightRecord, ManualLedgerEntry
from loyalty_ledger.normalizer import ImportBatch, flight_id_for, utc_now_iso
from loyalty_ledger.snapshots import SnapshotStore
from loyalty_ledger.state import LedgerState, sort_flights

logger = logging.getLogger(__name__)


@dataclass
class MergeReport:
    source: str
    imported_at: str
    flights_added: int = 0
    flights_skipped: int = 0
    miles_months_replaced: list[str] = field(default_factory=list)
    correction_xp_applied: int = 0
    bonus_xp_applied: dict[str, int] = field(default_factory=dict)
    settings_adopted: bool = False
    snapshot_taken: bool = False
    audit_log: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class MergeResult:
    state: LedgerState
    report: MergeReport


def add_to_manual_entry(
    ledger: dict[str, ManualLedgerEntry],
    month: str,
    correction_xp: int = 0,
    misc_xp: int = 0,
) -> None:
    entry = ledger.get(month, ManualLedgerEntry())
    ledger[month] = replace(
        entry,
        correction_xp=entry.correction_xp + correction_xp,
        misc_xp=entry.misc_xp + misc_xp,
    )


def unused_flight_id(flight: FlightRecord, taken: set[str]) -> str:
    if flight.id not in taken:
        return flight.id
    base = flight_id_for(flight.date, flight.route, flight.airline)
    candidate, suffix = base, 1
    while candidate in taken:
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def merge_import(
    state: LedgerState,
    batch: ImportBatch,
    snapshot_store: SnapshotStore | None = None,
    source: str = "pdf",
    now: str | None = None,
) -> MergeResult:
    imported_at = now or utc_now_iso()
    report = MergeReport(source=source, imported_at=imported_at)

    if snapshot_store is not None:
        try:
            snapshot_store.capture(state, source=source, timestamp=imported_at)
            report.snapshot_taken = True
        except Exception:
            # The import still proceeds; only the undo is lost.
            logger.error("Could not capture import backup; continuing without undo.", exc_info=True)
            report.audit_log.append("WARNING: Backup failed. This import cannot be undone.")

    # Flights
    seen = {flight.dedup_key for flight in state.flights}
    taken_ids = {flight.id for flight in state.flights}
    added = []
    for flight in batch.flights:
        if flight.dedup_key in seen:
            report.flights_skipped += 1
            continue
        seen.add(flight.dedup_key)
        flight_id = unused_flight_id(flight, taken_ids)
        if flight_id != flight.id:
            logger.warning("Imported flight id %s is already taken; stored as %s", flight.id, flight_id)
        taken_ids.add(flight_id)
        added.append(replace(flight, id=flight_id, import_source=source, imported_at=imported_at))
    report.flights_added = len(added)
    if added or report.flights_skipped:
        report.audit_log.append(
            f"FLIGHTS: {report.flights_added} added, {report.flights_skipped} skipped as duplicates"
        )

    # Miles records
    miles_by_month = {record.month: record for record in state.miles_records}
    for record in batch.miles_records:
        miles_by_month[record.month] = record
        report.miles_months_replaced.append(record.month)
    report.miles_months_replaced.sort()
    if report.miles_months_replaced:
        report.audit_log.append(f"MILES: replaced {', '.join(report.miles_months_replaced)}")

    # Settings are write-once
    settings = state.qualification_settings
    if settings is None and batch.cycle_settings is not None:
        settings = batch.cycle_settings
        report.settings_adopted = True
        report.audit_log.append(
            f"SETTINGS: cycle starts {settings.cycle_start_month} as {settings.starting_status}"
        )
    elif batch.cycle_settings is not None:
        report.audit_log.append("SETTINGS: kept existing qualification settings")

    # Manual ledger
    manual = dict(state.manual_ledger)
    correction = batch.point_correction
    if correction is not None and correction.amount != 0:
        add_to_manual_entry(manual, correction.month, correction_xp=correction.amount)
        report.correction_xp_applied = correction.amount
        reason = f" ({correction.reason})" if correction.reason else ""
        report.audit_log.append(
            f"CORRECTION: {correction.month} correction XP {correction.amount:+d}{reason}"
        )
    for month, amount in sorted(batch.bonus_points_by_month.items()):
        if amount == 0:
            continue
        # Bonus XP before the effective cycle start belongs to no cycle.
        if settings is not None and month < settings.cycle_start_month:
            report.audit_log.append(f"BONUS: {month} skipped, before cycle start {settings.cycle_start_month}")
            continue
        add_to_manual_entry(manual, month, misc_xp=amount)
        report.bonus_xp_applied[month] = amount
        report.audit_log.append(f"BONUS: {month} misc XP {amount:+,d}")

    merged = replace(
        state,
        flights=sort_flights([*state.flights, *added]),
        miles_records=tuple(miles_by_month[month] for month in sorted(miles_by_month)),
        manual_ledger=dict(sorted(manual.items())),
        qualification_settings=settings,
    )
    logger.info(
        "Merged %s import: %d flights added, %d skipped, %d miles months replaced",
        source,
        report.flights_added,
        report.flights_skipped,
        len(report.miles_months_replaced),
    )
    return MergeResult(state=merged, report=report)
