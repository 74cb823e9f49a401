#!/usr/bin/env python3
"""
Transaction normalizer.

Turns raw parsed flight, miles-record and activity dicts into the canonical
record shapes of `loyalty_ledger.core`. Bad numeric input is coerced to zero
and undatable records are dropped with an anomaly; nothing here raises on
malformed input.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import (
    CABINS,
    STATUS_LEVELS,
    ULTIMATE,
    ULTIMATE_CYCLE_TYPES,
    FlightRecord,
    MilesActivity,
    MonthlyMilesRecord,
    ParseAnomaly,
    QualificationSettings,
    as_decimal,
    as_int,
    is_valid_month,
    parse_iso_date,
)

logger = logging.getLogger(__name__)

ROUTE_SPLIT_RE = re.compile(r"\s*[-–—>/]\s*")
SURPLUS_XP_RE = re.compile(r"surplus[\s-]?xp", re.IGNORECASE)

ACTIVITY_BUCKETS = {
    "subscription": "miles_subscription",
    "card": "miles_card",
    "card_bonus": "miles_card",
    "amex": "miles_card",
    "amex_bonus": "miles_card",
    "redemption": "miles_debit",
    "expiry": "miles_debit",
    "transfer_out": "miles_debit",
    "donation": "miles_debit",
}

# Legacy statement exports label card miles after the issuing bank.
LEGACY_MILES_FIELDS = {
    "miles_amex": "miles_card",
    "cost_amex": "cost_card",
}


@dataclass(frozen=True)
class PointCorrection:
    month: str
    amount: int
    reason: str = ""


@dataclass(frozen=True)
class ImportBatch:
    flights: tuple[FlightRecord, ...] = ()
    miles_records: tuple[MonthlyMilesRecord, ...] = ()
    point_correction: PointCorrection | None = None
    cycle_settings: QualificationSettings | None = None
    bonus_points_by_month: dict[str, int] = field(default_factory=dict)
    anomalies: tuple[ParseAnomaly, ...] = ()

    def is_empty(self) -> bool:
        return not (
            self.flights
            or self.miles_records
            or self.point_correction
            or self.cycle_settings
            or self.bonus_points_by_month
        )


def pick(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins; statement payloads mix camelCase and snake_case."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def normalize_route(route: Any) -> str:
    if not isinstance(route, str):
        return ""
    parts = [part.replace(" ", "").upper() for part in ROUTE_SPLIT_RE.split(route.strip()) if part.strip()]
    return "-".join(parts)


def normalize_airline(airline: Any) -> str:
    if not isinstance(airline, str):
        return ""
    return " ".join(airline.split()).upper()


def normalize_cabin(cabin: Any) -> str:
    if isinstance(cabin, str):
        for known in CABINS:
            if cabin.strip().lower() == known.lower():
                return known
    return "Economy"


def flight_id_for(flight_date: str, route: str, airline: str) -> str:
    digest = hashlib.sha1(f"{flight_date}|{route}|{airline}".encode("utf-8")).hexdigest()[:8]
    return f"flight-{flight_date}-{route or 'UNKNOWN'}-{digest}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def normalize_flight(
    raw: Mapping[str, Any],
    rules: ProgramRules = DEFAULT_RULES,
    anomalies: list[ParseAnomaly] | None = None,
) -> FlightRecord | None:
    raw_date = pick(raw, "date", "flightDate", "flight_date")
    parsed_date = parse_iso_date(raw_date)
    if parsed_date is None:
        if anomalies is not None:
            anomalies.append(
                ParseAnomaly(
                    code="flight_missing_date",
                    message=f"Dropped flight without a valid date: {raw_date!r}",
                    evidence=dict(raw),
                )
            )
        return None

    flight_date = parsed_date.isoformat()
    route = normalize_route(pick(raw, "route", default=""))
    airline = normalize_airline(pick(raw, "airline", default=""))
    uxp = max(0, as_int(pick(raw, "uxp")))
    if uxp and not rules.is_uxp_eligible(airline):
        if anomalies is not None:
            anomalies.append(
                ParseAnomaly(
                    code="uxp_ineligible_carrier",
                    message=f"Ignored {uxp} UXP on {flight_date} {route}: {airline or 'unknown carrier'} earns no UXP.",
                )
            )
        uxp = 0

    ticket_price = pick(raw, "ticket_price", "ticketPrice")
    return FlightRecord(
        id=str(pick(raw, "id", default="") or flight_id_for(flight_date, route, airline)),
        date=flight_date,
        route=route,
        airline=airline,
        cabin=normalize_cabin(pick(raw, "cabin")),
        earned_miles=as_int(pick(raw, "earned_miles", "earnedMiles")),
        earned_xp=as_int(pick(raw, "earned_xp", "earnedXP", "earnedXp")),
        saf_xp=as_int(pick(raw, "saf_xp", "safXp", "safXP")),
        uxp=uxp,
        flight_number=pick(raw, "flight_number", "flightNumber"),
        ticket_price=as_decimal(ticket_price) if ticket_price is not None else None,
        import_source=str(pick(raw, "import_source", "importSource", default="manual")),
        imported_at=pick(raw, "imported_at", "importedAt"),
    )


def normalize_miles_record(
    raw: Mapping[str, Any],
    anomalies: list[ParseAnomaly] | None = None,
) -> MonthlyMilesRecord | None:
    month = pick(raw, "month")
    if not is_valid_month(month):
        if anomalies is not None:
            anomalies.append(
                ParseAnomaly(
                    code="miles_record_invalid_month",
                    message=f"Dropped miles record with invalid month: {month!r}",
                    evidence=dict(raw),
                )
            )
        return None

    values = dict(raw)
    for legacy, current in LEGACY_MILES_FIELDS.items():
        if legacy in values and current not in values:
            values[current] = values[legacy]

    # miles_flight and cost_flight are derived from flights by the rebuilder.
    return MonthlyMilesRecord(
        month=month,
        miles_subscription=as_int(values.get("miles_subscription")),
        miles_card=as_int(values.get("miles_card")),
        miles_other=as_int(values.get("miles_other")),
        miles_debit=abs(as_int(values.get("miles_debit"))),
        miles_correction=as_int(values.get("miles_correction")),
        cost_subscription=as_decimal(values.get("cost_subscription")),
        cost_card=as_decimal(values.get("cost_card")),
        cost_other=as_decimal(values.get("cost_other")),
    )


def normalize_activity(
    raw: Mapping[str, Any],
    anomalies: list[ParseAnomaly] | None = None,
) -> MilesActivity | None:
    parsed_date = parse_iso_date(pick(raw, "date"))
    if parsed_date is None:
        if anomalies is not None:
            anomalies.append(
                ParseAnomaly(
                    code="activity_missing_date",
                    message=f"Dropped activity without a valid date: {pick(raw, 'description', default='')!r}",
                    evidence=dict(raw),
                )
            )
        return None

    activity_type = str(pick(raw, "type", default="other")).strip().lower() or "other"
    miles = as_int(pick(raw, "miles"))
    # A positive transfer_out is an incoming transfer mislabelled by the statement.
    if activity_type == "transfer_out" and miles > 0:
        activity_type = "transfer_in"
    return MilesActivity(
        date=parsed_date.isoformat(),
        type=activity_type,
        miles=miles,
        xp=as_int(pick(raw, "xp")),
        description=str(pick(raw, "description", default="")),
    )


def aggregate_activities(activities: Iterable[MilesActivity]) -> list[MonthlyMilesRecord]:
    """Fold activity lines into one miles record per month, newest month first."""
    buckets: dict[str, dict[str, int]] = {}
    for activity in activities:
        if activity.miles == 0:
            continue
        bucket = buckets.setdefault(activity.month, {})
        if activity.miles < 0:
            target = "miles_debit"
        else:
            target = ACTIVITY_BUCKETS.get(activity.type, "miles_other")
        bucket[target] = bucket.get(target, 0) + abs(activity.miles)

    records = [MonthlyMilesRecord(month=month, **fields) for month, fields in buckets.items()]
    records.sort(key=lambda record: record.month, reverse=True)
    return records


def extract_bonus_points_by_month(
    activities: Iterable[MilesActivity],
    settings: QualificationSettings | None = None,
) -> dict[str, int]:
    bonus: dict[str, int] = {}
    for activity in activities:
        if activity.xp <= 0:
            continue
        if SURPLUS_XP_RE.search(activity.description):
            continue
        if settings is not None and activity.month < settings.cycle_start_month:
            continue
        bonus[activity.month] = bonus.get(activity.month, 0) + activity.xp
    return dict(sorted(bonus.items()))


def normalize_settings(raw: Mapping[str, Any] | None) -> QualificationSettings | None:
    if not isinstance(raw, Mapping) or not raw:
        return None
    cycle_start_month = pick(raw, "cycle_start_month", "cycleStartMonth")
    if not is_valid_month(cycle_start_month):
        return None

    status = pick(raw, "starting_status", "startingStatus", default="Explorer")
    if status not in STATUS_LEVELS and status != ULTIMATE:
        status = "Explorer"
    cycle_start_date = pick(raw, "cycle_start_date", "cycleStartDate")
    if parse_iso_date(cycle_start_date) is None or not str(cycle_start_date).startswith(cycle_start_month):
        cycle_start_date = None
    cycle_type = pick(raw, "ultimate_cycle_type", "ultimateCycleType", default="qualification")
    if cycle_type not in ULTIMATE_CYCLE_TYPES:
        cycle_type = "qualification"

    return QualificationSettings(
        cycle_start_month=cycle_start_month,
        starting_status=status,
        starting_xp=max(0, as_int(pick(raw, "starting_xp", "startingXP", "startingXp"))),
        cycle_start_date=cycle_start_date,
        starting_uxp=max(0, as_int(pick(raw, "starting_uxp", "startingUXP", "startingUxp"))),
        ultimate_cycle_type=cycle_type,
    )


def records_of(payload: Mapping[str, Any], anomalies: list[ParseAnomaly], *keys: str) -> list[Mapping[str, Any]]:
    records = []
    for raw in pick(payload, *keys, default=[]):
        if isinstance(raw, Mapping):
            records.append(raw)
        else:
            anomalies.append(ParseAnomaly(code="malformed_record", message=f"Skipped non-object {keys[0]} entry: {raw!r}"))
    return records


def normalize_batch(
    payload: Mapping[str, Any],
    rules: ProgramRules = DEFAULT_RULES,
) -> tuple[ImportBatch, list[ParseAnomaly]]:
    anomalies: list[ParseAnomaly] = []

    flights = []
    for raw in records_of(payload, anomalies, "flights"):
        flight = normalize_flight(raw, rules=rules, anomalies=anomalies)
        if flight is not None:
            flights.append(flight)

    miles_records: dict[str, MonthlyMilesRecord] = {}
    for raw in records_of(payload, anomalies, "monthly_miles_records", "monthlyMilesRecords"):
        record = normalize_miles_record(raw, anomalies=anomalies)
        if record is None:
            continue
        if record.month in miles_records:
            anomalies.append(
                ParseAnomaly(
                    code="duplicate_miles_month",
                    message=f"Statement lists {record.month} twice; keeping the later record.",
                )
            )
        miles_records[record.month] = record

    activities = []
    for raw in records_of(payload, anomalies, "activities"):
        activity = normalize_activity(raw, anomalies=anomalies)
        if activity is not None:
            activities.append(activity)

    settings = normalize_settings(pick(payload, "cycle_settings", "cycleSettings"))

    # Activity lines only fill months the statement did not already summarise.
    for record in aggregate_activities(activities):
        miles_records.setdefault(record.month, record)

    bonus: dict[str, int] = {}
    raw_bonus = pick(payload, "bonus_points_by_month", "bonusPointsByMonth", default={})
    if not isinstance(raw_bonus, Mapping):
        raw_bonus = {}
    for month, amount in raw_bonus.items():
        if not is_valid_month(month):
            anomalies.append(ParseAnomaly(code="bonus_invalid_month", message=f"Ignored bonus points for {month!r}"))
            continue
        bonus[month] = bonus.get(month, 0) + as_int(amount)
    # Pre-cycle months are filtered at merge time against the settings actually in effect.
    for month, amount in extract_bonus_points_by_month(activities).items():
        bonus[month] = bonus.get(month, 0) + amount

    correction = None
    raw_correction = pick(payload, "point_correction", "pointCorrection")
    if isinstance(raw_correction, Mapping) and raw_correction:
        month = pick(raw_correction, "month")
        if is_valid_month(month):
            correction = PointCorrection(
                month=month,
                amount=as_int(pick(raw_correction, "amount", "correctionXp")),
                reason=str(pick(raw_correction, "reason", default="")),
            )
        else:
            anomalies.append(
                ParseAnomaly(code="correction_invalid_month", message=f"Ignored point correction for {month!r}")
            )

    for anomaly in anomalies:
        logger.warning("Normalizer anomaly %s: %s", anomaly.code, anomaly.message)

    batch = ImportBatch(
        flights=tuple(flights),
        miles_records=tuple(sorted(miles_records.values(), key=lambda r: r.month, reverse=True)),
        point_correction=correction,
        cycle_settings=settings,
        bonus_points_by_month=dict(sorted(bonus.items())),
        anomalies=tuple(anomalies),
    )
    return batch, anomalies
