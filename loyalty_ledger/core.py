#!/usr/bin/env python3

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

STATUS_LEVELS = ("Explorer", "Silver", "Gold", "Platinum")
ULTIMATE = "Ultimate"
CABINS = ("Economy", "Premium Economy", "Business", "First")
ULTIMATE_CYCLE_TYPES = ("qualification", "calendar")
ZERO_MONEY = Decimal("0.00")


@dataclass(frozen=True)
class FlightRecord:
    id: str
    date: str
    route: str
    airline: str
    cabin: str = "Economy"
    earned_miles: int = 0
    earned_xp: int = 0
    saf_xp: int = 0
    uxp: int = 0
    flight_number: str | None = None
    ticket_price: Decimal | None = None
    import_source: str = "manual"
    imported_at: str | None = None

    @property
    def month(self) -> str:
        return self.date[:7]

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.date, self.route)


@dataclass(frozen=True)
class MonthlyMilesRecord:
    month: str
    miles_subscription: int = 0
    miles_card: int = 0
    miles_flight: int = 0
    miles_other: int = 0
    miles_debit: int = 0
    miles_correction: int = 0
    cost_subscription: Decimal = ZERO_MONEY
    cost_card: Decimal = ZERO_MONEY
    cost_flight: Decimal = ZERO_MONEY
    cost_other: Decimal = ZERO_MONEY

    @property
    def id(self) -> str:
        return f"miles-{self.month}"

    @property
    def earned(self) -> int:
        return self.miles_subscription + self.miles_card + self.miles_flight + self.miles_other

    @property
    def cost(self) -> Decimal:
        return self.cost_subscription + self.cost_card + self.cost_flight + self.cost_other


@dataclass(frozen=True)
class MonthlyPointsRecord:
    month: str
    flight_xp: int = 0
    saf_xp: int = 0
    uxp: int = 0
    flight_count: int = 0


@dataclass(frozen=True)
class ManualLedgerEntry:
    card_xp: int = 0
    bonus_saf_xp: int = 0
    misc_xp: int = 0
    correction_xp: int = 0

    @property
    def total(self) -> int:
        return self.card_xp + self.bonus_saf_xp + self.misc_xp + self.correction_xp

    def is_empty(self) -> bool:
        return not (self.card_xp or self.bonus_saf_xp or self.misc_xp or self.correction_xp)


ManualLedger = Mapping[str, ManualLedgerEntry]


@dataclass(frozen=True)
class QualificationSettings:
    cycle_start_month: str
    starting_status: str = "Explorer"
    starting_xp: int = 0
    cycle_start_date: str | None = None
    starting_uxp: int = 0
    ultimate_cycle_type: str = "qualification"


@dataclass(frozen=True)
class MilesActivity:
    """Single non-flight line from a statement (card spend, subscription, redemption, ...)."""

    date: str
    type: str
    miles: int
    xp: int = 0
    description: str = ""

    @property
    def month(self) -> str:
        return self.date[:7]


@dataclass
class ParseAnomaly:
    code: str
    message: str
    severity: str = "warning"
    evidence: dict[str, Any] = field(default_factory=dict)


def as_int(value: Any) -> int:
    """Coerce a raw numeric field to int; missing, non-finite or unparsable values become 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return int(round(value))
    if isinstance(value, Decimal):
        if not value.is_finite():
            return 0
        return int(value.to_integral_value())
    text = str(value).strip().replace(",", "").replace(" ", "")
    if not text:
        return 0
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return 0
    if not parsed.is_finite():
        return 0
    return int(parsed.to_integral_value())


def as_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO_MONEY
    if isinstance(value, float) and not math.isfinite(value):
        return ZERO_MONEY
    try:
        parsed = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        return ZERO_MONEY
    if not parsed.is_finite():
        return ZERO_MONEY
    return parsed.quantize(Decimal("0.01"))


def as_float(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value.quantize(Decimal("0.01")))


def format_money(value: Decimal | None, currency: str = "EUR") -> str:
    if value is None:
        return "n/a"
    return f"{currency} {value.quantize(Decimal('0.01')):,.2f}"


def format_points(value: int) -> str:
    return f"{value:,}"


def is_valid_month(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    match = MONTH_RE.match(value)
    return bool(match) and 1 <= int(match.group(2)) <= 12


def parse_iso_date(value: Any) -> date | None:
    if not isinstance(value, str) or not ISO_DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def month_index(month: str) -> int:
    year, mon = month.split("-")
    return int(year) * 12 + int(mon) - 1


def month_from_index(index: int) -> str:
    year, mon = divmod(index, 12)
    return f"{year:04d}-{mon + 1:02d}"


def add_months(month: str, count: int) -> str:
    return month_from_index(month_index(month) + count)


def month_range(start: str, end: str) -> list[str]:
    return [month_from_index(idx) for idx in range(month_index(start), month_index(end) + 1)]


def month_of(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def status_rank(status: str) -> int:
    if status == ULTIMATE:
        return len(STATUS_LEVELS) - 1
    return STATUS_LEVELS.index(status) if status in STATUS_LEVELS else 0


def is_status(value: Any) -> bool:
    return value in STATUS_LEVELS or value == ULTIMATE
