#!/usr/bin/env python3
"""
Qualification cycle calculator.

Buckets the computed ledger and the manual ledger into fixed 12-month
qualification windows and walks them in order, carrying each cycle's ending
status and rollover into the next. Two counters run side by side: XP towards
Silver/Gold/Platinum and UXP towards the Ultimate layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Mapping

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import (
    STATUS_LEVELS,
    ULTIMATE,
    FlightRecord,
    ManualLedgerEntry,
    QualificationSettings,
    add_months,
    month_of,
    month_range,
    status_rank,
)
from loyalty_ledger.ledger import ComputedLedger


@dataclass(frozen=True)
class CycleMonth:
    month: str
    flight_xp: int
    saf_xp: int
    manual_xp: int
    correction_xp: int
    uxp: int
    earned: int
    balance: int
    status_after: str
    reset: bool = False


@dataclass(frozen=True)
class UltimateCycle:
    qualification_year: int
    start_month: str
    end_month: str
    starting_active: bool
    rollover_in: int
    uxp: int
    qualified: bool
    rollover_out: int

    @property
    def active(self) -> bool:
        return self.starting_active or self.qualified


@dataclass(frozen=True)
class QualificationCycle:
    qualification_year: int
    start_month: str
    end_month: str
    starting_status: str
    rollover_in: int
    points: int
    peak_points: int
    achieved_status: str
    actual_status: str
    ending_status: str
    rollover_out: int
    reset_occurred: bool
    is_current: bool
    is_complete: bool
    points_to_next: int
    months: tuple[CycleMonth, ...] = ()
    ultimate: UltimateCycle | None = None

    @property
    def display_status(self) -> str:
        if self.actual_status == "Platinum" and self.ultimate is not None and self.ultimate.active:
            return ULTIMATE
        return self.actual_status


@dataclass
class _MonthInputs:
    flight_xp: int = 0
    saf_xp: int = 0
    manual_xp: int = 0
    correction_xp: int = 0
    uxp: int = 0


@dataclass
class _Anchor:
    cutover_month: int
    first_year: int
    starting_status: str
    starting_points: int
    starting_uxp: int
    starting_ultimate: bool
    earliest_month: str | None = None
    inputs: dict[str, _MonthInputs] = field(default_factory=dict)


def qualification_year_for(month: str, cutover_month: int) -> int:
    """Calendar year in which the qualification window containing `month` ends."""
    year, mon = int(month[:4]), int(month[5:7])
    if cutover_month == 1:
        return year
    return year + 1 if mon >= cutover_month else year


def cycle_window(qualification_year: int, cutover_month: int) -> tuple[str, str]:
    if cutover_month == 1:
        start = f"{qualification_year:04d}-01"
    else:
        start = f"{qualification_year - 1:04d}-{cutover_month:02d}"
    return start, add_months(start, 11)


def normalize_ultimate_settings(settings: QualificationSettings, rules: ProgramRules) -> QualificationSettings:
    """An 'Ultimate' starting status is Platinum on the XP counter plus a qualifying UXP balance."""
    if settings.starting_status != ULTIMATE:
        return settings
    return replace(
        settings,
        starting_status="Platinum",
        starting_uxp=max(settings.starting_uxp, rules.ultimate_threshold),
    )


def collect_month_inputs(
    ledger: ComputedLedger,
    manual_ledger: Mapping[str, ManualLedgerEntry],
) -> dict[str, _MonthInputs]:
    inputs: dict[str, _MonthInputs] = {}
    for points in ledger.points:
        entry = inputs.setdefault(points.month, _MonthInputs())
        entry.flight_xp += points.flight_xp
        entry.saf_xp += points.saf_xp
        entry.uxp += points.uxp
    for month, manual in manual_ledger.items():
        entry = inputs.setdefault(month, _MonthInputs())
        entry.manual_xp += manual.card_xp + manual.bonus_saf_xp + manual.misc_xp
        entry.correction_xp += manual.correction_xp
    return inputs


def exclude_flights_before_start(
    inputs: dict[str, _MonthInputs],
    settings: QualificationSettings,
    flights: Iterable[FlightRecord],
) -> None:
    if not settings.cycle_start_date:
        return
    start_inputs = inputs.get(settings.cycle_start_month)
    if start_inputs is None:
        return
    for flight in flights:
        if flight.month == settings.cycle_start_month and flight.date < settings.cycle_start_date:
            start_inputs.flight_xp -= flight.earned_xp
            start_inputs.saf_xp -= flight.saf_xp
            start_inputs.uxp -= flight.uxp


def resolve_anchor(
    ledger: ComputedLedger,
    manual_ledger: Mapping[str, ManualLedgerEntry],
    rollover: int,
    settings: QualificationSettings | None,
    rules: ProgramRules,
    as_of_month: str,
    flights: Iterable[FlightRecord] | None,
) -> _Anchor:
    inputs = collect_month_inputs(ledger, manual_ledger)

    if settings is not None:
        settings = normalize_ultimate_settings(settings, rules)
        if flights is not None:
            exclude_flights_before_start(inputs, settings, flights)
        inputs = {month: value for month, value in inputs.items() if month >= settings.cycle_start_month}
        cutover = int(settings.cycle_start_month[5:7])
        return _Anchor(
            cutover_month=cutover,
            first_year=qualification_year_for(settings.cycle_start_month, cutover),
            starting_status=settings.starting_status if settings.starting_status in STATUS_LEVELS else "Explorer",
            starting_points=max(0, settings.starting_xp + rollover),
            starting_uxp=settings.starting_uxp,
            starting_ultimate=settings.starting_uxp >= rules.ultimate_threshold,
            earliest_month=settings.cycle_start_month,
            inputs=inputs,
        )

    cutover = rules.default_cycle_start_month
    earliest = min(inputs) if inputs else as_of_month
    return _Anchor(
        cutover_month=cutover,
        first_year=qualification_year_for(earliest, cutover),
        starting_status="Explorer",
        starting_points=max(0, rollover),
        starting_uxp=0,
        starting_ultimate=False,
        earliest_month=earliest,
        inputs=inputs,
    )


def status_after_soft_landing(starting_status: str, achieved_status: str, rules: ProgramRules) -> str:
    """Failing to requalify drops at most one level below the starting status."""
    if status_rank(achieved_status) >= status_rank(starting_status):
        return achieved_status
    if not rules.soft_landing:
        return achieved_status
    return STATUS_LEVELS[max(0, status_rank(starting_status) - 1)]


def rollover_for(status: str, points: int, rules: ProgramRules) -> int:
    if status_rank(status) == 0:
        return 0
    excess = max(0, points - rules.threshold_for(status))
    return min(excess, rules.max_rollover.get(status, 0))


def points_to_next_for(status: str, points: int, rules: ProgramRules) -> int:
    target = rules.next_status(status) or status
    return max(0, rules.threshold_for(target) - points)


def walk_xp_cycle(
    qualification_year: int,
    anchor: _Anchor,
    starting_status: str,
    rollover_in: int,
    as_of_month: str,
    rules: ProgramRules,
) -> QualificationCycle:
    start_month, end_month = cycle_window(qualification_year, anchor.cutover_month)
    balance = peak = rollover_in
    held = starting_status
    reset_occurred = False
    rows: list[CycleMonth] = []

    for month in month_range(start_month, end_month):
        data = anchor.inputs.get(month, _MonthInputs())
        earned = data.flight_xp + data.saf_xp + data.manual_xp + data.correction_xp
        balance = max(0, balance + earned)
        peak = max(peak, balance)
        reset = data.correction_xp < 0
        if reset:
            # An explicit reset re-evaluates the held status from the counter left over.
            reset_occurred = True
            held = rules.status_for_points(balance)
        else:
            reached = rules.status_for_points(balance)
            if status_rank(reached) > status_rank(held):
                held = reached
        rows.append(
            CycleMonth(
                month=month,
                flight_xp=data.flight_xp,
                saf_xp=data.saf_xp,
                manual_xp=data.manual_xp,
                correction_xp=data.correction_xp,
                uxp=data.uxp,
                earned=earned,
                balance=balance,
                status_after=held,
                reset=reset,
            )
        )

    achieved = rules.status_for_points(peak)
    if reset_occurred:
        ending = held
    else:
        ending = status_after_soft_landing(starting_status, achieved, rules)
    qualified_for_ending = reset_occurred or status_rank(achieved) >= status_rank(ending)
    rollover_out = rollover_for(ending, balance, rules) if qualified_for_ending else 0

    return QualificationCycle(
        qualification_year=qualification_year,
        start_month=start_month,
        end_month=end_month,
        starting_status=starting_status,
        rollover_in=rollover_in,
        points=balance,
        peak_points=peak,
        achieved_status=achieved,
        actual_status=held,
        ending_status=ending,
        rollover_out=rollover_out,
        reset_occurred=reset_occurred,
        is_current=start_month <= as_of_month <= end_month,
        is_complete=end_month < as_of_month,
        points_to_next=points_to_next_for(held, balance, rules),
        months=tuple(rows),
    )


def calculate_ultimate_cycles(
    anchor: _Anchor,
    first_year: int,
    last_year: int,
    cycle_type: str,
    rules: ProgramRules,
) -> dict[int, UltimateCycle]:
    cutover = 1 if cycle_type == "calendar" else anchor.cutover_month
    results: dict[int, UltimateCycle] = {}
    starting_active = anchor.starting_ultimate
    rollover_in = anchor.starting_uxp

    first_month, _ = cycle_window(first_year, anchor.cutover_month)
    year = qualification_year_for(first_month, cutover)
    while year <= last_year:
        start_month, end_month = cycle_window(year, cutover)
        earned = sum(
            anchor.inputs[month].uxp
            for month in month_range(start_month, end_month)
            if month in anchor.inputs
        )
        uxp = min(rules.uxp_yearly_cap, max(0, rollover_in + earned))
        qualified = uxp >= rules.ultimate_threshold
        rollover_out = min(rules.uxp_rollover_max, uxp - rules.ultimate_threshold) if qualified else 0
        results[year] = UltimateCycle(
            qualification_year=year,
            start_month=start_month,
            end_month=end_month,
            starting_active=starting_active,
            rollover_in=rollover_in,
            uxp=uxp,
            qualified=qualified,
            rollover_out=rollover_out,
        )
        starting_active = qualified
        rollover_in = rollover_out
        year += 1
    return results


def calculate_qualification_cycles(
    ledger: ComputedLedger,
    manual_ledger: Mapping[str, ManualLedgerEntry] | None = None,
    rollover: int = 0,
    settings: QualificationSettings | None = None,
    rules: ProgramRules = DEFAULT_RULES,
    as_of: date | None = None,
    flights: Iterable[FlightRecord] | None = None,
) -> list[QualificationCycle]:
    """
    Compute every qualification cycle from the anchor through the cycle
    containing the later of the last data month and `as_of`.

    Each cycle starts with the previous cycle's ending status and rollover.
    A cycle without any activity still reports the status it inherited.
    """
    as_of_month = month_of(as_of or date.today())
    anchor = resolve_anchor(
        ledger,
        manual_ledger or {},
        rollover,
        settings,
        rules,
        as_of_month,
        flights,
    )

    latest_month = max([as_of_month, *anchor.inputs.keys()])
    last_year = max(anchor.first_year, qualification_year_for(latest_month, anchor.cutover_month))
    cycle_type = settings.ultimate_cycle_type if settings is not None else "qualification"
    ultimate_by_year = calculate_ultimate_cycles(anchor, anchor.first_year, last_year, cycle_type, rules)

    cycles: list[QualificationCycle] = []
    starting_status = anchor.starting_status
    rollover_in = anchor.starting_points
    for year in range(anchor.first_year, last_year + 1):
        cycle = walk_xp_cycle(year, anchor, starting_status, rollover_in, as_of_month, rules)
        cycle = replace(cycle, ultimate=ultimate_by_year.get(year))
        cycles.append(cycle)
        starting_status = cycle.ending_status
        rollover_in = cycle.rollover_out
    return cycles


def current_cycle(cycles: list[QualificationCycle]) -> QualificationCycle | None:
    for cycle in cycles:
        if cycle.is_current:
            return cycle
    return cycles[-1] if cycles else None


def current_status(cycles: list[QualificationCycle], as_of: date | None = None) -> str:
    """Status held in the `as_of` month, counting only activity up to that month."""
    cycle = current_cycle(cycles)
    if cycle is None:
        return STATUS_LEVELS[0]
    as_of_month = month_of(as_of or date.today())
    held = cycle.starting_status
    for row in cycle.months:
        if row.month > as_of_month:
            break
        held = row.status_after
    if held == "Platinum" and cycle.ultimate is not None and cycle.ultimate.active:
        return ULTIMATE
    return held
