from decimal import Decimal

from loyalty_ledger.core import ManualLedgerEntry, MonthlyMilesRecord, QualificationSettings
from loyalty_ledger.state import (
    FLIGHTS_TABLE,
    MANUAL_TABLE,
    MILES_TABLE,
    PROFILE_TABLE,
    TABLES,
    LedgerState,
    add_flight,
    remove_flight,
    set_manual_entry,
    set_preferences,
    set_qualification_settings,
    set_rollover,
    start_over,
    update_flight,
    upsert_miles_record,
)


def test_add_flight_normalizes_and_rejects_duplicates():
    state = LedgerState()
    result = add_flight(state, {"date": "2025-03-10", "route": "ams-jfk", "airline": "KL", "earnedXP": 40})

    assert result.ok
    assert result.changed_tables == (FLIGHTS_TABLE,)
    assert result.state.flights[0].route == "AMS-JFK"
    assert state.flights == ()

    again = add_flight(result.state, {"date": "2025-03-10", "route": "AMS-JFK"})
    assert not again.ok
    assert "already exists" in again.error
    assert again.state is result.state


def test_add_flight_requires_date_and_route():
    assert not add_flight(LedgerState(), {"route": "AMS-JFK"}).ok
    assert not add_flight(LedgerState(), {"date": "2025-03-10"}).ok


def test_update_flight(make_flight):
    flight = make_flight("2025-03-10", earned_xp=40)
    state = LedgerState(flights=(flight,))

    result = update_flight(state, flight.id, {"earned_xp": 60, "cabin": "Business"})

    assert result.ok
    updated = result.state.flights[0]
    assert updated.id == flight.id
    assert updated.earned_xp == 60
    assert updated.cabin == "Business"
    assert not update_flight(state, "missing", {"earned_xp": 1}).ok


def test_update_flight_cannot_collide_with_another(make_flight):
    first = make_flight("2025-03-10")
    second = make_flight("2025-03-12", route="JFK-AMS")
    state = LedgerState(flights=(second, first))

    result = update_flight(state, second.id, {"date": "2025-03-10", "route": "AMS-JFK"})

    assert not result.ok


def test_remove_flight(make_flight):
    flight = make_flight("2025-03-10")
    result = remove_flight(LedgerState(flights=(flight,)), flight.id)
    assert result.ok
    assert result.state.flights == ()
    assert not remove_flight(result.state, flight.id).ok


def test_removing_last_flight_of_month_clears_flight_miles(make_flight):
    flight = make_flight("2025-03-10", earned_miles=6000)
    state = LedgerState(flights=(flight,), miles_records=(MonthlyMilesRecord(month="2025-03", miles_subscription=1000),))
    assert state.computed_ledger().miles_for("2025-03").miles_flight == 6000

    result = remove_flight(state, flight.id)

    march = result.state.computed_ledger().miles_for("2025-03")
    assert march.miles_flight == 0
    assert march.miles_subscription == 1000


def test_upsert_miles_record_rejects_flight_fields():
    state = LedgerState()
    refused = upsert_miles_record(state, {"month": "2025-03", "miles_flight": 500})
    assert not refused.ok
    assert "derived" in refused.error

    result = upsert_miles_record(state, {"month": "2025-03", "miles_card": 500, "cost_card": "3.50"})
    assert result.ok
    assert result.changed_tables == (MILES_TABLE,)
    assert result.state.miles_records[0].cost_card == Decimal("3.50")

    replaced = upsert_miles_record(result.state, {"month": "2025-03", "miles_subscription": 1000})
    assert len(replaced.state.miles_records) == 1
    assert replaced.state.miles_records[0].miles_card == 0

    assert not upsert_miles_record(state, {"month": "March"}).ok


def test_set_manual_entry_accepts_mapping_and_removes_empty():
    result = set_manual_entry(LedgerState(), "2025-04", {"amexXp": 25, "correction_xp": -10})
    assert result.ok
    assert result.changed_tables == (MANUAL_TABLE,)
    assert result.state.manual_ledger["2025-04"] == ManualLedgerEntry(card_xp=25, correction_xp=-10)

    cleared = set_manual_entry(result.state, "2025-04", ManualLedgerEntry())
    assert cleared.state.manual_ledger == {}

    assert not set_manual_entry(LedgerState(), "2025/04", {}).ok


def test_explicit_settings_replace_stored_settings():
    stored = LedgerState(qualification_settings=QualificationSettings(cycle_start_month="2024-11"))

    result = set_qualification_settings(stored, {"cycleStartMonth": "2025-01", "startingStatus": "Gold"})

    assert result.ok
    assert result.changed_tables == (PROFILE_TABLE,)
    assert result.state.qualification_settings.cycle_start_month == "2025-01"
    assert not set_qualification_settings(stored, {"cycleStartMonth": "soon"}).ok


def test_rollover_and_preferences():
    assert not set_rollover(LedgerState(), -1).ok
    assert set_rollover(LedgerState(), 40).state.rollover == 40

    prefs = set_preferences(LedgerState(), currency="usd", target_value_per_point=Decimal("0.015"))
    assert prefs.state.currency == "USD"
    assert prefs.state.target_value_per_point == Decimal("0.015")
    assert not set_preferences(LedgerState(), target_value_per_point=Decimal("-1")).ok


def test_start_over_keeps_preferences(imported_state):
    state = set_preferences(imported_state, currency="USD").state

    result = start_over(state)

    assert result.changed_tables == TABLES
    assert result.state.flights == ()
    assert result.state.miles_records == ()
    assert result.state.manual_ledger == {}
    assert result.state.qualification_settings is None
    assert result.state.currency == "USD"
