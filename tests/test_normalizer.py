from decimal import Decimal

from loyalty_ledger.core import MilesActivity, QualificationSettings
from loyalty_ledger.normalizer import (
    aggregate_activities,
    extract_bonus_points_by_month,
    normalize_activity,
    normalize_batch,
    normalize_flight,
    normalize_miles_record,
    normalize_settings,
)


def test_normalize_flight_canonical_shape():
    anomalies = []
    flight = normalize_flight(
        {
            "date": "2025-03-10",
            "route": "ams - jfk",
            "airline": " kl ",
            "cabin": "business",
            "earnedMiles": "6,000",
            "earnedXP": 40,
            "uxp": 40,
            "ticketPrice": "899.5",
        },
        anomalies=anomalies,
    )
    assert flight is not None
    assert flight.route == "AMS-JFK"
    assert flight.airline == "KL"
    assert flight.cabin == "Business"
    assert flight.earned_miles == 6000
    assert flight.earned_xp == 40
    assert flight.saf_xp == 0
    assert flight.uxp == 40
    assert flight.ticket_price == Decimal("899.50")
    assert flight.id.startswith("flight-2025-03-10-AMS-JFK-")
    assert anomalies == []


def test_normalize_flight_id_is_deterministic():
    raw = {"date": "2025-03-10", "route": "AMS-JFK", "airline": "KL"}
    assert normalize_flight(raw).id == normalize_flight(dict(raw)).id


def test_normalize_flight_zeroes_uxp_for_other_carriers():
    anomalies = []
    flight = normalize_flight(
        {"date": "2025-03-10", "route": "AMS-ATL", "airline": "DL", "earned_xp": 30, "uxp": 30},
        anomalies=anomalies,
    )
    assert flight.uxp == 0
    assert [a.code for a in anomalies] == ["uxp_ineligible_carrier"]


def test_normalize_flight_non_finite_numbers_become_zero():
    flight = normalize_flight(
        {"date": "2025-03-10", "route": "AMS-JFK", "earned_miles": float("nan"), "earned_xp": "Infinity"}
    )
    assert flight.earned_miles == 0
    assert flight.earned_xp == 0


def test_normalize_flight_without_date_is_dropped_with_anomaly():
    anomalies = []
    assert normalize_flight({"route": "AMS-JFK", "earned_xp": 10}, anomalies=anomalies) is None
    assert normalize_flight({"date": "2025-02-30", "route": "AMS-JFK"}, anomalies=anomalies) is None
    assert [a.code for a in anomalies] == ["flight_missing_date", "flight_missing_date"]


def test_normalize_miles_record_legacy_card_fields_and_flight_cost():
    record = normalize_miles_record(
        {"month": "2025-04", "miles_amex": 1800, "cost_amex": "12.00", "cost_flight": 99, "miles_flight": 5000, "miles_debit": -500}
    )
    assert record.miles_card == 1800
    assert record.cost_card == Decimal("12.00")
    assert record.cost_flight == Decimal("0.00")
    assert record.miles_flight == 0
    assert record.miles_debit == 500


def test_normalize_miles_record_invalid_month():
    anomalies = []
    assert normalize_miles_record({"month": "April"}, anomalies=anomalies) is None
    assert anomalies[0].code == "miles_record_invalid_month"


def test_positive_transfer_out_becomes_transfer_in():
    activity = normalize_activity({"date": "2025-02-01", "type": "transfer_out", "miles": 2000})
    assert activity.type == "transfer_in"


def test_aggregate_activities_routes_buckets():
    activities = [
        MilesActivity(date="2025-02-01", type="subscription", miles=1000),
        MilesActivity(date="2025-02-03", type="card", miles=250),
        MilesActivity(date="2025-02-04", type="amex_bonus", miles=50),
        MilesActivity(date="2025-02-10", type="redemption", miles=-4000),
        MilesActivity(date="2025-02-11", type="transfer_in", miles=300),
        MilesActivity(date="2025-03-01", type="card", miles=100),
        MilesActivity(date="2025-03-02", type="card", miles=0),
    ]
    records = aggregate_activities(activities)
    assert [r.month for r in records] == ["2025-03", "2025-02"]
    feb = records[1]
    assert feb.miles_subscription == 1000
    assert feb.miles_card == 300
    assert feb.miles_debit == 4000
    assert feb.miles_other == 300
    assert feb.miles_flight == 0


def test_extract_bonus_points_skips_surplus_and_pre_cycle_months():
    settings = QualificationSettings(cycle_start_month="2024-11")
    activities = [
        MilesActivity(date="2024-10-15", type="card_bonus", miles=0, xp=50, description="Welcome XP"),
        MilesActivity(date="2024-11-02", type="other", miles=0, xp=40, description="Surplus XP from last year"),
        MilesActivity(date="2024-11-05", type="card_bonus", miles=500, xp=20, description="Card XP"),
        MilesActivity(date="2024-11-20", type="other", miles=0, xp=5, description="Promo"),
        MilesActivity(date="2024-12-01", type="redemption", miles=-1000, xp=0, description="Reward ticket"),
    ]
    assert extract_bonus_points_by_month(activities, settings) == {"2024-11": 25}


def test_normalize_settings_defaults_invalid_values():
    settings = normalize_settings(
        {"cycleStartMonth": "2024-11", "startingStatus": "Diamond", "startingXP": -5, "ultimateCycleType": "weekly"}
    )
    assert settings == QualificationSettings(cycle_start_month="2024-11")
    assert normalize_settings({"cycleStartMonth": "11/2024"}) is None
    assert normalize_settings(None) is None


def test_normalize_settings_drops_start_date_outside_start_month():
    settings = normalize_settings({"cycle_start_month": "2024-11", "cycle_start_date": "2024-12-03"})
    assert settings.cycle_start_date is None


def test_normalize_batch_from_statement(statement_payload):
    batch, anomalies = normalize_batch(statement_payload)

    assert len(batch.flights) == 4
    assert [r.month for r in batch.miles_records] == ["2025-06", "2025-04", "2025-03"]
    june = batch.miles_records[0]
    assert june.miles_subscription == 1000
    assert june.miles_card == 500
    assert batch.bonus_points_by_month == {"2025-06": 20}
    assert batch.point_correction.month == "2025-04"
    assert batch.point_correction.amount == 10
    assert batch.cycle_settings.starting_status == "Silver"
    assert batch.cycle_settings.starting_xp == 20
    assert anomalies == list(batch.anomalies)


def test_normalize_batch_statement_month_beats_activity_lines():
    payload = {
        "monthly_miles_records": [{"month": "2025-02", "miles_card": 999}],
        "activities": [{"date": "2025-02-10", "type": "card", "miles": 5}],
    }
    batch, _ = normalize_batch(payload)
    assert len(batch.miles_records) == 1
    assert batch.miles_records[0].miles_card == 999


def test_normalize_batch_skips_malformed_entries():
    batch, anomalies = normalize_batch({"flights": ["not a flight", {"date": "2025-01-05", "route": "AMS-CDG"}]})
    assert len(batch.flights) == 1
    assert "malformed_record" in [a.code for a in anomalies]
