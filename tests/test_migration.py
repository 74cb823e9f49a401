from decimal import Decimal

from loyalty_ledger.core import ManualLedgerEntry
from loyalty_ledger.serialization import state_from_document, state_to_document
from loyalty_ledger.testing.fixtures import legacy_state_document
from loyalty_ledger.utils.migration import CURRENT_SCHEMA_VERSION, migrate_state_document


def test_legacy_document_is_migrated():
    migrated = migrate_state_document(legacy_state_document())

    assert migrated["schema_version"] == CURRENT_SCHEMA_VERSION
    assert migrated["rollover"] == 15
    assert migrated["monthly_miles_records"][0]["miles_card"] == 1500
    assert migrated["manual_ledger"]["2024-12"]["card_xp"] == 30
    assert migrated["qualification_settings"]["starting_status"] == "Gold"
    assert migrated["flights"][0]["earned_xp"] == 8
    assert "xpRollover" not in migrated


def test_current_document_is_untouched(imported_state):
    document = state_to_document(imported_state)
    assert migrate_state_document(dict(document)) == document


def test_legacy_alias_does_not_clobber_current_key():
    migrated = migrate_state_document(
        {"flights": [], "monthlyMilesRecords": [], "manual_ledger": {}, "rollover": 5, "xpRollover": 99}
    )
    assert migrated["rollover"] == 5


def test_legacy_document_loads_as_state(caplog):
    state = state_from_document(legacy_state_document())

    assert state.rollover == 15
    assert state.target_value_per_point == Decimal("0.015")
    assert state.flights[0].saf_xp == 2
    assert state.flights[0].uxp == 8
    assert state.miles_records[0].miles_card == 1500
    assert state.manual_ledger["2024-12"] == ManualLedgerEntry(card_xp=30, misc_xp=5)
    assert state.qualification_settings.starting_status == "Gold"
    assert "Migrating state document" in caplog.text
