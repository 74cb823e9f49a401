from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2

FLIGHT_KEYS = {
    "flightDate": "date",
    "earnedMiles": "earned_miles",
    "earnedXP": "earned_xp",
    "earnedXp": "earned_xp",
    "safXp": "saf_xp",
    "safXP": "saf_xp",
    "flightNumber": "flight_number",
    "ticketPrice": "ticket_price",
    "importSource": "import_source",
    "importedAt": "imported_at",
}

MILES_KEYS = {
    "milesSubscription": "miles_subscription",
    "milesCard": "miles_card",
    "milesAmex": "miles_card",
    "miles_amex": "miles_card",
    "milesFlight": "miles_flight",
    "milesOther": "miles_other",
    "milesDebit": "miles_debit",
    "milesCorrection": "miles_correction",
    "costSubscription": "cost_subscription",
    "costCard": "cost_card",
    "costAmex": "cost_card",
    "cost_amex": "cost_card",
    "costFlight": "cost_flight",
    "costOther": "cost_other",
}

MANUAL_KEYS = {
    "amexXp": "card_xp",
    "amex_xp": "card_xp",
    "cardXp": "card_xp",
    "bonusSafXp": "bonus_saf_xp",
    "miscXp": "misc_xp",
    "correctionXp": "correction_xp",
}

SETTINGS_KEYS = {
    "cycleStartMonth": "cycle_start_month",
    "cycleStartDate": "cycle_start_date",
    "startingStatus": "starting_status",
    "startingXP": "starting_xp",
    "startingXp": "starting_xp",
    "startingUXP": "starting_uxp",
    "startingUxp": "starting_uxp",
    "ultimateCycleType": "ultimate_cycle_type",
}

DOCUMENT_KEYS = {
    "monthlyMilesRecords": "monthly_miles_records",
    "baseMilesData": "monthly_miles_records",
    "pointsRecords": "points_records",
    "baseXpData": "points_records",
    "manualLedger": "manual_ledger",
    "qualificationSettings": "qualification_settings",
    "xpRollover": "rollover",
    "targetCPM": "target_value_per_point",
    "targetValuePerPoint": "target_value_per_point",
}


def rename_keys(record: dict[str, Any], mapping: dict[str, str]) -> dict[str, Any]:
    renamed: dict[str, Any] = {}
    for key, value in record.items():
        target = mapping.get(key, key)
        # Never let a legacy alias clobber a value already stored under the current name.
        if target != key and target in record:
            continue
        renamed[target] = value
    return renamed


def migrate_state_document_v1_to_v2(document: dict[str, Any]) -> dict[str, Any]:
    """
    Migrate a v1 (unversioned, camelCase) state document to v2.

    Changes:
    - Top-level keys move to snake_case (`xpRollover` becomes `rollover`).
    - Card miles and card XP lose their legacy `amex` naming.
    - Bumps schema_version to 2.
    """
    version = document.get("schema_version", 1)
    if version != 1:
        return document

    logger.warning("Migrating state document from schema version 1 to 2. Save the state again to persist it.")
    migrated = rename_keys(document, DOCUMENT_KEYS)
    migrated["flights"] = [
        rename_keys(flight, FLIGHT_KEYS) if isinstance(flight, dict) else flight
        for flight in migrated.get("flights", [])
    ]
    migrated["monthly_miles_records"] = [
        rename_keys(record, MILES_KEYS) if isinstance(record, dict) else record
        for record in migrated.get("monthly_miles_records", [])
    ]
    manual = migrated.get("manual_ledger", {})
    if isinstance(manual, dict):
        migrated["manual_ledger"] = {
            month: rename_keys(entry, MANUAL_KEYS) if isinstance(entry, dict) else entry
            for month, entry in manual.items()
        }
    settings = migrated.get("qualification_settings")
    if isinstance(settings, dict):
        migrated["qualification_settings"] = rename_keys(settings, SETTINGS_KEYS)
    target = migrated.get("target_value_per_point")
    if isinstance(target, (int, float)):
        migrated["target_value_per_point"] = str(target)

    migrated["schema_version"] = 2
    return migrated


def migrate_state_document(document: dict[str, Any]) -> dict[str, Any]:
    """
    Run all sequential migrations to bring a state document to the current schema version.
    """
    version = document.get("schema_version", 1)
    if version == 1:
        document = migrate_state_document_v1_to_v2(document)
        version = document.get("schema_version", 1)

    if version > CURRENT_SCHEMA_VERSION:
        logger.warning(f"State document schema version {version} is newer than supported ({CURRENT_SCHEMA_VERSION}).")

    return document
