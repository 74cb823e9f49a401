#!/usr/bin/env python3
"""
Generates deterministic statement and state fixtures for E2E testing.
"""

import json
import sys
from pathlib import Path
from typing import Any

from loyalty_ledger.merge import merge_import
from loyalty_ledger.normalizer import normalize_batch
from loyalty_ledger.serialization import state_to_document
from loyalty_ledger.state import LedgerState


def sample_statement_payload() -> dict[str, Any]:
    """A statement export in the camelCase shape extraction services return."""
    return {
        "flights": [
            {
                "date": "2025-03-10",
                "route": "AMS-JFK",
                "airline": "KL",
                "cabin": "Business",
                "flightNumber": "KL641",
                "earnedMiles": 6000,
                "earnedXP": 40,
                "safXp": 0,
                "uxp": 40,
            },
            {
                "date": "2025-03-20",
                "route": "JFK-AMS",
                "airline": "KL",
                "cabin": "Business",
                "flightNumber": "KL642",
                "earnedMiles": 6000,
                "earnedXP": 40,
                "uxp": 40,
            },
            {
                "date": "2025-05-02",
                "route": "CDG-NCE",
                "airline": "AF",
                "earnedMiles": 500,
                "earnedXP": 5,
                "uxp": 5,
            },
            {
                "date": "2025-06-14",
                "route": "AMS-LHR",
                "airline": "DL",
                "earnedMiles": 400,
                "earnedXP": 5,
            },
        ],
        "monthlyMilesRecords": [
            {"month": "2025-03", "miles_subscription": 1000, "cost_subscription": 25.0, "miles_card": 2300},
            {"month": "2025-04", "miles_amex": 1800, "cost_amex": 0, "miles_debit": 12000},
        ],
        "activities": [
            {"date": "2025-06-03", "type": "subscription", "miles": 1000, "xp": 0, "description": "Miles Complete"},
            {"date": "2025-06-12", "type": "card_bonus", "miles": 500, "xp": 20, "description": "Card welcome XP"},
            {"date": "2025-06-30", "type": "other", "miles": 0, "xp": 15, "description": "Surplus XP rollover"},
        ],
        "cycleSettings": {
            "cycleStartMonth": "2024-11",
            "startingStatus": "Silver",
            "startingXP": 20,
        },
        "pointCorrection": {"month": "2025-04", "amount": 10, "reason": "Missing XP claim"},
    }


def sample_state() -> LedgerState:
    """State after importing the sample statement once into an empty ledger."""
    batch, _ = normalize_batch(sample_statement_payload())
    result = merge_import(LedgerState(), batch, source="fixture", now="2025-07-01T00:00:00+00:00")
    return result.state


def legacy_state_document() -> dict[str, Any]:
    """An unversioned, camelCase state document as older exports stored it."""
    return {
        "flights": [
            {
                "id": "legacy-1",
                "date": "2024-12-05",
                "route": "AMS-CDG",
                "airline": "AF",
                "earnedMiles": 800,
                "earnedXP": 8,
                "safXp": 2,
                "uxp": 8,
            }
        ],
        "baseMilesData": [{"month": "2024-12", "milesAmex": 1500, "costAmex": 0, "milesDebit": 0}],
        "manualLedger": {"2024-12": {"amexXp": 30, "miscXp": 5, "correctionXp": 0}},
        "qualificationSettings": {
            "cycleStartMonth": "2024-11",
            "startingStatus": "Gold",
            "startingXP": 0,
        },
        "xpRollover": 15,
        "targetCPM": 0.015,
        "currency": "EUR",
    }


def write_fixtures(output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs = {
        "statement.json": sample_statement_payload(),
        "state.json": state_to_document(sample_state()),
        "legacy_state.json": legacy_state_document(),
    }
    written = []
    for name, payload in outputs.items():
        path = output_dir / name
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        written.append(path)
    return written


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("tests/fixtures")
    for path in write_fixtures(target):
        print(f"Generated fixture: {path}")
