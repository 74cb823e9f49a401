import pytest
from datetime import date
from typing import Any

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import FlightRecord, MonthlyMilesRecord
from loyalty_ledger.normalizer import ImportBatch, normalize_batch
from loyalty_ledger.snapshots import MemoryBlobStorage, SnapshotStore
from loyalty_ledger.state import LedgerState
from loyalty_ledger.testing.fixtures import sample_state, sample_statement_payload


@pytest.fixture
def rules() -> ProgramRules:
    return DEFAULT_RULES


@pytest.fixture
def as_of() -> date:
    """Mid-cycle evaluation date used across qualification tests."""
    return date(2025, 7, 1)


@pytest.fixture
def statement_payload() -> dict[str, Any]:
    return sample_statement_payload()


@pytest.fixture
def sample_batch(statement_payload: dict[str, Any]) -> ImportBatch:
    batch, _ = normalize_batch(statement_payload)
    return batch


@pytest.fixture
def imported_state() -> LedgerState:
    return sample_state()


@pytest.fixture
def snapshot_store() -> SnapshotStore:
    return SnapshotStore(MemoryBlobStorage())


@pytest.fixture
def make_flight():
    """Factory for flights with sensible defaults."""

    def _make(flight_date: str, route: str = "AMS-JFK", **overrides: Any) -> FlightRecord:
        values: dict[str, Any] = {
            "id": f"f-{flight_date}-{route}",
            "date": flight_date,
            "route": route,
            "airline": "KL",
            "earned_miles": 1000,
            "earned_xp": 10,
        }
        values.update(overrides)
        return FlightRecord(**values)

    return _make


@pytest.fixture
def march_batch(make_flight) -> ImportBatch:
    """One AMS-JFK flight plus a subscription month, as in the reference example."""
    return ImportBatch(
        flights=(make_flight("2025-03-10", earned_miles=6000, earned_xp=40),),
        miles_records=(MonthlyMilesRecord(month="2025-03", miles_subscription=1000),),
    )
