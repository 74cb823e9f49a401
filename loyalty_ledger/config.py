"""
Program rules and session configuration.

Rules default to the Flying Blue programme. A JSON rules file may override any
subset of them; it is validated against `schemas/program_rules.json` first.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from loyalty_ledger.core import STATUS_LEVELS
from loyalty_ledger.utils.contracts import validate_output


@dataclass(frozen=True)
class ProgramRules:
    status_thresholds: dict[str, int] = field(
        default_factory=lambda: {"Silver": 100, "Gold": 180, "Platinum": 300}
    )
    max_rollover: dict[str, int] = field(
        default_factory=lambda: {"Explorer": 0, "Silver": 50, "Gold": 80, "Platinum": 100}
    )
    ultimate_threshold: int = 900
    uxp_yearly_cap: int = 1800
    uxp_rollover_max: int = 900
    uxp_eligible_airlines: tuple[str, ...] = ("KL", "AF", "KLM", "AIR FRANCE", "AIRFRANCE")
    default_cycle_start_month: int = 11
    soft_landing: bool = True

    def threshold_for(self, status: str) -> int:
        return self.status_thresholds.get(status, 0)

    def status_for_points(self, points: int) -> str:
        achieved = STATUS_LEVELS[0]
        for status in STATUS_LEVELS[1:]:
            if points >= self.threshold_for(status):
                achieved = status
        return achieved

    def next_status(self, status: str) -> str | None:
        if status not in STATUS_LEVELS:
            return None
        idx = STATUS_LEVELS.index(status)
        return STATUS_LEVELS[idx + 1] if idx + 1 < len(STATUS_LEVELS) else None

    def is_uxp_eligible(self, airline: str) -> bool:
        return airline.strip().upper() in self.uxp_eligible_airlines


DEFAULT_RULES = ProgramRules()


def load_program_rules(path: Path | None = None) -> ProgramRules:
    if path is None:
        return DEFAULT_RULES
    if not path.exists():
        raise FileNotFoundError(f"Program rules file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        payload: dict[str, Any] = json.load(handle)
    return program_rules_from_dict(payload)


def program_rules_from_dict(payload: dict[str, Any]) -> ProgramRules:
    validate_output(payload, "program_rules", mode="STRICT")

    overrides: dict[str, Any] = {}
    if "status_thresholds" in payload:
        overrides["status_thresholds"] = {**DEFAULT_RULES.status_thresholds, **payload["status_thresholds"]}
    if "max_rollover" in payload:
        overrides["max_rollover"] = {**DEFAULT_RULES.max_rollover, **payload["max_rollover"]}
    if "uxp_eligible_airlines" in payload:
        overrides["uxp_eligible_airlines"] = tuple(code.upper() for code in payload["uxp_eligible_airlines"])
    for key in (
        "ultimate_threshold",
        "uxp_yearly_cap",
        "uxp_rollover_max",
        "default_cycle_start_month",
        "soft_landing",
    ):
        if key in payload:
            overrides[key] = payload[key]

    rules = replace(DEFAULT_RULES, **overrides)
    thresholds = [rules.threshold_for(status) for status in STATUS_LEVELS[1:]]
    if thresholds != sorted(thresholds):
        raise ValueError(f"Status thresholds must be ascending: {rules.status_thresholds}")
    return rules


@dataclass(frozen=True)
class SessionConfig:
    user_id: str = "local"
    data_dir: Path = Path("data")
    snapshot_dir: Path | None = None
    debounce_seconds: float = 2.0

    @property
    def effective_snapshot_dir(self) -> Path:
        return self.snapshot_dir or self.data_dir

    @property
    def snapshot_key(self) -> str:
        return f"{self.user_id}_import_backup"
