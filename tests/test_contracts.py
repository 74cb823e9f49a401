import json

import pytest

from loyalty_ledger.config import DEFAULT_RULES, SessionConfig, load_program_rules, program_rules_from_dict
from loyalty_ledger.serialization import state_to_document
from loyalty_ledger.utils.contracts import ContractError, contract_errors, validate_output


def test_state_document_contract(imported_state):
    document = state_to_document(imported_state)
    validate_output(document, "state_document")
    assert contract_errors(document, "state_document") == []


def test_state_document_rejects_bad_month(imported_state):
    document = state_to_document(imported_state)
    document["monthly_miles_records"][0]["month"] = "2025-13"

    with pytest.raises(ContractError):
        validate_output(document, "state_document")
    assert contract_errors(document, "state_document")[0].startswith("monthly_miles_records/0/month:")


def test_review_mode_only_warns(caplog):
    validate_output({"schema_version": 2}, "state_document", mode="REVIEW")
    assert "Data Contract Violation (state_document)" in caplog.text


def test_missing_schema_raises_contract_error():
    with pytest.raises(ContractError):
        validate_output({}, "no_such_schema")


def test_default_rules():
    assert DEFAULT_RULES.status_for_points(99) == "Explorer"
    assert DEFAULT_RULES.status_for_points(180) == "Gold"
    assert DEFAULT_RULES.status_for_points(5000) == "Platinum"
    assert DEFAULT_RULES.next_status("Platinum") is None
    assert DEFAULT_RULES.is_uxp_eligible("air france")
    assert not DEFAULT_RULES.is_uxp_eligible("DL")
    assert load_program_rules(None) is DEFAULT_RULES


def test_rules_file_overrides(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps({"status_thresholds": {"Silver": 120}, "soft_landing": False, "uxp_eligible_airlines": ["kl"]}),
        encoding="utf-8",
    )

    rules = load_program_rules(path)

    assert rules.threshold_for("Silver") == 120
    assert rules.threshold_for("Gold") == 180
    assert rules.soft_landing is False
    assert rules.uxp_eligible_airlines == ("KL",)


def test_rules_must_ascend_and_match_schema(tmp_path):
    with pytest.raises(ValueError):
        program_rules_from_dict({"status_thresholds": {"Silver": 200, "Gold": 150}})
    with pytest.raises(ContractError):
        program_rules_from_dict({"double_xp": True})
    with pytest.raises(FileNotFoundError):
        load_program_rules(tmp_path / "missing.json")


def test_session_config_paths(tmp_path):
    config = SessionConfig(user_id="bob", data_dir=tmp_path)
    assert config.effective_snapshot_dir == tmp_path
    assert config.snapshot_key == "bob_import_backup"
