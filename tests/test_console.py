from unittest.mock import patch

import pytest

from loyalty_ledger.utils import console


def test_print_helpers_write_to_console(capsys):
    console.print_step("Importing")
    console.print_success("done")
    console.print_warning("careful")
    console.print_table("Cycles", ["Year", "Status"], [["2025", "Silver"]])
    console.print_table("Empty", ["Year", "Status"], [])

    out = capsys.readouterr().out
    assert "Importing" in out
    assert "SUCCESS:" in out
    assert "WARNING:" in out
    assert "Silver" in out
    assert "(no data)" in out


def test_print_error_exits_with_code():
    with pytest.raises(SystemExit) as excinfo:
        console.print_error("boom", exit_code=3)
    assert excinfo.value.code == 3


def test_ask_confirm_uses_default_when_not_interactive():
    with patch("loyalty_ledger.utils.console.is_interactive", return_value=False):
        assert console.ask_confirm("Proceed?", default=True) is True
        assert console.ask_confirm("Proceed?") is False
