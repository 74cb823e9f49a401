"""
CLI Entry Point: loyalty-import

Imports an already-extracted statement (JSON) into the stored ledger, taking
a backup first, or restores that backup with --undo.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from loyalty_ledger.config import SessionConfig, load_program_rules
from loyalty_ledger.parsing import JsonStatementParser, ParseFailure
from loyalty_ledger.persistence import SaveStatus
from loyalty_ledger.session import LedgerSession
from loyalty_ledger.utils.console import ask_confirm, print_error, print_step, print_success, print_warning
from loyalty_ledger.utils.contracts import ContractError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a parsed loyalty statement, or undo the last import.")
    parser.add_argument("statement", nargs="?", type=Path, help="Statement JSON produced by the extractor.")
    parser.add_argument("--data-dir", type=Path, default=Path("data"), help="Directory holding the ledger tables.")
    parser.add_argument("--user", default="local", help="User id the ledger belongs to.")
    parser.add_argument("--source", default="pdf", help="Label recorded on imported flights (default: pdf).")
    parser.add_argument("--rules", type=Path, default=None, help="Optional program rules JSON.")
    parser.add_argument("--undo", action="store_true", help="Restore the state captured before the last import.")
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation before undoing.")
    parser.add_argument("--verbose", action="store_true", help="Log merge and storage details.")
    return parser


def open_session(args: argparse.Namespace) -> LedgerSession:
    try:
        rules = load_program_rules(args.rules)
    except (FileNotFoundError, ContractError, ValueError) as e:
        sys.exit(f"Invalid program rules: {e}")

    config = SessionConfig(user_id=args.user, data_dir=args.data_dir)
    try:
        return LedgerSession.open(config, rules=rules)
    except ContractError as e:
        sys.exit(f"Stored ledger is invalid: {e}")


def finish(session: LedgerSession) -> None:
    session.save()
    if session.scheduler is not None and session.scheduler.status == SaveStatus.FAILED:
        failed = ", ".join(session.scheduler.failed_tables)
        print_error(f"Saving failed for: {failed}", exit_code=1)


def run_undo(session: LedgerSession, assume_yes: bool) -> None:
    info = session.backup_info()
    if info is None:
        sys.exit("No import backup to undo.")

    if not assume_yes and not ask_confirm(
        f"Restore the {info.source} backup taken at {info.timestamp}?", default=True
    ):
        sys.exit("Undo cancelled.")

    result = session.undo_import()
    if not result.ok:
        sys.exit(result.error)
    finish(session)
    print_success(f"Restored ledger from backup taken at {info.timestamp}.")


def run_import(session: LedgerSession, statement: Path, source: str) -> None:
    print_step(f"Importing {statement}")
    outcome = JsonStatementParser(session.rules).parse(statement)
    if isinstance(outcome, ParseFailure):
        for detail in outcome.details:
            print_error(detail)
        sys.exit(f"Import failed ({outcome.code.value}): {outcome.message}")

    for anomaly in outcome.anomalies:
        print_warning(anomaly.message)

    result = session.import_statement(outcome, source=source)
    for line in result.report.audit_log:
        print(f"- {line}")
    finish(session)
    print_success(
        f"Imported {result.report.flights_added} flights "
        f"({result.report.flights_skipped} duplicates skipped). Current status: {session.current_status()}"
    )


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    if not args.undo and args.statement is None:
        sys.exit("Provide a statement JSON to import, or --undo.")

    session = open_session(args)
    if args.undo:
        run_undo(session, args.yes)
    else:
        if not args.statement.exists():
            sys.exit(f"Error: Statement file not found: {args.statement}")
        run_import(session, args.statement, args.source)


if __name__ == "__main__":
    main()
