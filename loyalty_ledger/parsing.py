#!/usr/bin/env python3
"""
Parser boundary.

Text extraction from statements happens elsewhere; whatever does it hands us
structured JSON. Everything crossing this boundary comes back as either an
`ImportBatch` or a `ParseFailure`, never an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.normalizer import ImportBatch, normalize_batch
from loyalty_ledger.utils.contracts import contract_errors

logger = logging.getLogger(__name__)


class ParseErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EXTRACTION_ERROR = "EXTRACTION_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclass(frozen=True)
class ParseFailure:
    code: ParseErrorCode
    message: str
    details: list[str] = field(default_factory=list)


class RateLimitError(Exception):
    """Raised by remote parsers when the extraction service throttles us."""


class StatementParser(Protocol):
    def parse(self, source: Any) -> ImportBatch | ParseFailure: ...


def failure_from_exception(exc: BaseException) -> ParseFailure:
    if isinstance(exc, RateLimitError):
        code = ParseErrorCode.RATE_LIMIT
    elif isinstance(exc, TimeoutError):
        code = ParseErrorCode.TIMEOUT
    elif isinstance(exc, ConnectionError):
        code = ParseErrorCode.NETWORK_ERROR
    else:
        code = ParseErrorCode.EXTRACTION_ERROR
    return ParseFailure(code=code, message=str(exc) or exc.__class__.__name__)


def parse_statement_payload(payload: Any, rules: ProgramRules = DEFAULT_RULES) -> ImportBatch | ParseFailure:
    if not isinstance(payload, dict):
        return ParseFailure(ParseErrorCode.VALIDATION_ERROR, "Statement payload must be a JSON object.")

    errors = contract_errors(payload, "statement_batch")
    if errors:
        logger.warning("Statement payload rejected: %d schema violations", len(errors))
        return ParseFailure(ParseErrorCode.VALIDATION_ERROR, "Statement payload failed validation.", errors)

    batch, _ = normalize_batch(payload, rules=rules)
    if batch.is_empty():
        return ParseFailure(
            ParseErrorCode.VALIDATION_ERROR,
            "Statement contains no usable flights, miles records, corrections or settings.",
            [f"{a.code}: {a.message}" for a in batch.anomalies],
        )
    return batch


class JsonStatementParser:
    """Reads an already-extracted statement from a JSON file."""

    def __init__(self, rules: ProgramRules = DEFAULT_RULES) -> None:
        self.rules = rules

    def parse(self, source: Any) -> ImportBatch | ParseFailure:
        path = Path(source)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            return ParseFailure(ParseErrorCode.EXTRACTION_ERROR, f"Statement file not found: {path}")
        except json.JSONDecodeError as e:
            return ParseFailure(ParseErrorCode.EXTRACTION_ERROR, f"Statement file is not valid JSON: {e}")
        except OSError as e:
            return failure_from_exception(e)
        return parse_statement_payload(payload, rules=self.rules)
