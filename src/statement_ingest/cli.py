"""CLI entry point for statement_ingest package."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from statement_ingest.errors import OcrEngineError, StatementReadError
from statement_ingest.logging_handler import StatementLogHandler
from statement_ingest.merchant_rules import RuleOrdering, classify, load_rules
from statement_ingest.models import MerchantRule, ParsedTransaction, TransactionType
from statement_ingest.ocr_parser import TesseractEngine, parse_ocr_pdf
from statement_ingest.pdf_to_csv import CSV_HEADER, parse_pdf, write_csv
from statement_ingest.statement_range import infer_statement_date_range
from statement_ingest.validation import (
    analyze_rows,
    calculate_total,
    calculate_type_totals,
    find_duplicates,
    validate_types,
)

LOG_LEVEL_ENV = "STATEMENT_INGEST_LOG_LEVEL"

_LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    name = "DEBUG" if verbose else os.getenv(LOG_LEVEL_ENV, "INFO")
    level = getattr(logging, name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statement-ingest",
        description="Extract transactions from Argentine bank and card statements",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_text = sub.add_parser("pdf-to-csv", help="Parse a statement's text layer")
    p_text.add_argument("pdf", type=Path, help="Input PDF")
    p_text.add_argument("--out", type=Path, default=None, help="Output CSV path")
    p_text.add_argument(
        "--include-payments",
        action="store_true",
        help="Emit 'SU PAGO EN ...' lines as payment rows",
    )
    p_text.add_argument("--rules", type=Path, help="Merchant rules YAML")
    p_text.add_argument(
        "--debug-dir",
        type=Path,
        default=None,
        help="Write parse_debug.txt and parse_summary.txt to DIR",
    )

    p_ocr = sub.add_parser("ocr-to-csv", help="OCR a scanned Macro/Visa statement")
    p_ocr.add_argument("pdf", type=Path, help="Input PDF")
    p_ocr.add_argument("--out", type=Path, default=None, help="Output CSV path")
    p_ocr.add_argument("--lang", default="spa", help="Tesseract language")
    p_ocr.add_argument("--rules", type=Path, help="Merchant rules YAML")

    p_cls = sub.add_parser("classify", help="Suggest merchant and category")
    p_cls.add_argument("description", help="Raw transaction description")
    p_cls.add_argument("--rules", type=Path, required=True, help="Merchant rules YAML")
    p_cls.add_argument(
        "--ordering",
        choices=[o.value for o in RuleOrdering],
        default=RuleOrdering.PRIORITY_ASC.value,
        help="Rule ranking: 'live' (suggestions) or 'import' (bulk import)",
    )
    return parser


def _enriched_rows(
    rows: Sequence[ParsedTransaction], rules: Sequence[MerchantRule]
) -> List[dict]:
    out = []
    for row in rows:
        data = row.as_row()
        if rules and row.type is not TransactionType.PAYMENT:
            match = classify(row.description, rules, RuleOrdering.PRIORITY_DESC_LONGEST)
            data["merchant_name"] = match.merchant_name or ""
            data["category_id"] = match.category_id or ""
        out.append(data)
    return out


def _write_rows(
    rows: Sequence[ParsedTransaction],
    out: Optional[Path],
    rules: Sequence[MerchantRule],
) -> None:
    fieldnames = list(CSV_HEADER)
    if rules:
        fieldnames += ["merchant_name", "category_id"]
    data = _enriched_rows(rows, rules)
    if out:
        with out.open("w", newline="", encoding="utf-8") as fh:
            write_csv(data, fh, fieldnames)
        _LOGGER.info("CSV written → %s", out)
    else:
        write_csv(data, sys.stdout, fieldnames)


def _check_rows(
    rows: Sequence[ParsedTransaction], handler: Optional[StatementLogHandler]
) -> None:
    as_dicts = [r.as_row() for r in rows]
    for desc, idx in find_duplicates(as_dicts):
        _LOGGER.warning("Row %d looks like a duplicate: %s", idx, desc)
    _LOGGER.info("Total amount: %s", calculate_total(as_dicts))
    if handler is None:
        return
    for entry in validate_types(as_dicts):
        handler.log_error("INVALID_TYPE", f"Unknown transaction type at row {entry}")
    handler.log_debug("metrics", analyze_rows(as_dicts))
    handler.log_debug("totals", calculate_type_totals(as_dicts))


def _cmd_pdf_to_csv(args: argparse.Namespace) -> int:
    if not args.pdf.exists():
        print(f"PDF file not found: {args.pdf}", file=sys.stderr)
        return 1
    rules = load_rules(args.rules) if args.rules else []
    handler = StatementLogHandler(args.debug_dir) if args.debug_dir else None

    rows = parse_pdf(args.pdf, args.include_payments, handler)
    _check_rows(rows, handler)
    if handler is not None:
        summary = handler.write_summary()
        _LOGGER.info("Diagnostics written → %s", summary)

    _write_rows(rows, args.out, rules)
    return 0


def _cmd_ocr_to_csv(args: argparse.Namespace) -> int:
    if not args.pdf.exists():
        print(f"PDF file not found: {args.pdf}", file=sys.stderr)
        return 1
    rules = load_rules(args.rules) if args.rules else []

    with TesseractEngine(lang=args.lang) as engine:
        result = parse_ocr_pdf(args.pdf, engine)

    _check_rows(result.transactions, None)
    period = infer_statement_date_range(result.meta)
    if period:
        _LOGGER.info("Statement period %s → %s", *period)
    _write_rows(result.transactions, args.out, rules)
    return 0


def _cmd_classify(args: argparse.Namespace) -> int:
    rules = load_rules(args.rules)
    match = classify(args.description, rules, RuleOrdering(args.ordering))
    print(f"merchant_name={match.merchant_name or ''}")
    print(f"category_id={match.category_id or ''}")
    print(f"rule_id={match.rule_id or ''}")
    return 0


_COMMANDS = {
    "pdf-to-csv": _cmd_pdf_to_csv,
    "ocr-to-csv": _cmd_ocr_to_csv,
    "classify": _cmd_classify,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return _COMMANDS[args.command](args)
    except (StatementReadError, OcrEngineError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def main_cli() -> None:
    """Console script entry point."""
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    main_cli()
