"""
PDF → CSV extractor for Argentine credit-card statements (text layer).

The PDF text is flattened by pdfplumber, regrouped into one *logical line*
per transaction (a line starts at a ``DD-MM-YY`` token, following physical
lines are continuations) and every logical line goes through a single
configurable line parser. Lines that do not look like a transaction are
dropped without error.

CLI
---
statement-ingest pdf-to-csv input.pdf [--out output.csv]
"""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Final, Iterable, Iterator, List, Optional, Sequence, TextIO

from statement_ingest.errors import StatementReadError
from statement_ingest.logging_handler import StatementLogHandler
from statement_ingest.models import ParsedTransaction
from statement_ingest.normalize import normalize_spaces, parse_money_ar, to_iso_date
from statement_ingest.transaction_type import infer_type

# ===== PARSING RULES =====

PARSING_RULES = {
    "payment_markers": ["SU PAGO EN"],
    "trailing_markers": ["TOTAL", "SALDO", "RESUMEN", "VENCIMIENTO", "PAGO M[IÍ]NIMO"],
    "stamp_duty_keywords": [r"IMPUESTOS?\s+DE\s+SELLOS?", "SELLOS", "SELLO"],
    "currency_debris": [r"U\$S", "USD", r"\$", "€"],
    "receipt_digits": 6,
    "max_installments": 99,
}

# ===== CORE REGEX PATTERNS =====

# 12.03.24, 12-03-2024, 12/03/24 anywhere in the line
RE_DATE_IN_LINE: Final = re.compile(
    r"(?<!\d)(\d{2})[.\-/](\d{2})[.\-/](\d{4}|\d{2})(?!\d)"
)

# 0,00 / 1.234,56 / 123.456,78 with an optional leading or trailing sign
RE_AMOUNT: Final = re.compile(r"(?<![\d.,])-?\d{1,3}(?:\.\d{3})*,\d{2}-?(?![\d,])")

# "14/18", "C.05/12" or "C 05/12"
RE_INSTALLMENT: Final = re.compile(
    r"(?<![\d/.,])(?:\bC\.?\s*)?(\d{1,2})\s*/\s*(\d{1,2})(?![\d/])", re.I
)

RE_RECEIPT: Final = re.compile(
    r"^\s*(\d{%d})\b" % PARSING_RULES["receipt_digits"]
)

RE_LEADING_MARKER: Final = re.compile(r"^\s*(?:\*|K(?=\s))\s*")

RE_PAYMENT_LINE: Final = re.compile(
    "|".join(PARSING_RULES["payment_markers"]), re.I
)

RE_TRAILING_TOTAL: Final = re.compile(
    r"\b(?:%s)\b" % "|".join(PARSING_RULES["trailing_markers"]), re.I
)

RE_STAMP_DUTY: Final = re.compile(
    "|".join(PARSING_RULES["stamp_duty_keywords"]), re.I
)

RE_CURRENCY_DEBRIS: Final = re.compile(
    "|".join(PARSING_RULES["currency_debris"]), re.I
)

RE_NOT_INSTALLMENT_DESC: Final = re.compile(r"[^A-Za-zÁÉÍÓÚÜÑáéíóúüñ0-9&* +]")

RE_LETTER: Final = re.compile(r"[A-Za-zÁÉÍÓÚÜÑáéíóúüñ]")


class AmountPolicy(str, Enum):
    """Which amount token of a segment is the transaction amount."""

    FIRST_AFTER_MARKER = "first_after_marker"
    LAST_IN_LINE = "last_in_line"


@dataclass(frozen=True)
class LineFormat:
    """One statement sub-format understood by :func:`parse_statement_line`.

    Installment lines print the per-period amount right after the
    ``NN/NN`` marker and the receipt, followed by informational figures, so
    they use ``installment_policy``; everything else uses ``plain_policy``.
    """

    name: str
    installment_aware: bool = True
    installment_policy: AmountPolicy = AmountPolicy.FIRST_AFTER_MARKER
    plain_policy: AmountPolicy = AmountPolicy.LAST_IN_LINE
    strip_leading_marker: bool = True
    skip_payments: bool = True
    required_keyword: Optional[re.Pattern] = None


CONSUMPTION_FORMAT: Final = LineFormat(name="consumption")

# Stamp duty lines lack the "*"/"K" marker and never carry installments.
STAMP_DUTY_FORMAT: Final = LineFormat(
    name="stamp_duty",
    installment_aware=False,
    strip_leading_marker=False,
    skip_payments=False,
    required_keyword=RE_STAMP_DUTY,
)

DEFAULT_FORMATS: Final = (CONSUMPTION_FORMAT, STAMP_DUTY_FORMAT)

CSV_HEADER = [
    "date",
    "description",
    "amount",
    "amount_usd",
    "receipt",
    "installment_number",
    "installments_total",
    "type",
]

_LOGGER = logging.getLogger(__name__)


# ───────────────────────── text helpers ─────────────────────
def normalize_text(text: str) -> str:
    """Unify newlines and collapse runs of spaces/tabs/NBSP."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    return re.sub(r"[ \t]+", " ", text).strip()


def segment_lines(text: str) -> List[str]:
    """Rebuild one logical line per transaction from extracted text.

    A physical line holding a short date opens a new logical line; any other
    line is appended to the open one. Text before the first date is dropped.
    """

    logical: List[str] = []
    current: Optional[str] = None
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if RE_DATE_IN_LINE.search(line):
            if current is not None:
                logical.append(current)
            current = line
        elif current is not None:
            current = f"{current} {line}"
    if current is not None:
        logical.append(current)
    return logical


def strip_trailing_totals(rest: str) -> str:
    """Cut the line at the first TOTAL/SALDO/VENCIMIENTO-like marker."""
    match = RE_TRAILING_TOTAL.search(rest)
    if not match:
        return rest
    return rest[: match.start()].strip()


def _select_amount(segment: str, policy: AmountPolicy) -> re.Match | None:
    matches = list(RE_AMOUNT.finditer(segment))
    if not matches:
        return None
    if policy is AmountPolicy.FIRST_AFTER_MARKER:
        return matches[0]
    return matches[-1]


def _find_installment(rest: str) -> re.Match | None:
    for match in RE_INSTALLMENT.finditer(rest):
        number, total = int(match.group(1)), int(match.group(2))
        if 1 <= number <= total <= PARSING_RULES["max_installments"]:
            return match
    return None


def _clean_description(text: str, strict: bool = False) -> str:
    # currency markers go first: the strict filter would split "U$S" into "U S"
    text = RE_CURRENCY_DEBRIS.sub(" ", text)
    if strict:
        text = RE_NOT_INSTALLMENT_DESC.sub(" ", text)
    return normalize_spaces(text)


# ───────────────────────── line parser ──────────────────────
def parse_statement_line(
    line: str, fmt: LineFormat = CONSUMPTION_FORMAT
) -> ParsedTransaction | None:
    """Return a parsed transaction or ``None`` for non-matches.

    Every rejection is silent: missing or invalid date, nothing after the
    date, payment acknowledgements (when ``fmt.skip_payments``), no amount,
    or a description without letters.
    """

    line = line.strip()
    date_match = RE_DATE_IN_LINE.search(line)
    if not date_match:
        return None

    post_date = to_iso_date(*date_match.groups())
    if post_date is None:
        return None

    rest = line[date_match.end() :].strip()
    if not rest:
        return None

    if fmt.required_keyword is not None and not fmt.required_keyword.search(rest):
        return None
    if fmt.skip_payments and RE_PAYMENT_LINE.search(rest):
        return None
    if fmt.strip_leading_marker:
        rest = RE_LEADING_MARKER.sub("", rest, count=1)

    rest = strip_trailing_totals(rest)
    if not rest:
        return None

    inst_seq = inst_tot = None
    receipt = None
    quota = _find_installment(rest) if fmt.installment_aware else None

    if quota:
        inst_seq, inst_tot = int(quota.group(1)), int(quota.group(2))
        after = rest[quota.end() :].strip()
        receipt_match = RE_RECEIPT.match(after)
        if receipt_match:
            receipt = receipt_match.group(1)
            after = after[receipt_match.end() :].strip()
        amount_match = _select_amount(after, fmt.installment_policy)
        if amount_match is None:
            return None
        desc = _clean_description(rest[: quota.start()], strict=True)
    else:
        amount_match = _select_amount(rest, fmt.plain_policy)
        if amount_match is None:
            return None
        desc = _clean_description(
            rest[: amount_match.start()] + " " + rest[amount_match.end() :]
        )

    if not RE_LETTER.search(desc):
        return None

    amount = parse_money_ar(amount_match.group())
    if amount is None:
        return None

    return ParsedTransaction(
        date=post_date,
        description=desc,
        amount=abs(amount),
        installment_number=inst_seq,
        installments_total=inst_tot,
        receipt=receipt,
        type=infer_type(desc),
        raw_line=line,
    )


def parse_logical_line(
    line: str, formats: Sequence[LineFormat] = DEFAULT_FORMATS
) -> ParsedTransaction | None:
    """Try each format in order and return the first match."""
    for fmt in formats:
        row = parse_statement_line(line, fmt)
        if row is not None:
            return row
    return None


def statement_formats(include_payments: bool = False) -> tuple[LineFormat, ...]:
    if not include_payments:
        return DEFAULT_FORMATS
    return (replace(CONSUMPTION_FORMAT, skip_payments=False), STAMP_DUTY_FORMAT)


def parse_text(
    text: str,
    include_payments: bool = False,
    log_handler: StatementLogHandler | None = None,
) -> List[ParsedTransaction]:
    """Parse flattened statement text, preserving source order."""
    formats = statement_formats(include_payments)
    rows: List[ParsedTransaction] = []
    logical_lines = segment_lines(normalize_text(text))
    for idx, logical in enumerate(logical_lines, 1):
        row = parse_logical_line(logical, formats)
        if row is None:
            _LOGGER.debug("Skipped logical line %d: %s", idx, logical)
            if log_handler is not None:
                log_handler.log_warning(
                    "UNMATCHED_LINE",
                    "Not a transaction line",
                    line_number=idx,
                    line_content=logical,
                )
            continue
        rows.append(row)

    if log_handler is not None:
        log_handler.log_debug(
            "text_parse",
            {"logical_lines": len(logical_lines), "transactions": len(rows)},
        )
    return rows


def parse_lines(
    lines: Iterable[str],
    include_payments: bool = False,
    log_handler: StatementLogHandler | None = None,
) -> List[ParsedTransaction]:
    """Convert raw physical lines into transactions."""
    return parse_text("\n".join(lines), include_payments, log_handler)


# ───────────────────────── PDF access ───────────────────────
def _import_pdfplumber():
    try:
        import pdfplumber  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "pdfplumber is required to parse PDFs; install via 'pip install pdfplumber'"
        ) from exc
    return pdfplumber


def open_pdf(source: Path | str | bytes):
    """Open *source* with pdfplumber or raise :class:`StatementReadError`."""
    pdfplumber = _import_pdfplumber()
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise StatementReadError("Empty PDF document")
        target = io.BytesIO(bytes(source))
        name = "<bytes>"
    else:
        target = str(source)
        name = Path(source).name
    try:
        return pdfplumber.open(target)
    except Exception as exc:
        raise StatementReadError(f"Could not read PDF {name}: {exc}") from exc


def iter_pdf_lines(source: Path | str | bytes) -> Iterator[str]:
    """Yield each non-empty line of the PDF text layer."""
    with open_pdf(source) as pdf:
        for idx, page in enumerate(pdf.pages, 1):
            try:
                text = page.extract_text()
            except Exception as exc:
                raise StatementReadError(
                    f"Could not extract text from page {idx}: {exc}"
                ) from exc
            if text is None:
                _LOGGER.warning("Page %d has no extractable text – skipped", idx)
                continue
            for line in text.splitlines():
                line = line.rstrip()
                if line:
                    yield line


def parse_pdf(
    source: Path | str | bytes,
    include_payments: bool = False,
    log_handler: StatementLogHandler | None = None,
) -> List[ParsedTransaction]:
    """Parse a statement PDF given as a path or raw bytes.

    Raises
    ------
    StatementReadError
        If the document is empty or cannot be read. A readable PDF without
        recognisable transactions returns an empty list.
    """

    lines = list(iter_pdf_lines(source))
    rows = parse_lines(lines, include_payments, log_handler)
    _LOGGER.info("Parsed %d transactions from %d lines", len(rows), len(lines))
    return rows


def write_csv(
    rows: Iterable[dict], out_fh: TextIO, fieldnames: Sequence[str] = CSV_HEADER
) -> None:
    writer = csv.DictWriter(
        out_fh,
        fieldnames=list(fieldnames),
        delimiter=";",
        extrasaction="ignore",
        lineterminator="\n",
    )
    writer.writeheader()
    writer.writerows(rows)


__all__ = [
    "PARSING_RULES",
    "AmountPolicy",
    "LineFormat",
    "CONSUMPTION_FORMAT",
    "STAMP_DUTY_FORMAT",
    "DEFAULT_FORMATS",
    "CSV_HEADER",
    "normalize_text",
    "segment_lines",
    "strip_trailing_totals",
    "parse_statement_line",
    "parse_logical_line",
    "statement_formats",
    "parse_text",
    "parse_lines",
    "open_pdf",
    "iter_pdf_lines",
    "parse_pdf",
    "write_csv",
]
