"""Validation helper utilities for parsed statement CSV rows.

Rows are the dicts written by :func:`statement_ingest.pdf_to_csv.write_csv`
(or read back with ``csv.DictReader(fh, delimiter=";")``).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from statement_ingest.models import TransactionType
from statement_ingest.normalize import strip_accents

__all__ = [
    "calculate_total",
    "calculate_type_totals",
    "find_duplicates",
    "validate_types",
    "analyze_rows",
]

_ALLOWED_TYPES = {t.value for t in TransactionType}


def calculate_total(rows: Iterable[Dict]) -> Decimal:
    """Sum ``amount`` values for *rows*."""
    total = Decimal("0.00")
    for row in rows:
        total += Decimal(str(row["amount"]))
    return total


def calculate_type_totals(rows: Iterable[Dict]) -> Dict[str, Decimal]:
    """Totals per transaction type plus the overall ``total``."""
    totals = {t: Decimal("0.00") for t in sorted(_ALLOWED_TYPES)}
    totals["total"] = Decimal("0.00")
    for row in rows:
        amount = Decimal(str(row.get("amount") or "0"))
        totals["total"] += amount
        tx_type = row.get("type", "")
        if tx_type in totals:
            totals[tx_type] += amount
    return totals


def _row_key(row: Dict) -> str:
    desc = strip_accents(str(row.get("description", ""))).lower().strip()[:40]
    amount = Decimal(str(row.get("amount") or "0"))
    return f"{row.get('date', '')}|{row.get('receipt') or ''}|{amount:.2f}|{desc}"


def find_duplicates(rows: Iterable[Dict]) -> List[Tuple[str, int]]:
    """Identify repeated rows by date, receipt, amount and description."""
    seen: Dict[str, int] = {}
    duplicates: List[Tuple[str, int]] = []
    for idx, row in enumerate(rows, 1):
        key = _row_key(row)
        if key in seen:
            duplicates.append((row.get("description", ""), idx))
        else:
            seen[key] = idx
    return duplicates


def validate_types(rows: Iterable[Dict]) -> List[str]:
    """Return a list of ``"index: type"`` for unknown transaction types."""
    invalid: List[str] = []
    for idx, row in enumerate(rows, 1):
        tx_type = row.get("type", "")
        if tx_type not in _ALLOWED_TYPES:
            invalid.append(f"{idx}: {tx_type}")
    return invalid


def analyze_rows(rows: Iterable[Dict]) -> Dict[str, Any]:
    """Return basic metrics like row count and type distribution."""
    metrics: Dict[str, Any] = {"total_rows": 0, "types": {}, "installments": 0}
    for row in rows:
        metrics["total_rows"] += 1
        tx_type = row.get("type", "")
        metrics["types"][tx_type] = metrics["types"].get(tx_type, 0) + 1
        if row.get("installment_number"):
            metrics["installments"] += 1
    return metrics
