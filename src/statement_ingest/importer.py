"""Hand parsed statement rows to storage.

Storage is an external collaborator reached through :class:`TransactionSink`;
this module only shapes the records and classifies them with the import
rule ordering.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from statement_ingest.merchant_rules import RuleOrdering, classify
from statement_ingest.models import MerchantRule, ParsedTransaction, TransactionType

__all__ = [
    "TransactionSink",
    "ImportResult",
    "build_import_records",
    "import_rows",
    "file_sha256",
]

_LOGGER = logging.getLogger(__name__)


class TransactionSink(Protocol):
    def insert(self, records: List[Dict[str, Any]]) -> int:
        """Persist *records* and return how many were stored."""
        ...


@dataclass(frozen=True)
class ImportResult:
    imported: int


def build_import_records(
    rows: Iterable[ParsedTransaction],
    account_id: str,
    rules: Sequence[MerchantRule] = (),
    ordering: RuleOrdering = RuleOrdering.PRIORITY_DESC_LONGEST,
    fallback_type: Optional[TransactionType] = None,
) -> List[Dict[str, Any]]:
    """Build one storage record per row.

    Payment rows carry no merchant or category. Other rows take the matching
    rule's merchant or, without one, the raw description. *fallback_type*
    replaces the inferred ``expense`` default when given.
    """

    records = []
    for row in rows:
        tx_type = row.type
        if fallback_type is not None and tx_type is TransactionType.EXPENSE:
            tx_type = TransactionType(fallback_type)

        if tx_type is TransactionType.PAYMENT:
            merchant, category = None, None
        else:
            match = classify(row.description, rules, ordering)
            merchant = match.merchant_name or row.description
            category = match.category_id

        records.append(
            {
                "account_id": account_id,
                "date": row.date,
                "description": row.description,
                "merchant_name": merchant,
                "category_id": category,
                "amount": abs(row.amount),
                "type": tx_type.value,
                "receipt": row.receipt,
                "installment_number": row.installment_number,
                "installments_total": row.installments_total,
            }
        )
    return records


def import_rows(
    sink: TransactionSink,
    rows: Sequence[ParsedTransaction],
    account_id: str,
    rules: Sequence[MerchantRule] = (),
    ordering: RuleOrdering = RuleOrdering.PRIORITY_DESC_LONGEST,
    fallback_type: Optional[TransactionType] = None,
) -> ImportResult:
    """Classify *rows* and insert them through *sink*.

    Raises
    ------
    ValueError
        If *account_id* is empty.
    """

    if not account_id:
        raise ValueError("account_id is required")
    if not rows:
        _LOGGER.info("Nothing to import for account %s", account_id)
        return ImportResult(imported=0)

    records = build_import_records(rows, account_id, rules, ordering, fallback_type)
    imported = sink.insert(records)
    _LOGGER.info("Imported %d of %d rows into %s", imported, len(records), account_id)
    return ImportResult(imported=imported)


def file_sha256(data: bytes) -> str:
    """Hex digest identifying an uploaded statement file."""
    return hashlib.sha256(data).hexdigest()
