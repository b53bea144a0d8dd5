"""Coarse transaction type inferred from the statement description."""

from __future__ import annotations

from typing import Final

from statement_ingest.models import TransactionType
from statement_ingest.normalize import normalize_for_compare

# Checked in order, first hit wins.
TYPE_KEYWORDS: Final = [
    (("SU PAGO",), TransactionType.PAYMENT),
    (
        ("IMPUEST", "PERCEPC", "IVA", "SELLO", "COMISION", "CARGO", "INTERES"),
        TransactionType.FEE,
    ),
]


def infer_type(description: str) -> TransactionType:
    """Return ``payment``, ``fee`` or the ``expense`` default.

    Income and transfers are never detected here; callers that know better
    override the result.
    """

    key = normalize_for_compare(description)
    for keywords, tx_type in TYPE_KEYWORDS:
        if any(kw in key for kw in keywords):
            return tx_type
    return TransactionType.EXPENSE


__all__ = ["TYPE_KEYWORDS", "infer_type"]
