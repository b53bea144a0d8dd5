"""Record types shared by the text and OCR statement parsers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

__all__ = [
    "TransactionType",
    "MatchType",
    "ParsedTransaction",
    "MerchantRule",
    "ClassificationResult",
    "StatementMeta",
    "OcrWord",
    "OcrParseResult",
]


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    PAYMENT = "payment"
    FEE = "fee"
    OTHER = "other"


class MatchType(str, Enum):
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EQUALS = "equals"


@dataclass
class ParsedTransaction:
    """One transaction candidate recognised in a statement.

    ``installment_number`` and ``installments_total`` are either both set or
    both ``None``. ``amount`` is always the absolute value printed on the
    statement; ``amount_usd`` is only filled by the OCR parser when the
    statement carries a secondary currency column.
    """

    date: str
    description: str
    amount: Decimal
    installment_number: Optional[int] = None
    installments_total: Optional[int] = None
    receipt: Optional[str] = None
    type: TransactionType = TransactionType.EXPENSE
    amount_usd: Optional[Decimal] = None
    raw_line: str = field(default="", compare=False)

    def as_row(self) -> dict:
        """Return the row dict written by :func:`pdf_to_csv.write_csv`."""
        return {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "amount_usd": "" if self.amount_usd is None else self.amount_usd,
            "receipt": self.receipt or "",
            "installment_number": self.installment_number or "",
            "installments_total": self.installments_total or "",
            "type": self.type.value,
        }


@dataclass(frozen=True)
class MerchantRule:
    pattern: str
    match_type: MatchType = MatchType.CONTAINS
    merchant_name: Optional[str] = None
    category_id: Optional[str] = None
    priority: int = 100
    id: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept plain strings ("contains") as well as MatchType members.
        object.__setattr__(self, "match_type", MatchType(self.match_type))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MerchantRule":
        """Build a rule from a plain mapping such as a YAML document.

        Raises
        ------
        ValueError
            If ``pattern`` is missing or ``match_type`` is unknown.
        """

        if "pattern" not in data:
            raise ValueError(f"Rule without pattern: {dict(data)!r}")
        priority = data.get("priority")
        return cls(
            pattern=str(data["pattern"]),
            match_type=MatchType(data.get("match_type") or MatchType.CONTAINS),
            merchant_name=data.get("merchant_name") or None,
            category_id=(
                str(data["category_id"]) if data.get("category_id") else None
            ),
            priority=100 if priority is None else int(priority),
            id=str(data["id"]) if data.get("id") is not None else None,
        )


@dataclass(frozen=True)
class ClassificationResult:
    merchant_name: Optional[str] = None
    category_id: Optional[str] = None
    rule_id: Optional[str] = None


@dataclass
class StatementMeta:
    due_date: Optional[str] = None
    cut_off_date: Optional[str] = None
    statement_period_start: Optional[str] = None
    statement_period_end: Optional[str] = None


@dataclass
class OcrWord:
    text: str
    left: int
    top: int
    width: int = 0
    height: int = 0
    confidence: Optional[float] = None


@dataclass
class OcrParseResult:
    meta: StatementMeta
    transactions: list[ParsedTransaction]
