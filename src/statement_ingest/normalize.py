"""Locale-aware text helpers for Argentine statements.

Amounts follow the Argentine convention (``.`` thousands, ``,`` decimals),
dates are either numeric ``DD-MM-YY`` or ``31 Octubre 25``.
"""

from __future__ import annotations

import calendar
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Final, Optional

__all__ = [
    "MONTHS_MAP",
    "RE_INSTALLMENT_MARKER",
    "InstallmentInfo",
    "strip_accents",
    "parse_money_ar",
    "to_iso_date",
    "to_iso_date_from_spanish",
    "normalize_description",
    "normalize_for_compare",
    "normalize_spaces",
    "detect_installments",
]

MONTHS_MAP: Final = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

# Two-digit years up to this value belong to the 2000s, the rest to the 1900s.
YEAR_PIVOT: Final = 69

# "C.02/12" or "C 02/12"
RE_INSTALLMENT_MARKER: Final = re.compile(
    r"\bC\.?\s*(\d{1,2})\s*/\s*(\d{1,2})\b", re.I
)

RE_SPACES: Final = re.compile(r"\s+")
RE_NOT_DESCRIPTION_CHAR: Final = re.compile(r"[^A-Za-zÁÉÍÓÚÜÑáéíóúüñ\s&]")


@dataclass(frozen=True)
class InstallmentInfo:
    description: str
    installment_number: Optional[int] = None
    installments_total: Optional[int] = None


def strip_accents(s: str) -> str:
    """Remove combining diacritics (``"Ñandú"`` → ``"Nandu"``)."""
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_spaces(s: str) -> str:
    return RE_SPACES.sub(" ", s).strip()


def normalize_for_compare(s: str) -> str:
    """Matching key: no accents, upper case, single spaces."""
    return normalize_spaces(strip_accents(s.upper()))


def normalize_description(raw: str) -> str:
    """Presentation cleanup keeping only letters, spaces and ``&``."""
    cleaned = raw.replace("*", " ")
    cleaned = re.sub(r"[0-9]", " ", cleaned)
    cleaned = RE_NOT_DESCRIPTION_CHAR.sub(" ", cleaned)
    return normalize_spaces(cleaned)


def parse_money_ar(s: str) -> Decimal | None:
    """Parse an Argentine money string.

    ``"141.241,29"`` → ``Decimal("141241.29")``; a trailing or leading ``-``
    makes the value negative. Returns ``None`` instead of raising when the
    input is empty or not a number.
    """

    text = s.strip()
    if not text:
        return None

    negative = text.endswith("-") or text.startswith("-")
    clean = re.sub(r"[^0-9.,]", "", text)
    if not re.search(r"\d", clean):
        return None

    clean = clean.replace(".", "").replace(",", ".")
    try:
        value = Decimal(clean)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return -value if negative else value


def _expand_year(yy: int) -> int:
    return 2000 + yy if yy <= YEAR_PIVOT else 1900 + yy


def _iso(year: int, month: int, day: int) -> str | None:
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        return None
    if not 1 <= day <= calendar.monthrange(year, month)[1]:
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def to_iso_date(dd: str, mm: str, yy: str) -> str | None:
    """Numeric day/month/year (two or four digit year) to ISO."""
    if not (dd.isdecimal() and mm.isdecimal() and yy.isdecimal()):
        return None
    year = int(yy)
    if len(yy) <= 2:
        year = _expand_year(year)
    return _iso(year, int(mm), int(dd))


def to_iso_date_from_spanish(day: str, month_name: str, yy: str) -> str | None:
    """``("31", "Octubre", "25")`` → ``"2025-10-31"``; ``None`` if invalid."""
    day = day.strip()
    if not day.isdecimal():
        return None
    day_num = int(day)
    if not 1 <= day_num <= 31:
        return None

    month = MONTHS_MAP.get(strip_accents(month_name.strip().lower()))
    if month is None:
        return None

    yy = yy.strip()
    if not yy.isdecimal() or len(yy) > 2:
        return None
    return _iso(_expand_year(int(yy)), month, day_num)


def detect_installments(desc: str) -> InstallmentInfo:
    """Split a ``C.NN/NN`` marker out of *desc*."""
    match = RE_INSTALLMENT_MARKER.search(desc)
    if not match:
        return InstallmentInfo(desc)

    cleaned = desc[: match.start()] + desc[match.end() :]
    cleaned = normalize_spaces(re.sub(r"\(\s*\)", "", cleaned))
    return InstallmentInfo(cleaned, int(match.group(1)), int(match.group(2)))
