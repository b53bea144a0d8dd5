"""
OCR ingestion for statements that only exist as images (Macro / Visa).

Page 1 is rendered with pdfplumber, the table and header regions are cropped
with Pillow and handed to an OCR engine owned by the caller. The recognised
words are grouped into visual lines and every line is parsed into a
:class:`~statement_ingest.models.ParsedTransaction`.

OCR text is noisy, so the line parser carries a handful of corrections for
failure modes observed on real statements; each one is a named constant
below.
"""

from __future__ import annotations

import logging
import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, Final, Iterable, List, Mapping, Optional, Protocol, Sequence

from PIL import Image, ImageFilter, ImageOps

from statement_ingest.errors import OcrEngineError, StatementReadError
from statement_ingest.logging_handler import StatementLogHandler
from statement_ingest.models import (
    OcrParseResult,
    OcrWord,
    ParsedTransaction,
    StatementMeta,
)
from statement_ingest.normalize import (
    MONTHS_MAP,
    RE_INSTALLMENT_MARKER,
    detect_installments,
    normalize_for_compare,
    normalize_spaces,
    parse_money_ar,
    strip_accents,
    to_iso_date,
    to_iso_date_from_spanish,
)
from statement_ingest.pdf_to_csv import open_pdf
from statement_ingest.transaction_type import infer_type

# ===== OCR CORRECTIONS =====

# A leading "0" of the day is often read as "8" or "6": "84" → 4, "65" → 5.
OCR_DAY_FOLD_RANGES: Final = ((80, 89), (60, 69))
# Any other two-digit day above 31 keeps only its last digit.
OCR_DAY_OVERFLOW_MODULO: Final = 10
# The glyphs "05" come out as one of these words.
OCR_FIVE_TOKENS: Final = frozenset({"es", "os", "ss"})

# With a USD column, an ARS amount below this lost its thousands separator.
USD_SMALL_AMOUNT_THRESHOLD: Final = Decimal("1000")
USD_THOUSANDS_FACTOR: Final = 1000

DEDUP_DESCRIPTION_PREFIX: Final = 40
MIN_RECEIPT_DIGITS: Final = 3

# ===== OCR LAYOUT =====

MIN_WORD_CONFIDENCE: Final = 35
LINE_Y_TOLERANCE: Final = 14
RENDER_RESOLUTION: Final = 216

# (left, top, width, height) as fractions of the rendered page
TABLE_REGION: Final = (0.04, 0.33, 0.92, 0.62)
HEADER_REGION: Final = (0.52, 0.07, 0.45, 0.22)

TESSERACT_WORD_LEVEL: Final = 5

# ===== PATTERNS =====

RE_OCR_MONEY: Final = re.compile(
    r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+,\d{2}|\d+,\d{2})(?![\d,])"
)
RE_USD_HINT: Final = re.compile(r"\bUSD\b", re.I)
RE_RECEIPT_TOKEN: Final = re.compile(r"^\d{%d,}$" % MIN_RECEIPT_DIGITS)
RE_STAR_DELIMITER: Final = re.compile(r"\s+\*\s+")
RE_LETTER: Final = re.compile(r"[A-Za-zÁÉÍÓÚÜÑáéíóúüñ]")
RE_FULL_DATE: Final = re.compile(r"\b(\d{2})/(\d{2})/(\d{4})\b")
RE_PERIOD: Final = re.compile(
    r"PERIODO.*?(\d{2}/\d{2}/\d{4}).*?(?:AL|-)\s*(\d{2}/\d{2}/\d{4})"
)

_LOGGER = logging.getLogger(__name__)


class OcrEngine(Protocol):
    def recognize(self, image: Image.Image) -> List[OcrWord]: ...


# ───────────────────────── line parsing ─────────────────────
def parse_day_token(token: str) -> int | None:
    """Return the day of month encoded by an OCR token, or ``None``."""
    text = strip_accents(token).lower().strip()
    digits = re.sub(r"\D", "", text)
    if digits:
        day = int(digits)
        for low, high in OCR_DAY_FOLD_RANGES:
            if low <= day <= high:
                day -= low
        if day > 31:
            day %= OCR_DAY_OVERFLOW_MODULO
        if 1 <= day <= 31:
            return day
    if text in OCR_FIVE_TOKENS:
        return 5
    return None


def is_noise_line(line: str) -> bool:
    """Table headers, totals and footers that never hold a transaction."""
    up = normalize_for_compare(line)
    return (
        up.startswith("FECHA ")
        or "DETALLE" in up
        or ("SALDO" in up and "ANTERIOR" in up)
        or ("TOTAL" in up and "CONSUMOS" in up)
        or up.startswith("TARJETA")
        or up.startswith("CUOTAS")
        or "WWW." in up
        or ("VISA" in up and "MACRO" in up)
    )


def _find_month(tokens: Sequence[str]) -> int | None:
    for idx, token in enumerate(tokens):
        if strip_accents(token).lower() in MONTHS_MAP:
            return idx
    return None


def parse_ocr_line(line: str) -> ParsedTransaction | None:
    """Parse one OCR line such as
    ``"04 Julio 25 396823 * MERPAGO*TIENDA C.05/06 141.241,29"``.
    """

    raw = normalize_spaces(line)
    if not raw or is_noise_line(raw):
        return None

    tokens = raw.split(" ")
    month_idx = _find_month(tokens)
    if month_idx is None or month_idx < 1 or month_idx + 1 >= len(tokens):
        return None

    day = parse_day_token(tokens[month_idx - 1])
    year_digits = re.sub(r"\D", "", tokens[month_idx + 1])
    if day is None or not year_digits:
        return None
    post_date = to_iso_date_from_spanish(str(day), tokens[month_idx], year_digits[-2:])
    if post_date is None:
        return None

    idx = month_idx + 2
    receipt = None
    if idx < len(tokens) and RE_RECEIPT_TOKEN.match(tokens[idx]):
        receipt = tokens[idx]
        idx += 1
    if idx < len(tokens) and tokens[idx] == "*":
        idx += 1

    rest = " ".join(tokens[idx:])
    money = list(RE_OCR_MONEY.finditer(rest))
    if not money:
        return None

    last = money[-1]
    prev = money[-2] if len(money) >= 2 else None
    usd_hint = RE_USD_HINT.search(rest) is not None

    amount_usd: Optional[Decimal] = None
    if usd_hint and prev is not None:
        amount = parse_money_ar(prev.group(1))
        amount_usd = parse_money_ar(last.group(1))
        cut_at = prev.start()
    else:
        amount = parse_money_ar(last.group(1))
        cut_at = last.start()
    if amount is None:
        return None

    if (
        usd_hint
        and amount_usd is not None
        and amount_usd > 0
        and 0 < amount < USD_SMALL_AMOUNT_THRESHOLD
    ):
        amount *= USD_THOUSANDS_FACTOR

    installment = detect_installments(rest)
    inst_seq = installment.installment_number
    inst_tot = installment.installments_total
    if inst_seq is None or inst_tot is None or not 1 <= inst_seq <= inst_tot <= 99:
        inst_seq = inst_tot = None

    desc = rest[:cut_at]
    if inst_seq is not None:
        desc = RE_INSTALLMENT_MARKER.sub("", desc)
    desc = RE_STAR_DELIMITER.sub(" * ", normalize_spaces(desc)).strip()
    if not RE_LETTER.search(desc):
        return None

    return ParsedTransaction(
        date=post_date,
        description=desc,
        amount=abs(amount),
        installment_number=inst_seq,
        installments_total=inst_tot,
        receipt=receipt,
        type=infer_type(desc),
        amount_usd=abs(amount_usd) if amount_usd is not None else None,
        raw_line=raw,
    )


def dedupe_key(row: ParsedTransaction) -> str:
    prefix = strip_accents(row.description).lower().strip()[:DEDUP_DESCRIPTION_PREFIX]
    return f"{row.date}|{row.receipt or ''}|{row.amount:.2f}|{prefix}"


def dedupe_rows(rows: Iterable[ParsedTransaction]) -> List[ParsedTransaction]:
    """Drop repeated detections of the same row, keeping the first one."""
    seen = set()
    unique: List[ParsedTransaction] = []
    for row in rows:
        key = dedupe_key(row)
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return unique


def parse_ocr_lines(
    lines: Iterable[str], log_handler: StatementLogHandler | None = None
) -> List[ParsedTransaction]:
    """Parse OCR lines, deduplicate and sort by date (stable)."""
    rows: List[ParsedTransaction] = []
    for idx, line in enumerate(lines, 1):
        row = parse_ocr_line(line)
        if row is None:
            if log_handler is not None:
                log_handler.log_warning(
                    "UNMATCHED_LINE", "Not a transaction line", idx, line
                )
            continue
        rows.append(row)

    unique = dedupe_rows(rows)
    if len(unique) != len(rows):
        _LOGGER.info("Dropped %d duplicate OCR rows", len(rows) - len(unique))
    return sorted(unique, key=lambda r: r.date)


# ───────────────────────── word boxes ───────────────────────
def words_from_tesseract(
    data: Mapping[str, Sequence[Any]], min_confidence: float = MIN_WORD_CONFIDENCE
) -> List[OcrWord]:
    """Convert ``pytesseract.image_to_data(..., output_type=Output.DICT)``."""
    words: List[OcrWord] = []
    for i, text in enumerate(data.get("text", [])):
        text = str(text or "").strip()
        if not text:
            continue
        if "level" in data and int(data["level"][i]) != TESSERACT_WORD_LEVEL:
            continue
        try:
            conf = float(data["conf"][i])
        except (KeyError, TypeError, ValueError):
            conf = None
        if conf is not None and 0 <= conf < min_confidence:
            continue
        words.append(
            OcrWord(
                text=text,
                left=int(data["left"][i]),
                top=int(data["top"][i]),
                width=int(data["width"][i]),
                height=int(data["height"][i]),
                confidence=conf,
            )
        )
    return words


def group_words_by_line(
    words: Iterable[OcrWord], y_tolerance: int = LINE_Y_TOLERANCE
) -> List[List[OcrWord]]:
    """Group word boxes into visual lines, each sorted left to right."""
    groups: List[tuple[float, List[OcrWord]]] = []
    for word in sorted(words, key=lambda w: (w.top, w.left)):
        if groups and abs(word.top - groups[-1][0]) <= y_tolerance:
            top, members = groups[-1]
            members.append(word)
            # running average keeps slightly skewed rows together
            groups[-1] = (top + (word.top - top) / len(members), members)
        else:
            groups.append((word.top, [word]))
    return [sorted(members, key=lambda w: w.left) for _, members in groups]


def lines_from_words(
    words: Iterable[OcrWord], y_tolerance: int = LINE_Y_TOLERANCE
) -> List[str]:
    return [
        normalize_spaces(" ".join(w.text for w in line))
        for line in group_words_by_line(words, y_tolerance)
    ]


# ───────────────────────── header metadata ──────────────────
def _closest_date(upper: str, dates: List[tuple[int, str]], keyword: str) -> str | None:
    idx = upper.find(keyword)
    if idx < 0 or not dates:
        return None
    # labels precede their value; fall back to the nearest date before it
    following = [d for d in dates if d[0] >= idx]
    if following:
        return min(following, key=lambda d: d[0] - idx)[1]
    return min(dates, key=lambda d: idx - d[0])[1]


def _iso_from_slashed(text: str) -> str | None:
    match = RE_FULL_DATE.search(text)
    return to_iso_date(*match.groups()) if match else None


def extract_statement_meta(text: str) -> StatementMeta:
    """Read due date, cut-off date and period from the header OCR text."""
    upper = normalize_for_compare(text)
    dates = []
    for match in RE_FULL_DATE.finditer(upper):
        iso = to_iso_date(*match.groups())
        if iso:
            dates.append((match.start(), iso))

    meta = StatementMeta(
        due_date=_closest_date(upper, dates, "VENC"),
        cut_off_date=(
            _closest_date(upper, dates, "CIER") or _closest_date(upper, dates, "CORTE")
        ),
    )
    period = RE_PERIOD.search(upper)
    if period:
        meta.statement_period_start = _iso_from_slashed(period.group(1))
        meta.statement_period_end = _iso_from_slashed(period.group(2))
    return meta


# ───────────────────────── OCR engine ───────────────────────
class TesseractEngine:
    """Tesseract through pytesseract.

    The caller owns the engine and may reuse it across several statements::

        with TesseractEngine(lang="spa") as engine:
            result = parse_ocr_pdf(path, engine)
    """

    def __init__(
        self,
        lang: str = "spa",
        psm: int = 6,
        min_confidence: float = MIN_WORD_CONFIDENCE,
        tesseract_cmd: str | None = None,
    ):
        self.lang = lang
        self.psm = psm
        self.min_confidence = min_confidence
        self.tesseract_cmd = tesseract_cmd or os.getenv("TESSERACT_CMD")
        self._pytesseract = None

    def open(self) -> "TesseractEngine":
        try:
            import pytesseract  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dep
            raise OcrEngineError(
                "pytesseract is required for OCR; install via 'pip install pytesseract'"
            ) from exc

        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as exc:
            raise OcrEngineError(
                "Tesseract is not installed or not in PATH; "
                "install tesseract-ocr and tesseract-ocr-spa"
            ) from exc
        _LOGGER.debug("Using tesseract %s (lang=%s)", version, self.lang)
        self._pytesseract = pytesseract
        return self

    def close(self) -> None:
        self._pytesseract = None

    def __enter__(self) -> "TesseractEngine":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def recognize(self, image: Image.Image) -> List[OcrWord]:
        pytesseract = self._pytesseract
        if pytesseract is None:
            raise OcrEngineError("OCR engine used outside of its 'with' block")
        config = f"--psm {self.psm} -c preserve_interword_spaces=1"
        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as exc:
            raise OcrEngineError(f"tesseract failed: {exc}") from exc
        return words_from_tesseract(data, self.min_confidence)


# ───────────────────────── PDF → OCR rows ───────────────────
def render_first_page(
    source: Path | str | bytes, resolution: int = RENDER_RESOLUTION
) -> Image.Image:
    with open_pdf(source) as pdf:
        if not pdf.pages:
            raise StatementReadError("PDF has no pages")
        try:
            rendered = pdf.pages[0].to_image(resolution=resolution).original
        except Exception as exc:
            raise StatementReadError(f"Could not render page 1: {exc}") from exc
        return rendered.copy()


def crop_region(
    image: Image.Image, region: tuple[float, float, float, float]
) -> Image.Image:
    """Crop a fractional region and prepare it for OCR."""
    width, height = image.size
    x, y, w, h = region
    left, top = round(width * x), round(height * y)
    box = (left, top, left + round(width * w), top + round(height * h))
    cropped = ImageOps.grayscale(image.crop(box))
    return ImageOps.autocontrast(cropped).filter(ImageFilter.SHARPEN)


def parse_ocr_pdf(
    source: Path | str | bytes,
    engine: OcrEngine,
    resolution: int = RENDER_RESOLUTION,
    table_region: tuple[float, float, float, float] = TABLE_REGION,
    header_region: tuple[float, float, float, float] = HEADER_REGION,
    log_handler: StatementLogHandler | None = None,
) -> OcrParseResult:
    """OCR page 1 of a statement and parse its transactions.

    Raises
    ------
    StatementReadError
        If the PDF cannot be opened or rendered.
    OcrEngineError
        If the engine fails on the transactions table.
    """

    page = render_first_page(source, resolution)

    try:
        header_words = engine.recognize(crop_region(page, header_region))
        meta = extract_statement_meta(" ".join(w.text for w in header_words))
    except OcrEngineError as exc:
        # header metadata is optional; the table below is not
        _LOGGER.warning("Header OCR failed, statement dates unknown: %s", exc)
        meta = StatementMeta()

    words = engine.recognize(crop_region(page, table_region))
    lines = lines_from_words(words)
    transactions = parse_ocr_lines(lines, log_handler)
    _LOGGER.info(
        "OCR parsed %d transactions from %d lines", len(transactions), len(lines)
    )
    if log_handler is not None:
        log_handler.log_debug(
            "ocr_parse",
            {"words": len(words), "lines": len(lines), "transactions": len(transactions)},
        )
    return OcrParseResult(meta=meta, transactions=transactions)


__all__ = [
    "OCR_DAY_FOLD_RANGES",
    "OCR_DAY_OVERFLOW_MODULO",
    "OCR_FIVE_TOKENS",
    "USD_SMALL_AMOUNT_THRESHOLD",
    "USD_THOUSANDS_FACTOR",
    "DEDUP_DESCRIPTION_PREFIX",
    "OcrEngine",
    "TesseractEngine",
    "parse_day_token",
    "is_noise_line",
    "parse_ocr_line",
    "dedupe_key",
    "dedupe_rows",
    "parse_ocr_lines",
    "words_from_tesseract",
    "group_words_by_line",
    "lines_from_words",
    "extract_statement_meta",
    "render_first_page",
    "crop_region",
    "parse_ocr_pdf",
]
