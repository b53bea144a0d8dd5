from decimal import Decimal

import pytest

from statement_ingest.models import TransactionType
from statement_ingest.pdf_to_csv import (
    CONSUMPTION_FORMAT,
    STAMP_DUTY_FORMAT,
    AmountPolicy,
    LineFormat,
    parse_logical_line,
    parse_statement_line,
    statement_formats,
    strip_trailing_totals,
)


def test_installment_transaction():
    line = "12-10-24 * GRAELLS NELSON 14/18 007451 1.333,33"
    row = parse_statement_line(line)
    assert row is not None
    assert row.date == "2024-10-12"
    assert row.amount == Decimal("1333.33")
    assert row.installment_number == 14
    assert row.installments_total == 18
    assert row.receipt == "007451"
    assert "GRAELLS NELSON" in row.description
    assert not any(ch.isdigit() for ch in row.description)
    assert "/" not in row.description
    assert row.type is TransactionType.EXPENSE
    assert row.raw_line == line


def test_installment_uses_first_amount_after_receipt():
    line = "03-09-24 * FRAVEGA C.02/12 123456 10.000,00 120.000,00"
    row = parse_statement_line(line)
    assert row is not None
    assert row.amount == Decimal("10000.00")
    assert row.installment_number == 2
    assert row.installments_total == 12
    assert row.description == "FRAVEGA"


def test_plain_transaction_uses_last_amount():
    line = "05-10-24 K MERPAGO*ALMACEN 4.500,00"
    row = parse_statement_line(line)
    assert row is not None
    assert row.date == "2024-10-05"
    assert row.description == "MERPAGO*ALMACEN"
    assert row.amount == Decimal("4500.00")
    assert row.installment_number is None
    assert row.installments_total is None


def test_leading_k_is_kept_when_part_of_a_word():
    row = parse_statement_line("05-10-24 KIOSCO LA ESQUINA 1.200,00")
    assert row is not None
    assert row.description == "KIOSCO LA ESQUINA"


def test_negative_amount_is_absolute():
    row = parse_statement_line("07-10-24 * DEVOLUCION COMPRA 2.000,00-")
    assert row is not None
    assert row.amount == Decimal("2000.00")


def test_currency_debris_removed():
    row = parse_statement_line("08-10-24 * SPOTIFY USD 4,99")
    assert row is not None
    assert row.description == "SPOTIFY"
    assert row.amount == Decimal("4.99")


def test_currency_debris_removed_on_installment_line():
    row = parse_statement_line("12-10-24 * AMAZON U$S C.01/03 123456 1.000,00")
    assert row is not None
    assert row.description == "AMAZON"
    assert row.installment_number == 1
    assert row.receipt == "123456"


def test_trailing_totals_are_cut():
    row = parse_statement_line("09-10-24 * NETFLIX 3.499,00 TOTAL CONSUMOS 100.000,00")
    assert row is not None
    assert row.description == "NETFLIX"
    assert row.amount == Decimal("3499.00")
    assert strip_trailing_totals("A 1,00 SALDO ACTUAL 2,00") == "A 1,00"


def test_payment_line_skipped_by_default():
    line = "15-10-24 SU PAGO EN PESOS 50.000,00"
    assert parse_statement_line(line) is None
    assert parse_logical_line(line) is None


def test_payment_line_typed_when_included():
    line = "15-10-24 SU PAGO EN PESOS 50.000,00"
    row = parse_logical_line(line, statement_formats(include_payments=True))
    assert row is not None
    assert row.type is TransactionType.PAYMENT
    assert row.description == "SU PAGO EN PESOS"
    assert row.amount == Decimal("50000.00")


def test_stamp_duty_format():
    line = "31-10-24 IMPUESTO DE SELLOS 1.234,56"
    row = parse_statement_line(line, STAMP_DUTY_FORMAT)
    assert row is not None
    assert row.type is TransactionType.FEE
    assert row.amount == Decimal("1234.56")
    # other lines are not stamp duty
    assert parse_statement_line("31-10-24 * CAFE 1,00", STAMP_DUTY_FORMAT) is None


def test_custom_format_amount_policy():
    fmt = LineFormat(
        name="first",
        installment_aware=False,
        plain_policy=AmountPolicy.FIRST_AFTER_MARKER,
    )
    line = "01-10-24 * HOTEL 10,00 20,00"
    assert parse_statement_line(line, fmt).amount == Decimal("10.00")
    assert parse_statement_line(line, CONSUMPTION_FORMAT).amount == Decimal("20.00")


def test_invalid_installment_marker_is_ignored():
    row = parse_statement_line("12-10-24 * TIENDA 18/14 1.000,00")
    assert row is not None
    assert row.installment_number is None
    assert row.installments_total is None


@pytest.mark.parametrize(
    "line",
    [
        "",
        "SIN FECHA 1.000,00",
        "31-02-24 * IMPOSIBLE 1.000,00",
        "12-10-24",
        "12-10-24 * SIN MONTO",
        "12-10-24 * 1234 1.000,00",
        "12-10-24 TOTAL 1.000,00",
    ],
)
def test_non_transaction_lines_return_none(line):
    assert parse_statement_line(line) is None
