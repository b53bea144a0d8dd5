from decimal import Decimal

import pytest

from statement_ingest.normalize import (
    detect_installments,
    normalize_description,
    normalize_for_compare,
    parse_money_ar,
    strip_accents,
    to_iso_date,
    to_iso_date_from_spanish,
)


@pytest.mark.parametrize("text", ["Ñandú", "CAFÉ Münster", "", "plain", "ÁÉÍÓÚ"])
def test_strip_accents_idempotent(text):
    once = strip_accents(text)
    assert strip_accents(once) == once


def test_strip_accents_values():
    assert strip_accents("Ñandú") == "Nandu"
    assert strip_accents("Panadería José") == "Panaderia Jose"


@pytest.mark.parametrize("text", ["  café   del  Sur ", "Ñ", "a\tb\nc"])
def test_normalize_for_compare_idempotent(text):
    once = normalize_for_compare(text)
    assert normalize_for_compare(once) == once


def test_normalize_for_compare_value():
    assert normalize_for_compare("  Café   del\tSur ") == "CAFE DEL SUR"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("141.241,29", Decimal("141241.29")),
        ("1.234,56-", Decimal("-1234.56")),
        ("-1.234,56", Decimal("-1234.56")),
        ("0,99", Decimal("0.99")),
        ("$ 12.000,00", Decimal("12000.00")),
        ("1.333,33", Decimal("1333.33")),
    ],
)
def test_parse_money_ar(raw, expected):
    assert parse_money_ar(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "abc", "-", ",", "1,2,3"])
def test_parse_money_ar_invalid_returns_none(raw):
    assert parse_money_ar(raw) is None


@pytest.mark.parametrize(
    "args",
    [
        ("31", "Febrero", "25"),
        ("32", "Octubre", "25"),
        ("0", "Octubre", "25"),
        ("29", "Febrero", "25"),
        ("10", "Brumario", "25"),
        ("1O", "Octubre", "25"),
        ("1", "Octubre", "2025"),
        ("²", "Enero", "25"),
        ("1", "Enero", "²²"),
    ],
)
def test_to_iso_date_from_spanish_invalid(args):
    assert to_iso_date_from_spanish(*args) is None


@pytest.mark.parametrize(
    "args, expected",
    [
        (("31", "Octubre", "25"), "2025-10-31"),
        (("1", "Enero", "00"), "2000-01-01"),
        (("1", "Enero", "70"), "1970-01-01"),
        (("31", "Diciembre", "69"), "2069-12-31"),
        (("29", "Febrero", "24"), "2024-02-29"),
        (("5", "setiembre", "24"), "2024-09-05"),
        (("05", "SEPTIEMBRE", "24"), "2024-09-05"),
    ],
)
def test_to_iso_date_from_spanish_valid(args, expected):
    assert to_iso_date_from_spanish(*args) == expected


def test_to_iso_date_numeric():
    assert to_iso_date("12", "10", "24") == "2024-10-12"
    assert to_iso_date("12", "10", "2024") == "2024-10-12"
    assert to_iso_date("31", "04", "24") is None
    assert to_iso_date("00", "01", "24") is None
    assert to_iso_date("01", "13", "24") is None
    assert to_iso_date("01", "01", "²²") is None
    assert to_iso_date("²", "01", "24") is None


@pytest.mark.parametrize("desc", ["NETFLIX C.05/12", "NETFLIX C 05/12", "NETFLIX (C.05/12)"])
def test_detect_installments(desc):
    info = detect_installments(desc)
    assert info.installment_number == 5
    assert info.installments_total == 12
    assert info.description == "NETFLIX"


def test_detect_installments_without_marker():
    info = detect_installments("MERPAGO*TIENDA")
    assert info.installment_number is None
    assert info.installments_total is None
    assert info.description == "MERPAGO*TIENDA"


def test_normalize_description():
    assert normalize_description("MERPAGO*TIENDA 123 #4") == "MERPAGO TIENDA"
    assert normalize_description("A&B  SRL") == "A&B SRL"
