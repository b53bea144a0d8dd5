import csv
from decimal import Decimal

import pytest

from statement_ingest import cli
from statement_ingest.cli import main
from statement_ingest.logging_handler import StatementLogHandler
from statement_ingest.models import OcrParseResult, ParsedTransaction, StatementMeta

STATEMENT_TEXT = """\
12-10-24 * GRAELLS NELSON 14/18 007451 1.333,33
05-10-24 K MERPAGO*ALMACEN 4.500,00
15-10-24 SU PAGO EN PESOS 50.000,00
"""

RULES_YAML = """\
- id: r1
  pattern: MERPAGO
  merchant_name: Mercado Pago
  category_id: misc
  priority: 10
- id: r2
  pattern: ALMACEN
  merchant_name: Almacen
  category_id: food
  priority: 50
- id: r3
  pattern: PAGO EN PESOS
  merchant_name: Banco
  category_id: transfers
  priority: 5
"""


@pytest.fixture
def pdf_file(tmp_path):
    # Create a dummy PDF file
    pdf = tmp_path / "statement.pdf"
    pdf.write_bytes(b"%PDF-dummy")
    return pdf


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(RULES_YAML, encoding="utf-8")
    return path


@pytest.fixture
def statement_pdf(fake_pdfplumber):
    class DummyPage:
        def extract_text(self):
            return STATEMENT_TEXT

    fake_pdfplumber([DummyPage()])


def _read_csv(path):
    with path.open(encoding="utf-8") as fh:
        return list(csv.DictReader(fh, delimiter=";"))


def test_missing_command(capsys):
    # Test that missing command shows usage
    with pytest.raises(SystemExit):
        main([])

    captured = capsys.readouterr()
    assert "statement-ingest" in captured.err


def test_pdf_to_csv_missing_file(capsys):
    result = main(["pdf-to-csv", "nonexistent.pdf"])
    assert result == 1

    captured = capsys.readouterr()
    assert "PDF file not found" in captured.err


def test_ocr_to_csv_missing_file(capsys):
    result = main(["ocr-to-csv", "nonexistent.pdf"])
    assert result == 1
    assert "PDF file not found" in capsys.readouterr().err


def test_pdf_to_csv_unreadable_pdf(pdf_file, tmp_path, fake_pdfplumber, capsys):
    fake_pdfplumber(error=ValueError("No /Root object! - Is this really a PDF?"))
    out_file = tmp_path / "output.csv"
    result = main(["pdf-to-csv", str(pdf_file), "--out", str(out_file)])

    assert result == 1
    assert "error:" in capsys.readouterr().err
    assert not out_file.exists()


def test_pdf_to_csv_with_output(pdf_file, tmp_path, statement_pdf):
    out_file = tmp_path / "output.csv"
    result = main(["pdf-to-csv", str(pdf_file), "--out", str(out_file)])

    assert result == 0
    rows = _read_csv(out_file)
    assert [r["description"] for r in rows] == ["GRAELLS NELSON", "MERPAGO*ALMACEN"]
    assert rows[0]["installments_total"] == "18"


def test_pdf_to_csv_stdout_with_payments(pdf_file, statement_pdf, capsys):
    result = main(["pdf-to-csv", str(pdf_file), "--include-payments"])

    assert result == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == ";".join(cli.CSV_HEADER)
    assert len(lines) == 4
    assert lines[-1].endswith(";payment")


def test_pdf_to_csv_rules_and_diagnostics(pdf_file, tmp_path, rules_file, statement_pdf):
    out_file = tmp_path / "output.csv"
    debug_dir = tmp_path / "diag"
    result = main(
        [
            "pdf-to-csv",
            str(pdf_file),
            "--out",
            str(out_file),
            "--rules",
            str(rules_file),
            "--debug-dir",
            str(debug_dir),
        ]
    )

    assert result == 0
    rows = _read_csv(out_file)
    # bulk import ordering: higher priority first
    assert rows[1]["merchant_name"] == "Almacen"
    assert rows[1]["category_id"] == "food"
    assert rows[0]["merchant_name"] == ""

    summary = (debug_dir / "parse_summary.txt").read_text(encoding="utf-8")
    assert "UNMATCHED_LINE" in summary
    assert "metrics" in summary
    assert "totals" in summary


def test_pdf_to_csv_payment_rows_are_not_classified(
    pdf_file, tmp_path, rules_file, statement_pdf, capsys
):
    out_file = tmp_path / "output.csv"
    args = ["pdf-to-csv", str(pdf_file), "--out", str(out_file), "--include-payments"]
    assert main(args + ["--rules", str(rules_file)]) == 0

    rows = _read_csv(out_file)
    assert rows[2]["type"] == "payment"
    assert rows[2]["merchant_name"] == ""
    assert rows[2]["category_id"] == ""

    # the same description is matched when classified on its own
    assert main(["classify", "SU PAGO EN PESOS", "--rules", str(rules_file)]) == 0
    assert "merchant_name=Banco" in capsys.readouterr().out


def test_check_rows_records_unknown_types(tmp_path):
    class Row:
        def as_row(self):
            return {
                "date": "2024-10-12",
                "description": "TRASPASO",
                "amount": Decimal("10.00"),
                "receipt": "",
                "type": "transfer",
            }

    handler = StatementLogHandler(tmp_path)
    cli._check_rows([Row()], handler)

    assert [e.error_type for e in handler.errors] == ["INVALID_TYPE"]
    assert handler.debug_info["totals"]["total"] == Decimal("10.00")
    assert handler.debug_info["metrics"]["types"] == {"transfer": 1}


@pytest.mark.parametrize(
    "ordering, merchant",
    [("live", "Mercado Pago"), ("import", "Almacen")],
)
def test_classify(rules_file, capsys, ordering, merchant):
    result = main(
        ["classify", "MERPAGO*ALMACEN", "--rules", str(rules_file), "--ordering", ordering]
    )
    assert result == 0
    out = capsys.readouterr().out
    assert f"merchant_name={merchant}" in out


def test_classify_defaults_to_live(rules_file, capsys):
    assert main(["classify", "MERPAGO*ALMACEN", "--rules", str(rules_file)]) == 0
    assert "rule_id=r1" in capsys.readouterr().out


def test_classify_missing_rules_file(tmp_path, capsys):
    result = main(["classify", "COTO", "--rules", str(tmp_path / "missing.yaml")])
    assert result == 1
    assert "error:" in capsys.readouterr().err


def test_ocr_to_csv(pdf_file, tmp_path, monkeypatch):
    events = []

    class DummyEngine:
        def __init__(self, lang):
            events.append(("lang", lang))

        def __enter__(self):
            events.append("open")
            return self

        def __exit__(self, exc_type, exc, tb):
            events.append("close")

    def fake_parse(source, engine):
        assert isinstance(engine, DummyEngine)
        row = ParsedTransaction("2025-07-04", "FARMACITY", Decimal("2500.00"), receipt="111111")
        return OcrParseResult(StatementMeta(cut_off_date="2025-06-26"), [row])

    monkeypatch.setattr(cli, "TesseractEngine", DummyEngine)
    monkeypatch.setattr(cli, "parse_ocr_pdf", fake_parse)

    out_file = tmp_path / "ocr.csv"
    result = main(["ocr-to-csv", str(pdf_file), "--out", str(out_file), "--lang", "eng"])

    assert result == 0
    assert events == [("lang", "eng"), "open", "close"]
    rows = _read_csv(out_file)
    assert rows == [
        {
            "date": "2025-07-04",
            "description": "FARMACITY",
            "amount": "2500.00",
            "amount_usd": "",
            "receipt": "111111",
            "installment_number": "",
            "installments_total": "",
            "type": "expense",
        }
    ]


def test_module_loggers_live_under_package():
    from statement_ingest import importer, logging_handler, merchant_rules, ocr_parser, pdf_to_csv

    for module in (cli, importer, logging_handler, merchant_rules, ocr_parser, pdf_to_csv):
        assert module._LOGGER.name == module.__name__
        assert module._LOGGER.name.startswith("statement_ingest.")
