import sys
import types
from pathlib import Path

import pytest

# Ensure the package under src/ is importable without installation
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


class DummyPdf:
    def __init__(self, pages):
        self.pages = pages

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        pass


@pytest.fixture
def fake_pdfplumber(monkeypatch):
    """Swap pdfplumber for a module whose ``open`` serves *pages*.

    Returns an installer; calling it returns the list of opened sources.
    """

    def install(pages=(), error=None):
        opened = []

        def dummy_open(source):
            opened.append(source)
            if error is not None:
                raise error
            return DummyPdf(list(pages))

        monkeypatch.setitem(sys.modules, "pdfplumber", types.SimpleNamespace(open=dummy_open))
        return opened

    return install
