"""Document-level failures raised by the statement pipelines.

Individual lines that cannot be parsed are never errors; they are dropped.
"""

from __future__ import annotations


class StatementReadError(RuntimeError):
    """The statement document is empty, unreadable or not a PDF."""


class OcrEngineError(RuntimeError):
    """The OCR engine is not installed or failed to recognise a page."""


__all__ = ["StatementReadError", "OcrEngineError"]
