"""Structured diagnostics for a single statement parse run.

``StatementLogHandler`` keeps the errors, warnings and debug sections raised
while parsing and writes them to ``parse_debug.txt`` (as they happen) and
``parse_summary.txt`` (on :meth:`write_summary`).
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

__all__ = ["ParseError", "ParseWarning", "StatementLogHandler"]

_LOGGER = logging.getLogger(__name__)


@dataclass
class ParseError:
    error_type: str
    message: str
    line_number: Optional[int] = None
    line_content: Optional[str] = None
    timestamp: str = ""


@dataclass
class ParseWarning:
    warning_type: str
    message: str
    line_number: Optional[int] = None
    line_content: Optional[str] = None
    timestamp: str = ""


class StatementLogHandler:
    def __init__(self, log_dir: Path | str = "diagnostics"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.debug_path = self.log_dir / "parse_debug.txt"
        self.summary_path = self.log_dir / "parse_summary.txt"
        self.errors: List[ParseError] = []
        self.warnings: List[ParseWarning] = []
        self.debug_info: Dict[str, Any] = {}
        self.debug_path.write_text("", encoding="utf-8")

    def _append_debug(self, text: str) -> None:
        with self.debug_path.open("a", encoding="utf-8") as fh:
            fh.write(text + "\n")

    @staticmethod
    def _location(line_number: Optional[int], line_content: Optional[str]) -> str:
        parts = []
        if line_number is not None:
            parts.append(f"line {line_number}")
        if line_content:
            parts.append(repr(line_content))
        return f" ({', '.join(parts)})" if parts else ""

    def log_error(
        self,
        error_type: str,
        message: str,
        line_number: Optional[int] = None,
        line_content: Optional[str] = None,
    ) -> None:
        ts = datetime.now().isoformat(timespec="seconds")
        self.errors.append(
            ParseError(error_type, message, line_number, line_content, ts)
        )
        where = self._location(line_number, line_content)
        self._append_debug(f"[{ts}] ERROR {error_type}: {message}{where}")
        _LOGGER.error("%s: %s%s", error_type, message, where)

    def log_warning(
        self,
        warning_type: str,
        message: str,
        line_number: Optional[int] = None,
        line_content: Optional[str] = None,
    ) -> None:
        ts = datetime.now().isoformat(timespec="seconds")
        self.warnings.append(
            ParseWarning(warning_type, message, line_number, line_content, ts)
        )
        where = self._location(line_number, line_content)
        self._append_debug(f"[{ts}] WARNING {warning_type}: {message}{where}")
        _LOGGER.debug("%s: %s%s", warning_type, message, where)

    def log_debug(self, section: str, data: Any) -> None:
        self.debug_info[section] = data
        self._append_debug(
            f"[DEBUG] {section}: {json.dumps(data, default=str, ensure_ascii=False)}"
        )

    def get_summary_stats(self) -> Dict[str, Any]:
        error_types = Counter(e.error_type for e in self.errors)
        warning_types = Counter(w.warning_type for w in self.warnings)
        return {
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
            "unique_error_types": len(error_types),
            "unique_warning_types": len(warning_types),
            "errors_by_type": dict(error_types),
            "warnings_by_type": dict(warning_types),
        }

    def write_summary(self) -> Path:
        lines = ["=== ERRORS ==="]
        for err in self.errors:
            where = self._location(err.line_number, err.line_content)
            lines.append(f"{err.error_type}: {err.message}{where}")
        lines.append("")
        lines.append("=== WARNINGS ===")
        for warn in self.warnings:
            where = self._location(warn.line_number, warn.line_content)
            lines.append(f"{warn.warning_type}: {warn.message}{where}")
        lines.append("")
        lines.append("=== DEBUG INFO ===")
        for section, data in self.debug_info.items():
            lines.append(
                f"{section}: {json.dumps(data, default=str, ensure_ascii=False)}"
            )
        lines.append("")
        lines.append("=== STATS ===")
        lines.append(json.dumps(self.get_summary_stats(), indent=2))
        self.summary_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return self.summary_path
