"""Text, spreadsheet and office-document analyzer."""

from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Dict

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .base import AnalysisResult, ExtensionAnalyzer
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

RICH_CONFIDENCE = 0.75
SPARSE_CONFIDENCE = 0.50
RICH_CONTENT_CHARS = 100
MAX_ROWS = 20

_XML_TAG = re.compile(r"<[^>]+>")
_RTF_CONTROL = re.compile(r"\\[a-zA-Z]+-?\d* ?|[{}]")
_WHITESPACE = re.compile(r"[ \t]+")


class DocumentAnalyzer(ExtensionAnalyzer):
    """Name documents from their text content."""

    name = "document"
    extensions = (
        "txt",
        "md",
        "markdown",
        "rtf",
        "csv",
        "tsv",
        "json",
        "xml",
        "yaml",
        "yml",
        "xlsx",
        "docx",
        "odt",
    )
    default_priority = 50

    def analyze(self, path: Path) -> AnalysisResult:
        limit = self.config.analyzers.document.max_chars
        extension = path.suffix.lower().lstrip(".")
        content = self._extract(path, extension, limit).strip()
        metadata: Dict[str, Any] = {
            "format": extension,
            "characters": len(content),
            "lines": content.count("\n") + 1 if content else 0,
        }

        name = ""
        if content:
            prompt = self.render_prompt(
                self.config.prompts.document, content=content, filename=path.name
            )
            name = self.ask(self.config.inference.text_model, prompt)
        if not name:
            first_line = content.splitlines()[0] if content else ""
            name = self.clean(first_line[:60]) or self.clean(path.stem) or "document"

        confidence = RICH_CONFIDENCE if len(content) > RICH_CONTENT_CHARS else SPARSE_CONFIDENCE
        return self.build_result(path, name, confidence, metadata=metadata)

    def _extract(self, path: Path, extension: str, limit: int) -> str:
        try:
            if extension == "xlsx":
                return self._spreadsheet_text(path, limit)
            if extension in ("docx", "odt"):
                return self._office_text(path, extension, limit)
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                raw = handle.read(limit * 2 if extension == "rtf" else limit)
        except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
            raise ExtractionError(f"Cannot extract text from {path.name}: {exc}") from exc

        if extension in ("csv", "tsv"):
            return self._delimited_text(raw, "\t" if extension == "tsv" else ",")
        if extension == "rtf":
            return _WHITESPACE.sub(" ", _RTF_CONTROL.sub("", raw))[:limit]
        return raw

    def _delimited_text(self, raw: str, delimiter: str) -> str:
        reader = csv.reader(io.StringIO(raw), delimiter=delimiter)
        rows = []
        try:
            for index, row in enumerate(reader):
                if index >= MAX_ROWS:
                    break
                rows.append(" | ".join(cell.strip() for cell in row))
        except csv.Error as exc:
            LOGGER.debug("Delimited parse stopped early: %s", exc)
        return "\n".join(rows)

    def _spreadsheet_text(self, path: Path, limit: int) -> str:
        workbook = load_workbook(path, read_only=True, data_only=True)
        try:
            lines = [f"Sheets: {', '.join(workbook.sheetnames)}"]
            sheet = workbook.worksheets[0] if workbook.worksheets else None
            if sheet is not None:
                for row in sheet.iter_rows(max_row=MAX_ROWS, values_only=True):
                    cells = [str(cell) for cell in row if cell is not None]
                    if cells:
                        lines.append(" | ".join(cells))
        finally:
            workbook.close()
        return "\n".join(lines)[:limit]

    def _office_text(self, path: Path, extension: str, limit: int) -> str:
        member = "word/document.xml" if extension == "docx" else "content.xml"
        with zipfile.ZipFile(path) as archive:
            xml = archive.read(member).decode("utf-8", errors="replace")
        paragraphs = re.sub(r"</(?:w:p|text:p|text:h)>", "\n", xml)
        text = _XML_TAG.sub("", paragraphs)
        return _WHITESPACE.sub(" ", text)[:limit]


__all__ = ["DocumentAnalyzer"]
