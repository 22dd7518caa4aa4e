"""PDF analyzer using document metadata and extracted text."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .base import AnalysisResult, ExtensionAnalyzer
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

TITLE_CONFIDENCE = 0.95
TEXT_CONFIDENCE = 0.75
MAX_TITLE_LENGTH = 100
MAX_TEXT_PAGES = 3


class PdfAnalyzer(ExtensionAnalyzer):
    """Name PDFs after their embedded title, or from their first pages."""

    name = "pdf"
    extensions = ("pdf",)
    default_priority = 90

    def analyze(self, path: Path) -> AnalysisResult:
        try:
            reader = PdfReader(str(path))
            page_count = len(reader.pages)
            info = reader.metadata
        except (PdfReadError, OSError, ValueError) as exc:
            raise ExtractionError(f"Cannot parse PDF {path.name}: {exc}") from exc

        metadata: Dict[str, Any] = {"pages": page_count}
        title = (info.title or "").strip() if info else ""
        if info:
            if info.author:
                metadata["author"] = info.author
            if info.subject:
                metadata["subject"] = info.subject
        if title:
            metadata["title"] = title

        cleaned_title = self.clean(title) if len(title) < MAX_TITLE_LENGTH else ""
        if cleaned_title:
            return self.build_result(path, cleaned_title, TITLE_CONFIDENCE, metadata=metadata)

        text = self._leading_text(reader, self.config.analyzers.pdf.max_chars)
        name = ""
        if text:
            prompt = self.render_prompt(
                self.config.prompts.document,
                content=text,
                filename=path.name,
                details=f"{page_count} pages",
            )
            name = self.ask(self.config.inference.text_model, prompt)
        if not name:
            name = f"document_{page_count}pages"
        return self.build_result(path, name, TEXT_CONFIDENCE, metadata=metadata)

    def _leading_text(self, reader: PdfReader, limit: int) -> str:
        parts = []
        remaining = limit
        for page in reader.pages[:MAX_TEXT_PAGES]:
            try:
                chunk = page.extract_text() or ""
            except (PdfReadError, ValueError, KeyError) as exc:
                LOGGER.debug("Text extraction failed on a page: %s", exc)
                continue
            parts.append(chunk[:remaining])
            remaining -= len(chunk)
            if remaining <= 0:
                break
        return "\n".join(parts).strip()


__all__ = ["PdfAnalyzer"]
