"""Tests for the built-in analyzers."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import List, Optional

import pytest
from PIL import Image
from pypdf import PdfWriter

from panoptes.analyzers import (
    ArchiveAnalyzer,
    AudioAnalyzer,
    CodeAnalyzer,
    DocumentAnalyzer,
    ExtractionError,
    ImageAnalyzer,
    PdfAnalyzer,
    VideoAnalyzer,
    extract_tags,
    infer_category,
)
from panoptes.config import PanoptesConfig
from panoptes.inference import InferenceUnavailable


class FakeModel:
    """Records prompts and answers with a canned reply."""

    def __init__(self, answer: str = "", *, fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: List[dict] = []

    def generate(self, model: str, prompt: str, *, image: Optional[bytes] = None) -> str:
        self.calls.append({"model": model, "prompt": prompt, "image": image})
        if self.fail:
            raise InferenceUnavailable("server offline")
        return self.answer


@pytest.fixture()
def config() -> PanoptesConfig:
    return PanoptesConfig()


def _png(path: Path, size: tuple[int, int] = (40, 30)) -> Path:
    Image.new("RGB", size, color=(200, 120, 40)).save(path, format="PNG")
    return path


def test_image_is_named_by_the_vision_model(tmp_path: Path, config: PanoptesConfig) -> None:
    model = FakeModel("Filename: Sunset Over Lake")
    source = _png(tmp_path / "IMG_2041.png")

    result = ImageAnalyzer(config, model).analyze(source)

    assert result.suggested_name == "sunset_over_lake"
    assert result.confidence == pytest.approx(0.85)
    assert result.category == "Images"
    assert result.metadata["width"] == 40
    assert result.metadata["height"] == 30
    assert result.analyzer == "image"
    assert model.calls[0]["model"] == config.inference.vision_model
    assert model.calls[0]["image"].startswith(b"\xff\xd8")


@pytest.mark.parametrize("model", [None, FakeModel(fail=True), FakeModel("   ")])
def test_image_falls_back_to_dimensions(
    tmp_path: Path, config: PanoptesConfig, model: Optional[FakeModel]
) -> None:
    source = _png(tmp_path / "upload.png", size=(64, 48))

    result = ImageAnalyzer(config, model).analyze(source)

    assert result.suggested_name == "image_64x48"


def test_undecodable_image_raises_extraction_error(
    tmp_path: Path, config: PanoptesConfig
) -> None:
    source = tmp_path / "broken.jpg"
    source.write_bytes(b"definitely not a jpeg")

    with pytest.raises(ExtractionError):
        ImageAnalyzer(config, None).analyze(source)


def test_pdf_title_wins_with_high_confidence(tmp_path: Path, config: PanoptesConfig) -> None:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    writer.add_metadata({"/Title": "Annual Report 2023", "/Author": "Finance Team"})
    source = tmp_path / "scan0001.pdf"
    with source.open("wb") as handle:
        writer.write(handle)
    model = FakeModel("should not be asked")

    result = PdfAnalyzer(config, model).analyze(source)

    assert result.suggested_name == "annual_report_2023"
    assert result.confidence == pytest.approx(0.95)
    assert result.metadata["pages"] == 1
    assert result.metadata["author"] == "Finance Team"
    assert model.calls == []


def test_pdf_without_title_or_text_uses_page_count(
    tmp_path: Path, config: PanoptesConfig
) -> None:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    writer.add_blank_page(width=72, height=72)
    source = tmp_path / "blank.pdf"
    with source.open("wb") as handle:
        writer.write(handle)

    result = PdfAnalyzer(config, None).analyze(source)

    assert result.suggested_name == "document_2pages"
    assert result.confidence == pytest.approx(0.75)


def test_document_confidence_depends_on_content_length(
    tmp_path: Path, config: PanoptesConfig
) -> None:
    rich = tmp_path / "notes.txt"
    rich.write_text("Quarterly Budget Review\n" + "details " * 40, encoding="utf-8")
    sparse = tmp_path / "todo.txt"
    sparse.write_text("Buy milk", encoding="utf-8")
    analyzer = DocumentAnalyzer(config, None)

    rich_result = analyzer.analyze(rich)
    sparse_result = analyzer.analyze(sparse)

    assert rich_result.suggested_name == "quarterly_budget_review"
    assert rich_result.confidence == pytest.approx(0.75)
    assert rich_result.category == "Documents"
    assert rich_result.tags == ["budget", "quarterly", "review"]
    assert sparse_result.suggested_name == "buy_milk"
    assert sparse_result.confidence == pytest.approx(0.50)


def test_document_prompt_carries_the_content(tmp_path: Path, config: PanoptesConfig) -> None:
    source = tmp_path / "doc.md"
    source.write_text("# Onboarding checklist\n\n- laptop\n- badge\n", encoding="utf-8")
    model = FakeModel("new_hire_onboarding")

    result = DocumentAnalyzer(config, model).analyze(source)

    assert result.suggested_name == "new_hire_onboarding"
    assert "Onboarding checklist" in model.calls[0]["prompt"]
    assert "{content}" not in model.calls[0]["prompt"]
    assert model.calls[0]["model"] == config.inference.text_model


def test_empty_document_is_named_after_its_stem(tmp_path: Path, config: PanoptesConfig) -> None:
    source = tmp_path / "Meeting Notes.txt"
    source.write_text("", encoding="utf-8")
    model = FakeModel("unused")

    result = DocumentAnalyzer(config, model).analyze(source)

    assert result.suggested_name == "meeting_notes"
    assert model.calls == []


def test_code_fallback_uses_primary_function(tmp_path: Path, config: PanoptesConfig) -> None:
    source = tmp_path / "script.py"
    source.write_text(
        "import os\n\n"
        "def _helper():\n    pass\n\n"
        "def parse_invoice(data):\n    return data\n\n"
        "if __name__ == '__main__':\n    parse_invoice(1)\n",
        encoding="utf-8",
    )

    result = CodeAnalyzer(config, None).analyze(source)

    assert result.suggested_name == "parse_invoice_python"
    assert result.confidence == pytest.approx(0.70)
    assert result.category == "Code"
    assert "executable" in result.tags
    assert "python" in result.tags
    assert result.metadata["functions"] == ["_helper", "parse_invoice"]
    assert result.metadata["imports"] == 1
    assert result.metadata["has_main"] is True


def test_archive_is_classified_from_its_listing(tmp_path: Path, config: PanoptesConfig) -> None:
    source = tmp_path / "download.zip"
    with zipfile.ZipFile(source, "w") as archive:
        archive.writestr("project/pyproject.toml", "[project]\n")
        archive.writestr("project/src/app.py", "print('hi')\n")

    result = ArchiveAnalyzer(config, None).analyze(source)

    assert result.suggested_name == "python_project"
    assert result.category == "Archives"
    assert result.metadata == {"files": 2, "archive_type": "python_project"}


def test_unreadable_audio_falls_back_to_its_stem(tmp_path: Path, config: PanoptesConfig) -> None:
    source = tmp_path / "Track 01.mp3"
    source.write_bytes(b"\x00" * 64)

    result = AudioAnalyzer(config, None).analyze(source)

    assert result.suggested_name == "track_01"
    assert result.confidence == pytest.approx(0.60)
    assert result.category == "Music"


def test_video_without_metadata_is_named_by_duration(
    tmp_path: Path, config: PanoptesConfig
) -> None:
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"\x00" * 64)

    result = VideoAnalyzer(config, None).analyze(source)

    assert result.suggested_name == "video_0min"
    assert result.confidence == pytest.approx(0.70)
    assert result.category == "Videos"


def test_identical_content_has_identical_hashes(tmp_path: Path, config: PanoptesConfig) -> None:
    first = tmp_path / "a.txt"
    second = tmp_path / "b.txt"
    first.write_text("same", encoding="utf-8")
    second.write_text("same", encoding="utf-8")
    analyzer = DocumentAnalyzer(config, None)

    assert analyzer.analyze(first).content_hash == analyzer.analyze(second).content_hash


@pytest.mark.parametrize(
    ("name", "extension", "expected"),
    [
        ("screenshot_2024", ".png", "Screenshots"),
        ("holiday", ".JPG", "Images"),
        ("invoice_march", ".pdf", "Finance"),
        ("budget", ".xlsx", "Spreadsheets"),
        ("unknown", ".xyz", None),
    ],
)
def test_infer_category(name: str, extension: str, expected: Optional[str]) -> None:
    assert infer_category(name, extension) == expected


def test_extract_tags_drops_short_and_stop_words() -> None:
    assert extract_tags("the_big_report_for_q3", ["Finance"]) == ["Finance", "big", "report"]
