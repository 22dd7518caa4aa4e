"""Shared analyzer contract, result model and naming helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Protocol,
    runtime_checkable,
)

from pydantic import BaseModel, Field, field_validator

from panoptes.config.models import PanoptesConfig
from panoptes.ingestion.detectors import HashComputer
from panoptes.inference.client import InferenceUnavailable
from panoptes.organization.naming import sanitize_filename

from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

STOP_WORDS: FrozenSet[str] = frozenset(
    {"the", "and", "for", "with", "from", "this", "that", "are", "was", "were"}
)


class _CategoryRule(NamedTuple):
    extensions: FrozenSet[str]
    default: str
    refinements: tuple[tuple[tuple[str, ...], str], ...] = ()


_CATEGORY_RULES: tuple[_CategoryRule, ...] = (
    _CategoryRule(
        frozenset({"jpg", "jpeg", "png", "gif", "webp", "heic", "bmp", "tiff", "tif"}),
        "Images",
        (
            (("screenshot",), "Screenshots"),
            (("photo", "img"), "Photos"),
            (("diagram", "chart"), "Diagrams"),
        ),
    ),
    _CategoryRule(
        frozenset({"pdf"}),
        "Documents",
        (
            (("invoice", "receipt"), "Finance"),
            (("resume", "cv"), "Career"),
            (("manual", "guide"), "Manuals"),
        ),
    ),
    _CategoryRule(
        frozenset({"mp3", "wav", "flac", "ogg", "m4a", "aac", "wma", "opus"}),
        "Music",
        ((("podcast",), "Podcasts"), (("voice", "recording"), "Recordings")),
    ),
    _CategoryRule(
        frozenset({"mp4", "mkv", "webm", "avi", "mov", "wmv", "flv", "m4v"}),
        "Videos",
        ((("tutorial", "lesson"), "Tutorials"), (("screen",), "Screen Recordings")),
    ),
    _CategoryRule(frozenset({"rs", "py", "js", "ts", "go", "java", "c", "cpp", "h"}), "Code"),
    _CategoryRule(frozenset({"zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar"}), "Archives"),
    _CategoryRule(frozenset({"doc", "docx", "odt", "txt", "md", "rtf"}), "Documents"),
    _CategoryRule(frozenset({"xls", "xlsx", "csv", "tsv", "ods"}), "Spreadsheets"),
    _CategoryRule(frozenset({"ppt", "pptx", "odp"}), "Presentations"),
)


def infer_category(name: str, extension: str) -> Optional[str]:
    """Guess a category from the extension, refined by keywords in the name."""
    ext = extension.lower().lstrip(".")
    lowered = name.lower()
    for rule in _CATEGORY_RULES:
        if ext not in rule.extensions:
            continue
        for keywords, category in rule.refinements:
            if any(keyword in lowered for keyword in keywords):
                return category
        return rule.default
    return None


def extract_tags(name: str, extra: Iterable[str] = ()) -> List[str]:
    """Derive tags from the words of a sanitized name plus analyzer-provided tags."""
    tags = {word for word in name.split("_") if len(word) >= 3 and word.lower() not in STOP_WORDS}
    tags.update(tag.strip() for tag in extra if tag and tag.strip())
    return sorted(tags)


class _BlankDefaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


class AnalysisResult(BaseModel):
    """Normalized output of an analyzer.

    Attributes:
        suggested_name: Proposed name, before sanitization.
        confidence: Certainty in the suggestion, between 0 and 1.
        category: Optional category label.
        tags: Case-preserved tags without duplicates.
        content_hash: Digest of the file bytes.
        metadata: Analyzer-specific details, opaque to the pipeline.
        analyzer: Name of the analyzer that produced the result.
    """

    suggested_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    content_hash: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    analyzer: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, values: List[str]) -> List[str]:
        seen: List[str] = []
        for value in values:
            if value and value not in seen:
                seen.append(value)
        return seen


@runtime_checkable
class Analyzer(Protocol):
    """Capability contract satisfied by every analyzer."""

    name: str

    def handles(self, path: Path) -> bool: ...

    def priority(self) -> int: ...

    def analyze(self, path: Path) -> AnalysisResult: ...


class TextModel(Protocol):
    """The subset of `InferenceClient` analyzers rely on."""

    def generate(self, model: str, prompt: str, *, image: Optional[bytes] = None) -> str: ...


class ExtensionAnalyzer:
    """Plumbing for analyzers that dispatch on file extension.

    Subclasses set `name`, `extensions` and `default_priority` and implement
    `analyze`.
    """

    name = "generic"
    extensions: tuple[str, ...] = ()
    default_priority = 0

    def __init__(
        self,
        config: PanoptesConfig,
        client: Optional[TextModel] = None,
        *,
        hasher: Optional[HashComputer] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.hasher = hasher or HashComputer()

    def supported_extensions(self) -> tuple[str, ...]:
        return self.extensions

    def handles(self, path: Path) -> bool:
        name = path.name.lower()
        return any(name.endswith(f".{extension}") for extension in self.extensions)

    def priority(self) -> int:
        return self.default_priority

    def analyze(self, path: Path) -> AnalysisResult:
        raise NotImplementedError

    # Helpers for subclasses ---------------------------------------------

    def clean(self, text: Optional[str]) -> str:
        """Sanitize a candidate name with the configured prefix window."""
        if not text:
            return ""
        return sanitize_filename(text, prefix_window=self.config.rules.prefix_window)

    def render_prompt(self, template: str, **values: Any) -> str:
        """Fill `{filename}`, `{content}` and `{details}` placeholders in a template.

        Unknown placeholders render empty. A template that cannot be formatted
        is sent as-is with the content appended.
        """
        try:
            return template.format_map(_BlankDefaults(values))
        except (AttributeError, IndexError, ValueError):
            content = values.get("content")
            return f"{template}\n\n{content}" if content else template

    def ask(self, model: str, prompt: str, *, image: Optional[bytes] = None) -> str:
        """Query the model server, returning a sanitized answer or "" on failure."""
        if self.client is None:
            return ""
        try:
            answer = self.client.generate(model, prompt, image=image)
        except InferenceUnavailable as exc:
            LOGGER.warning("%s analyzer falling back to a generic name: %s", self.name, exc)
            return ""
        return self.clean(answer)

    def content_hash(self, path: Path) -> str:
        try:
            return self.hasher.compute(path)
        except OSError as exc:
            raise ExtractionError(f"Cannot read {path}: {exc}") from exc

    def build_result(
        self,
        path: Path,
        name: str,
        confidence: float,
        *,
        category: Optional[str] = None,
        tags: Iterable[str] = (),
        metadata: Optional[Dict[str, Any]] = None,
        content_hash: Optional[str] = None,
    ) -> AnalysisResult:
        """Assemble a result, inferring category and tags when not given."""
        return AnalysisResult(
            suggested_name=name,
            confidence=confidence,
            category=category or infer_category(name, path.suffix),
            tags=extract_tags(name, tags),
            content_hash=content_hash or self.content_hash(path),
            metadata=metadata or {},
            analyzer=self.name,
        )


__all__ = [
    "AnalysisResult",
    "Analyzer",
    "ExtensionAnalyzer",
    "STOP_WORDS",
    "TextModel",
    "extract_tags",
    "infer_category",
]
