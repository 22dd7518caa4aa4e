"""Content analyzers and the registry that dispatches between them."""

from __future__ import annotations

from typing import List, Optional, Type

from panoptes.config.models import PanoptesConfig
from panoptes.ingestion.detectors import HashComputer

from .archive import ArchiveAnalyzer
from .audio import AudioAnalyzer
from .base import (
    AnalysisResult,
    Analyzer,
    ExtensionAnalyzer,
    TextModel,
    extract_tags,
    infer_category,
)
from .code import CodeAnalyzer
from .document import DocumentAnalyzer
from .errors import ExtractionError
from .image import ImageAnalyzer
from .pdf import PdfAnalyzer
from .registry import AnalyzerRegistry
from .video import VideoAnalyzer

DEFAULT_ANALYZERS: List[Type[ExtensionAnalyzer]] = [
    ImageAnalyzer,
    PdfAnalyzer,
    AudioAnalyzer,
    VideoAnalyzer,
    CodeAnalyzer,
    DocumentAnalyzer,
    ArchiveAnalyzer,
]


def build_registry(
    config: PanoptesConfig,
    client: Optional[TextModel],
    *,
    hasher: Optional[HashComputer] = None,
) -> AnalyzerRegistry:
    """Register every analyzer enabled in the configuration.

    Args:
        config: Loaded configuration.
        client: Model client shared by the analyzers, or None to use
            fallback names only.
        hasher: Hash computer shared by the analyzers.

    Returns:
        AnalyzerRegistry: Registry ordered by analyzer priority.
    """
    registry = AnalyzerRegistry()
    shared_hasher = hasher or HashComputer()
    for analyzer_cls in DEFAULT_ANALYZERS:
        toggle = getattr(config.analyzers, analyzer_cls.name)
        if toggle.enabled:
            registry.register(analyzer_cls(config, client, hasher=shared_hasher))
    return registry


__all__ = [
    "AnalysisResult",
    "Analyzer",
    "AnalyzerRegistry",
    "ArchiveAnalyzer",
    "AudioAnalyzer",
    "CodeAnalyzer",
    "DEFAULT_ANALYZERS",
    "DocumentAnalyzer",
    "ExtensionAnalyzer",
    "ExtractionError",
    "ImageAnalyzer",
    "PdfAnalyzer",
    "TextModel",
    "VideoAnalyzer",
    "build_registry",
    "extract_tags",
    "infer_category",
]
