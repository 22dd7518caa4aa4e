"""Image analyzer backed by Pillow and a vision model."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Dict

from PIL import Image, UnidentifiedImageError

from .base import AnalysisResult, ExtensionAnalyzer
from .errors import ExtractionError

LOGGER = logging.getLogger(__name__)

MAX_DIMENSION = 1024
CONFIDENCE = 0.85


class ImageAnalyzer(ExtensionAnalyzer):
    """Describe photos, screenshots and other raster images."""

    name = "image"
    extensions = ("jpg", "jpeg", "png", "gif", "webp", "bmp", "tiff", "tif", "heic")
    default_priority = 100

    def analyze(self, path: Path) -> AnalysisResult:
        metadata, rendition = self._load(path)
        name = self.ask(
            self.config.inference.vision_model, self.config.prompts.image, image=rendition
        )
        if not name:
            name = f"image_{metadata['width']}x{metadata['height']}"
        return self.build_result(path, name, CONFIDENCE, metadata=metadata)

    def _load(self, path: Path) -> tuple[Dict[str, Any], bytes]:
        """Return image facts and a JPEG rendition no larger than MAX_DIMENSION."""
        try:
            with Image.open(path) as img:
                width, height = img.size
                metadata: Dict[str, Any] = {
                    "width": width,
                    "height": height,
                    "format": img.format,
                    "mode": img.mode,
                }
                preview = img.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise ExtractionError(f"Cannot decode image {path.name}: {exc}") from exc

        preview.thumbnail((MAX_DIMENSION, MAX_DIMENSION))
        buffer = io.BytesIO()
        preview.save(buffer, format="JPEG", quality=85)
        return metadata, buffer.getvalue()


__all__ = ["ImageAnalyzer"]
