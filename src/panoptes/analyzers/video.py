"""Video analyzer driving ffprobe and ffmpeg."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .base import AnalysisResult, ExtensionAnalyzer

LOGGER = logging.getLogger(__name__)

TITLE_CONFIDENCE = 0.95
FRAME_CONFIDENCE = 0.70
PROBE_TIMEOUT = 30
FRAME_TIMEOUT = 60


class VideoAnalyzer(ExtensionAnalyzer):
    """Name videos from their container title or from a representative frame.

    ffprobe and ffmpeg are optional. Without them every video falls back to
    `video_0min`.
    """

    name = "video"
    extensions = ("mp4", "mkv", "avi", "mov", "webm", "wmv", "flv", "m4v")
    default_priority = 75

    def analyze(self, path: Path) -> AnalysisResult:
        metadata = self._probe(path)
        title = self.clean(metadata.get("title"))
        if title:
            return self.build_result(path, title, TITLE_CONFIDENCE, metadata=metadata)

        name = ""
        frame = self._keyframe(path, metadata.get("duration_seconds"))
        if frame is not None:
            name = self.ask(
                self.config.inference.vision_model, self.config.prompts.video, image=frame
            )
        if not name:
            minutes = int((metadata.get("duration_seconds") or 0) // 60)
            name = f"video_{minutes}min"
        return self.build_result(path, name, FRAME_CONFIDENCE, metadata=metadata)

    def _probe(self, path: Path) -> Dict[str, Any]:
        ffprobe = shutil.which("ffprobe")
        if ffprobe is None:
            LOGGER.debug("ffprobe not found; skipping container metadata for %s", path.name)
            return {}
        command = [
            ffprobe,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            completed = subprocess.run(
                command, capture_output=True, check=True, timeout=PROBE_TIMEOUT
            )
            info = json.loads(completed.stdout or b"{}")
        except (subprocess.SubprocessError, OSError, ValueError) as exc:
            LOGGER.debug("ffprobe failed for %s: %s", path.name, exc)
            return {}

        container = info.get("format", {})
        metadata: Dict[str, Any] = {}
        try:
            metadata["duration_seconds"] = float(container.get("duration", 0) or 0)
        except (TypeError, ValueError):
            metadata["duration_seconds"] = 0.0
        title = (container.get("tags") or {}).get("title")
        if title:
            metadata["title"] = title
        for stream in info.get("streams", []):
            if stream.get("codec_type") == "video":
                metadata.update(
                    width=stream.get("width"),
                    height=stream.get("height"),
                    codec=stream.get("codec_name"),
                )
                break
        return metadata

    def _keyframe(self, path: Path, duration: Optional[float]) -> Optional[bytes]:
        """Return one JPEG frame taken a fraction of the way into the video."""
        ffmpeg = shutil.which("ffmpeg")
        if ffmpeg is None:
            return None
        keyframes = self.config.analyzers.video.keyframes
        offset = (duration or 0) / (keyframes + 1)
        with tempfile.TemporaryDirectory(prefix="panoptes-frame-") as tmp:
            target = Path(tmp) / "frame.jpg"
            command = [
                ffmpeg,
                "-v",
                "quiet",
                "-ss",
                f"{offset:.2f}",
                "-i",
                str(path),
                "-frames:v",
                "1",
                "-vf",
                "scale=1024:-2",
                "-y",
                str(target),
            ]
            try:
                subprocess.run(command, capture_output=True, check=True, timeout=FRAME_TIMEOUT)
                return target.read_bytes()
            except (subprocess.SubprocessError, OSError) as exc:
                LOGGER.debug("ffmpeg frame extraction failed for %s: %s", path.name, exc)
                return None


__all__ = ["VideoAnalyzer"]
