"""Configuration models describing Panoptes settings."""

from __future__ import annotations

from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_IGNORE_SUFFIXES = [".tmp", ".part", ".crdownload", ".partial", ".download"]
DEFAULT_IGNORE_NAMES = ["desktop.ini", "thumbs.db", ".ds_store"]


class PanoptesBaseModel(BaseModel):
    """Shared configuration for Panoptes Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class WatchSettings(PanoptesBaseModel):
    """Settings for the filesystem watcher and per-file stabilization.

    Attributes:
        paths: Directories monitored when `panoptes watch` receives no arguments.
        recursive: Whether subdirectories are monitored as well.
        poll_interval_seconds: Delay between two file-size samples.
        stability_timeout_seconds: Upper bound on the stabilization wait.
        max_workers: Number of files processed concurrently.
        ignore_suffixes: Temporary-file suffixes that are never processed.
        ignore_names: OS sidecar file names that are never processed.
        process_hidden_files: Whether dot-files are processed.
        echo_suppression_seconds: How long events for paths produced by
            Panoptes itself are ignored.
        restore_grace_seconds: How long after an undo a file moved back to its
            original path is left alone by the watcher.
    """

    paths: List[str] = Field(default_factory=lambda: ["./watch"])
    recursive: bool = False
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    stability_timeout_seconds: float = Field(default=30.0, ge=0)
    max_workers: int = Field(default=4, ge=1)
    ignore_suffixes: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_SUFFIXES))
    ignore_names: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORE_NAMES))
    process_hidden_files: bool = False
    echo_suppression_seconds: float = Field(default=10.0, ge=0)
    restore_grace_seconds: float = Field(default=300.0, ge=0)

    @field_validator("ignore_suffixes", "ignore_names")
    @classmethod
    def _lowercase(cls, values: List[str]) -> List[str]:
        return [value.lower() for value in values]


class InferenceSettings(PanoptesBaseModel):
    """Connection settings for the local model server.

    Attributes:
        url: Base URL of an Ollama-compatible server.
        vision_model: Model used for images and video keyframes.
        text_model: Model used for documents, audio and archives.
        code_model: Model used for source files.
        timeout_seconds: Timeout applied to generation requests.
        health_timeout_seconds: Timeout applied to health checks.
        retries: Additional attempts after a failed request.
        backoff_seconds: Base of the exponential backoff between attempts.
        max_backoff_seconds: Cap on a single backoff delay.
    """

    url: str = "http://localhost:11434"
    vision_model: str = "moondream"
    text_model: str = "llama3.2:3b"
    code_model: str = "deepseek-coder:1.3b"
    timeout_seconds: float = Field(default=120.0, gt=0)
    health_timeout_seconds: float = Field(default=10.0, gt=0)
    retries: int = Field(default=3, ge=0)
    backoff_seconds: float = Field(default=1.0, ge=0)
    max_backoff_seconds: float = Field(default=30.0, ge=0)


class NamingRules(PanoptesBaseModel):
    """Rules applied when turning a suggestion into a filename.

    Attributes:
        sanitize: Whether suggestions are sanitized before use.
        date_prefix: Whether an ISO date is prepended to new names.
        date_format: strftime format of the date prefix.
        max_length: Maximum length of the name without extension.
        rename_threshold: Minimum confidence required to rename a file.
        prefix_window: A chat-style `label:` prefix is stripped only when the
            colon occurs within this many characters.
        auto_categorize: Whether inferred categories are recorded.
        duplicate_detection: Whether content hashes are checked for duplicates.
    """

    sanitize: bool = True
    date_prefix: bool = True
    date_format: str = "%Y-%m-%d"
    max_length: int = Field(default=50, ge=8)
    rename_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    prefix_window: int = Field(default=30, ge=0)
    auto_categorize: bool = True
    duplicate_detection: bool = True


class PromptSettings(PanoptesBaseModel):
    """Prompt templates sent to the model server, one per content family."""

    image: str = (
        "Describe this image in 3-5 words suitable for a filename. "
        "Use snake_case. Return ONLY the filename, nothing else."
    )
    document: str = (
        "Based on this document content, suggest a descriptive filename (max 5 words). "
        "Use snake_case. Return ONLY the filename.\n\nContent:\n{content}"
    )
    audio: str = (
        "Based on this audio file name and details, suggest a descriptive filename "
        "(max 5 words). Use snake_case. Return ONLY the filename.\n\n"
        "File: {filename}\n{details}"
    )
    video: str = (
        "This is a frame from a video. Describe the video in 3-5 words suitable for a "
        "filename. Use snake_case. Return ONLY the filename."
    )
    code: str = (
        "Based on this source code, suggest a descriptive filename (max 5 words) that "
        "describes what it does. Use snake_case. Return ONLY the filename.\n\n"
        "Language: {details}\nCode:\n{content}"
    )
    archive: str = (
        "Based on the files inside this archive, suggest a descriptive filename "
        "(max 5 words). Use snake_case. Return ONLY the filename.\n\nContents:\n{content}"
    )


class ToggleSettings(PanoptesBaseModel):
    """Enable flag shared by analyzers without further options."""

    enabled: bool = True


class TextExtractionSettings(ToggleSettings):
    """Options for analyzers that send extracted text to the model.

    Attributes:
        enabled: Whether the analyzer is registered.
        max_chars: Maximum number of characters forwarded in a prompt.
    """

    max_chars: int = Field(default=2000, ge=100)


class AudioSettings(ToggleSettings):
    """Options for the audio analyzer."""

    use_metadata: bool = True


class VideoSettings(ToggleSettings):
    """Options for the video analyzer."""

    keyframes: int = Field(default=5, ge=1)


class AnalyzerSettings(PanoptesBaseModel):
    """Per-family analyzer switches and limits."""

    image: ToggleSettings = Field(default_factory=ToggleSettings)
    pdf: TextExtractionSettings = Field(default_factory=TextExtractionSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    video: VideoSettings = Field(default_factory=VideoSettings)
    code: TextExtractionSettings = Field(
        default_factory=lambda: TextExtractionSettings(max_chars=3000)
    )
    document: TextExtractionSettings = Field(default_factory=TextExtractionSettings)
    archive: ToggleSettings = Field(default_factory=ToggleSettings)


class StorageSettings(PanoptesBaseModel):
    """Locations of the metadata database and the rename history.

    Attributes:
        state_dir: Directory holding Panoptes state.
        database: SQLite database file, relative to `state_dir` unless absolute.
        history: JSONL history ledger, relative to `state_dir` unless absolute.
    """

    state_dir: str = "~/.panoptes"
    database: str = "panoptes.db"
    history: str = "history.jsonl"

    def state_path(self) -> Path:
        """Return the expanded state directory."""
        return Path(self.state_dir).expanduser()

    def database_path(self) -> Path:
        """Return the resolved database location."""
        return self._resolve(self.database)

    def history_path(self) -> Path:
        """Return the resolved history ledger location."""
        return self._resolve(self.history)

    def _resolve(self, value: str) -> Path:
        candidate = Path(value).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.state_path() / candidate


class LoggingSettings(PanoptesBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Log file name inside the state directory.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "INFO"
    file: str = "panoptes.log"
    max_size_mb: int = Field(default=10, ge=1)
    backup_count: int = Field(default=5, ge=0)


class CLIOptions(PanoptesBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        history_limit: Default number of history entries to display.
    """

    quiet_default: bool = False
    summary_default: bool = False
    history_limit: int = Field(default=10, ge=1)


class PanoptesConfig(PanoptesBaseModel):
    """Top-level configuration struct for Panoptes.

    Attributes:
        watch: Watcher and stabilization settings.
        inference: Model server settings.
        rules: Naming and rename-gating rules.
        prompts: Prompt templates.
        analyzers: Analyzer toggles.
        storage: State file locations.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    watch: WatchSettings = Field(default_factory=WatchSettings)
    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    rules: NamingRules = Field(default_factory=NamingRules)
    prompts: PromptSettings = Field(default_factory=PromptSettings)
    analyzers: AnalyzerSettings = Field(default_factory=AnalyzerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "PanoptesBaseModel",
    "WatchSettings",
    "InferenceSettings",
    "NamingRules",
    "PromptSettings",
    "ToggleSettings",
    "TextExtractionSettings",
    "AudioSettings",
    "VideoSettings",
    "AnalyzerSettings",
    "StorageSettings",
    "LoggingSettings",
    "CLIOptions",
    "PanoptesConfig",
]
