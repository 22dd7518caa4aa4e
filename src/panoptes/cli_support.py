"""Shared wiring used by the CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from panoptes.analyzers import AnalyzerRegistry, build_registry
from panoptes.config import ConfigManager, PanoptesConfig
from panoptes.inference import InferenceClient
from panoptes.ingestion import HashComputer, StabilityDetector
from panoptes.organization.executor import RenameExecutor
from panoptes.organization.naming import NameResolver
from panoptes.state import DuplicateIndex, FileRecord, HistoryLedger, MetadataStore
from panoptes.watch import FilePipeline, FileState, InFlightTracker, PipelineOutcome

LOGGER = logging.getLogger(__name__)


def load_config(cli_overrides: Optional[Dict[str, Any]] = None) -> PanoptesConfig:
    """Load configuration, creating the default file on first use.

    Raises:
        ConfigError: If the configuration is invalid.
    """
    manager = ConfigManager()
    manager.ensure_exists()
    return manager.load(cli_overrides=cli_overrides)


def open_ledger(config: PanoptesConfig) -> HistoryLedger:
    path = config.storage.history_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return HistoryLedger(path)


def open_store(config: PanoptesConfig) -> MetadataStore:
    """Open the metadata store.

    Raises:
        StoreError: If the database cannot be opened.
    """
    return MetadataStore(config.storage.database_path())


def check_inference(client: InferenceClient, config: PanoptesConfig) -> List[str]:
    """Verify the model server is reachable and report missing models.

    Returns:
        List[str]: Configured model names the server does not list.

    Raises:
        InferenceUnavailable: If the server cannot be reached.
    """
    available = client.health_check()
    settings = config.inference
    wanted = [settings.vision_model, settings.text_model, settings.code_model]
    missing = [
        model for model in dict.fromkeys(wanted) if not client.model_available(model, available)
    ]
    if missing:
        LOGGER.warning(
            "Models not installed on %s: %s (available: %s)",
            client.base_url,
            ", ".join(missing),
            ", ".join(available) or "none",
        )
    return missing


@dataclass(slots=True)
class Runtime:
    """Long-lived collaborators assembled for a pipeline run.

    Attributes:
        config: Loaded configuration.
        client: Model server client.
        registry: Analyzer registry.
        ledger: History ledger.
        store: Metadata store; None for dry runs.
        pipeline: Pipeline wired to the collaborators above.
    """

    config: PanoptesConfig
    client: InferenceClient
    registry: AnalyzerRegistry
    ledger: HistoryLedger
    store: Optional[MetadataStore]
    pipeline: FilePipeline

    def close(self) -> None:
        self.client.close()
        if self.store is not None:
            self.store.close()


def build_runtime(
    config: PanoptesConfig,
    *,
    dry_run: bool = False,
    skip_restored: bool = False,
    client: Optional[InferenceClient] = None,
) -> Runtime:
    """Assemble the pipeline and its collaborators from configuration.

    Dry runs open neither the store nor the duplicate index, so they leave
    no trace on disk beyond the log file.

    Args:
        config: Loaded configuration.
        dry_run: Decide without renaming, logging or persisting.
        skip_restored: Leave alone files that undo moved back.
        client: Client to use instead of one built from `config.inference`.

    Raises:
        StoreError: If the metadata store cannot be opened.
    """
    if client is None:
        client = InferenceClient(config.inference)
    hasher = HashComputer()
    registry = build_registry(config, client, hasher=hasher)
    ledger = open_ledger(config)
    tracker = InFlightTracker(echo_ttl=config.watch.echo_suppression_seconds)
    store = None if dry_run else open_store(config)
    duplicates = DuplicateIndex(store) if store is not None else None
    pipeline = FilePipeline(
        config,
        registry=registry,
        resolver=NameResolver(config.rules),
        executor=RenameExecutor(ledger, on_claim=tracker.note_produced),
        stability=StabilityDetector(config.watch.poll_interval_seconds),
        store=store,
        duplicates=duplicates,
        tracker=tracker,
        hasher=hasher,
        dry_run=dry_run,
        skip_restored=skip_restored,
    )
    return Runtime(
        config=config,
        client=client,
        registry=registry,
        ledger=ledger,
        store=store,
        pipeline=pipeline,
    )


def count_outcomes(outcomes: List[PipelineOutcome]) -> Dict[str, int]:
    """Return per-state totals in lifecycle order."""
    counts = {"processed": len(outcomes)}
    for state in (FileState.RENAMED, FileState.DECIDED, FileState.SKIPPED, FileState.FAILED):
        counts[state.value] = sum(1 for outcome in outcomes if outcome.state is state)
    return counts


def record_to_payload(record: FileRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json")


__all__ = [
    "Runtime",
    "build_runtime",
    "check_inference",
    "count_outcomes",
    "load_config",
    "open_ledger",
    "open_store",
    "record_to_payload",
]
