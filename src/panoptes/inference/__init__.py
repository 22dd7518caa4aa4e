"""Client for the local model server used by the analyzers."""

from __future__ import annotations

from .client import InferenceClient, InferenceUnavailable, normalize_base_url

__all__ = ["InferenceClient", "InferenceUnavailable", "normalize_base_url"]
