"""Priority-ordered analyzer dispatch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional

from .base import Analyzer

LOGGER = logging.getLogger(__name__)


class AnalyzerRegistry:
    """Select the analyzer responsible for a file.

    Analyzers are kept sorted by descending priority. The sort is stable, so
    among analyzers of equal priority the one registered first is consulted
    first. Lookup is a linear scan returning the first analyzer whose
    `handles` accepts the path.
    """

    def __init__(self) -> None:
        self._analyzers: List[Analyzer] = []

    def register(self, analyzer: Analyzer) -> None:
        """Add an analyzer and restore priority order."""
        self._analyzers.append(analyzer)
        self._analyzers.sort(key=lambda item: item.priority(), reverse=True)
        LOGGER.debug(
            "Registered analyzer %s (priority %d)",
            getattr(analyzer, "name", type(analyzer).__name__),
            analyzer.priority(),
        )

    def find(self, path: Path) -> Optional[Analyzer]:
        """Return the highest-priority analyzer handling `path`, or None."""
        for analyzer in self._analyzers:
            if analyzer.handles(path):
                return analyzer
        return None

    def names(self) -> List[str]:
        return [getattr(analyzer, "name", type(analyzer).__name__) for analyzer in self._analyzers]

    def __iter__(self) -> Iterator[Analyzer]:
        return iter(list(self._analyzers))

    def __len__(self) -> int:
        return len(self._analyzers)


__all__ = ["AnalyzerRegistry"]
