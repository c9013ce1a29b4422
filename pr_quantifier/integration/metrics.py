from __future__ import annotations

import logging
import threading
from collections import defaultdict

from pr_quantifier.integration.event_bus import EventBus
from pr_quantifier.integration.events import PullRequestQuantified, RepositoryQuantified

logger = logging.getLogger(__name__)


class InMemoryMetrics:
    """Collects named numeric metrics from quantification events."""

    def __init__(self) -> None:
        self._values: defaultdict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def record_metric(self, name: str, value: float) -> None:
        with self._lock:
            self._values[name].append(float(value))
        logger.debug("metric %s=%s", name, value)

    def values(self, name: str) -> list[float]:
        with self._lock:
            return list(self._values.get(name, []))

    def count(self, name: str) -> int:
        return len(self.values(name))

    def attach(self, bus: EventBus) -> "InMemoryMetrics":
        bus.subscribe(PullRequestQuantified, self._on_pull_request)
        bus.subscribe(RepositoryQuantified, self._on_repository)
        return self

    def _on_pull_request(self, event: PullRequestQuantified) -> None:
        self.record_metric("PullRequestQuantifyElapsedMs", event.elapsed_ms)

    def _on_repository(self, event: RepositoryQuantified) -> None:
        self.record_metric("RepositoryCommitsScored", event.commits_scored)
        self.record_metric("RepositoryCommitsFailed", event.commits_failed)
