from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping


@dataclass(frozen=True)
class DomainEvent:
    """Base type for all domain events."""

    occurred_at: datetime


# --- Repository history events ----------------------------------------------


@dataclass(frozen=True)
class BatchFlushed(DomainEvent):
    repository: str
    batch_index: int
    commits_processed: int
    total_commits: int
    rows_written: int
    failures: int
    elapsed_seconds: float


@dataclass(frozen=True)
class RepositoryQuantified(DomainEvent):
    repository: str
    result_file: str
    commits_scored: int
    commits_failed: int
    batches: int
    elapsed_seconds: float


# --- Pull request events ------------------------------------------------------


@dataclass(frozen=True)
class PullRequestQuantified(DomainEvent):
    repository: str
    pull_request_number: int
    label: str
    context_path: str | None
    elapsed_ms: int
    result: Mapping[str, Any]
