from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import islice
from pathlib import Path
from typing import Callable, Iterable, Iterator, Protocol

from pr_quantifier.integration.event_bus import EventBus
from pr_quantifier.integration.events import BatchFlushed, RepositoryQuantified
from pr_quantifier.pipeline.git_io import GitCommit, GitRepository
from pr_quantifier.pipeline.sink import CsvResultSink, ResultSink
from pr_quantifier.quantifier.domain.entities import CommitOutcome, CommitStat, NormalizedChangeSet
from pr_quantifier.quantifier.interfaces import ScoringOracle
from pr_quantifier.quantifier.oracle import QuantifierContext

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class CommitHistory(Protocol):
    """The parts of a repository the walker needs; GitRepository implements it."""

    @property
    def name(self) -> str:
        ...

    def count_first_parent_commits(self, rev: str = "HEAD") -> int:
        ...

    def iter_first_parent_commits(self, rev: str = "HEAD") -> Iterator[GitCommit]:
        ...

    def extract_changes(self, commit: GitCommit) -> NormalizedChangeSet:
        ...

    def time_to_merge(self, commit: GitCommit) -> timedelta:
        ...


class BatchAccumulator:
    """Thread-safe, key-unique collection of one batch's results.

    Iteration follows insertion order, i.e. the order in which scoring
    tasks completed. A fresh instance is created for every batch.
    """

    def __init__(self) -> None:
        self._stats: dict[str, CommitStat] = {}
        self._lock = threading.Lock()

    def add(self, stat: CommitStat) -> bool:
        with self._lock:
            if stat.commit_sha in self._stats:
                return False
            self._stats[stat.commit_sha] = stat
            return True

    def values(self) -> list[CommitStat]:
        with self._lock:
            return list(self._stats.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._stats)


@dataclass(frozen=True)
class WalkSummary:
    repository: str
    commits_scored: int
    commits_failed: int
    batches: int
    elapsed_seconds: float


def iter_batches(commits: Iterable[GitCommit], size: int) -> Iterator[list[GitCommit]]:
    it = iter(commits)
    while True:
        batch = list(islice(it, size))
        if not batch:
            return
        yield batch


@dataclass
class CommitHistoryWalker:
    """Score every non-root first-parent commit, one batch at a time."""

    oracle: ScoringOracle
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int | None = None
    context: QuantifierContext | None = None
    bus: EventBus | None = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def __post_init__(self) -> None:
        if int(self.batch_size) < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_workers is not None and int(self.max_workers) < 1:
            self.max_workers = None

    def score_commit(
        self,
        repo: CommitHistory,
        commit: GitCommit,
        accumulator: BatchAccumulator,
    ) -> CommitOutcome:
        """Score one commit into `accumulator`; failures are logged and returned, never raised."""
        try:
            changes = repo.extract_changes(commit)
            score = self.oracle.score(changes, self.context)
            stat = CommitStat(
                commit_sha=commit.sha,
                score=score,
                time_to_merge=repo.time_to_merge(commit),
                author_email=commit.author_email,
                author_name=commit.author_name,
            )
        except Exception as exc:
            logger.warning("Skipping commit %s: %s", commit.sha, exc)
            return CommitOutcome(commit_sha=commit.sha, error=str(exc) or type(exc).__name__)

        accumulator.add(stat)
        return CommitOutcome(commit_sha=commit.sha, stat=stat)

    def walk(self, repo: CommitHistory, sink: ResultSink) -> WalkSummary:
        total = repo.count_first_parent_commits()
        logger.info("Total commits to evaluate: %d. Repository %s.", total, repo.name)

        start = self.clock()
        scored = failed = processed = batches = 0
        scorable = (c for c in repo.iter_first_parent_commits() if not c.is_root)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="quantify") as pool:
            for batch in iter_batches(scorable, int(self.batch_size)):
                accumulator = BatchAccumulator()
                futures = [pool.submit(self.score_commit, repo, c, accumulator) for c in batch]
                wait(futures)

                outcomes = [f.result() for f in futures]
                batch_failures = sum(1 for o in outcomes if not o.ok)

                rows = sink.append(accumulator.values())

                batches += 1
                processed += len(batch)
                scored += rows
                failed += batch_failures
                elapsed = self.clock() - start
                logger.info("%d/%d %s", processed, total, timedelta(seconds=round(elapsed)))

                if self.bus is not None:
                    self.bus.publish(
                        BatchFlushed(
                            occurred_at=datetime.now(timezone.utc),
                            repository=repo.name,
                            batch_index=batches - 1,
                            commits_processed=processed,
                            total_commits=total,
                            rows_written=rows,
                            failures=batch_failures,
                            elapsed_seconds=float(elapsed),
                        )
                    )

        return WalkSummary(
            repository=repo.name,
            commits_scored=scored,
            commits_failed=failed,
            batches=batches,
            elapsed_seconds=float(self.clock() - start),
        )


def quantify_repository(
    path: Path,
    walker: CommitHistoryWalker,
    *,
    out_dir: Path | None = None,
) -> WalkSummary | None:
    """Quantify the repository containing `path` into a fresh results file.

    Returns None, after logging, when `path` is not inside a repository.
    Sink write errors propagate to the caller.
    """
    repo = GitRepository.discover(path)
    if repo is None:
        logger.warning("No repo found at %s", path)
        return None

    sink = CsvResultSink.for_repository(out_dir or repo.root, repo.name)
    sink.initialize()
    summary = walker.walk(repo, sink)
    logger.info(
        "Quantified %s: %d commits scored, %d skipped, results in %s",
        repo.name,
        summary.commits_scored,
        summary.commits_failed,
        sink.path,
    )

    if walker.bus is not None:
        walker.bus.publish(
            RepositoryQuantified(
                occurred_at=datetime.now(timezone.utc),
                repository=repo.name,
                result_file=str(sink.path),
                commits_scored=summary.commits_scored,
                commits_failed=summary.commits_failed,
                batches=summary.batches,
                elapsed_seconds=summary.elapsed_seconds,
            )
        )
    return summary
