from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Iterable, Iterator


class ScoreValidationError(ValueError):
    pass


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangeRecord:
    """Line counts for one file between two tree states."""

    path: str
    lines_added: int
    lines_deleted: int
    kind: ChangeKind
    previous_path: str | None = None


@dataclass(frozen=True)
class NormalizedChangeSet:
    """Ordered change records for a single commit or pull request."""

    records: tuple[ChangeRecord, ...] = ()

    @classmethod
    def of(cls, records: Iterable[ChangeRecord]) -> "NormalizedChangeSet":
        return cls(records=tuple(records))

    def __iter__(self) -> Iterator[ChangeRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def absolute_lines_added(self) -> int:
        return sum(r.lines_added for r in self.records)

    @property
    def absolute_lines_deleted(self) -> int:
        return sum(r.lines_deleted for r in self.records)


@dataclass(frozen=True)
class ScoreResult:
    quantified_lines_added: int
    quantified_lines_deleted: int
    absolute_lines_added: int
    absolute_lines_deleted: int
    percentile_addition: float
    percentile_deletion: float
    diff_percentile: float
    label: str

    def __post_init__(self) -> None:
        for name in ("percentile_addition", "percentile_deletion", "diff_percentile"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ScoreValidationError(f"{name} out of range [0, 100]: {value}")
        if self.quantified_lines_added > self.absolute_lines_added:
            raise ScoreValidationError("quantified_lines_added exceeds absolute_lines_added")
        if self.quantified_lines_deleted > self.absolute_lines_deleted:
            raise ScoreValidationError("quantified_lines_deleted exceeds absolute_lines_deleted")


@dataclass(frozen=True)
class CommitStat:
    """A scored commit, as written to the results file."""

    commit_sha: str
    score: ScoreResult
    time_to_merge: timedelta
    author_email: str
    author_name: str


@dataclass(frozen=True)
class CommitOutcome:
    """Result-or-skip value returned by every scoring task."""

    commit_sha: str
    stat: CommitStat | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.stat is not None


@dataclass(frozen=True)
class ContextResolution:
    """Which context file governs a pull request, and how it was found.

    `attempts` lists every path read, in order. `by_directory` maps each
    changed-file directory to the context path that applies to it (None when
    nothing applies). `path`/`content` describe the chosen context.
    """

    attempts: tuple[str, ...] = ()
    by_directory: dict[str, str | None] = field(default_factory=dict)
    path: str | None = None
    content: str | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.path is not None
