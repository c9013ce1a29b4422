from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol

from pr_quantifier.common.time_utils import format_duration
from pr_quantifier.quantifier.domain.entities import CommitStat

logger = logging.getLogger(__name__)

RESULT_FILE_SUFFIX = "_QuantifierResults.csv"

HEADER: tuple[str, ...] = (
    "CommitSha1",
    "QuantifiedLinesAdded",
    "QuantifiedLinesDeleted",
    "AbsoluteLinesAdded",
    "AbsoluteLinesDeleted",
    "PercentileAddition",
    "PercentileDeletion",
    "DiffPercentile",
    "Label",
    "TimeToMerge",
    "AuthorEmail",
    "AuthorName",
)


def result_file_name(repository_name: str) -> str:
    return f"{repository_name}{RESULT_FILE_SUFFIX}"


def to_row(stat: CommitStat) -> list[str]:
    s = stat.score
    return [
        stat.commit_sha,
        str(s.quantified_lines_added),
        str(s.quantified_lines_deleted),
        str(s.absolute_lines_added),
        str(s.absolute_lines_deleted),
        str(round(s.percentile_addition, 2)),
        str(round(s.percentile_deletion, 2)),
        str(round(s.diff_percentile, 2)),
        s.label,
        format_duration(stat.time_to_merge),
        stat.author_email,
        stat.author_name,
    ]


class ResultSink(Protocol):
    def initialize(self) -> None:
        ...

    def append(self, stats: Iterable[CommitStat]) -> int:
        ...


@dataclass
class CsvResultSink(ResultSink):
    """Append-only CSV file holding one row per scored commit.

    `initialize` replaces any earlier file for the repository and writes the
    header; every `append` adds rows at the end and never touches old ones.
    """

    path: Path
    flush_count: int = field(default=0, init=False)
    rows_written: int = field(default=0, init=False)

    @classmethod
    def for_repository(cls, out_dir: Path, repository_name: str) -> "CsvResultSink":
        return cls(path=Path(out_dir) / result_file_name(repository_name))

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            logger.info("Removing previous results %s", self.path)
            self.path.unlink()
        with self.path.open("w", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow(HEADER)

    def append(self, stats: Iterable[CommitStat]) -> int:
        rows = [to_row(s) for s in stats]
        with self.path.open("a", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerows(rows)
        self.flush_count += 1
        self.rows_written += len(rows)
        return len(rows)
