from __future__ import annotations

from typing import Protocol

from pr_quantifier.quantifier.domain.entities import NormalizedChangeSet, ScoreResult
from pr_quantifier.quantifier.oracle import QuantifierContext


class ScoringOracle(Protocol):
    """Turn a change-set into percentiles and a size label."""

    def score(
        self,
        change_set: NormalizedChangeSet,
        context: QuantifierContext | None = None,
    ) -> ScoreResult:
        ...


class ContentReader(Protocol):
    """Read a file from a repository at a given reference.

    Implementations raise GitHubNotFoundError when the path does not exist
    and any other exception for everything else.
    """

    def read_file(self, path: str, ref: str) -> str:
        ...
