from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import PurePosixPath
from typing import Sequence

import numpy as np
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from pr_quantifier.quantifier.domain.entities import ChangeRecord, NormalizedChangeSet, ScoreResult

logger = logging.getLogger(__name__)


def _default_reference(upper: float) -> list[float]:
    # Log-spaced change sizes: most changes are small, a long tail is large.
    return [float(v) for v in np.round(np.geomspace(1.0, upper, num=200))]


class LabelThreshold(BaseModel):
    label: str
    upper_bound: int | None = Field(
        default=None,
        description="Inclusive upper bound on quantified lines; None means unbounded.",
    )


def _default_thresholds() -> list[LabelThreshold]:
    return [
        LabelThreshold(label="Extra Small", upper_bound=9),
        LabelThreshold(label="Small", upper_bound=29),
        LabelThreshold(label="Medium", upper_bound=99),
        LabelThreshold(label="Large", upper_bound=499),
        LabelThreshold(label="Extra Large", upper_bound=None),
    ]


class QuantifierContext(BaseModel):
    """Settings read from a `.prquantifier` context file.

    Example:

        excluded:
          - "*.lock"
          - "docs/*"
        thresholds:
          - {label: Small, upper_bound: 50}
          - {label: Large}
    """

    excluded: list[str] = Field(default_factory=list)
    thresholds: list[LabelThreshold] = Field(default_factory=_default_thresholds)
    additions_reference: list[float] = Field(default_factory=lambda: _default_reference(2000.0))
    deletions_reference: list[float] = Field(default_factory=lambda: _default_reference(1500.0))

    @field_validator("thresholds")
    @classmethod
    def _non_empty_thresholds(cls, value: list[LabelThreshold]) -> list[LabelThreshold]:
        if not value:
            raise ValueError("thresholds must not be empty")
        return value

    @field_validator("additions_reference", "deletions_reference")
    @classmethod
    def _non_empty_reference(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("reference distributions must not be empty")
        return value

    @classmethod
    def from_yaml(cls, content: str) -> "QuantifierContext":
        raw = yaml.safe_load(content) or {}
        if not isinstance(raw, dict):
            raise ValueError("context file must contain a mapping")
        return cls.model_validate(raw)

    def is_excluded(self, path: str) -> bool:
        name = PurePosixPath(path).name
        return any(fnmatch(path, p) or fnmatch(name, p) for p in self.excluded)

    def label_for(self, lines: int) -> str:
        for threshold in self.thresholds:
            if threshold.upper_bound is None or lines <= threshold.upper_bound:
                return threshold.label
        return self.thresholds[-1].label


def load_context(content: str | None) -> QuantifierContext | None:
    """Parse context file content, returning None when it is absent or invalid."""
    if content is None:
        return None
    try:
        return QuantifierContext.from_yaml(content)
    except (yaml.YAMLError, ValidationError, ValueError) as exc:
        logger.warning("Ignoring invalid context file: %s", exc)
        return None


def _percentile_of(reference: np.ndarray, value: int) -> float:
    pct = float(np.mean(reference <= value) * 100.0)
    return float(np.clip(pct, 0.0, 100.0))


@dataclass
class PercentileOracle:
    """Score a change-set against empirical change-size distributions."""

    default_context: QuantifierContext = field(default_factory=QuantifierContext)

    def score(
        self,
        change_set: NormalizedChangeSet,
        context: QuantifierContext | None = None,
    ) -> ScoreResult:
        ctx = context or self.default_context
        counted: Sequence[ChangeRecord] = [r for r in change_set if not ctx.is_excluded(r.path)]
        added = sum(r.lines_added for r in counted)
        deleted = sum(r.lines_deleted for r in counted)

        pa = _percentile_of(np.asarray(ctx.additions_reference, dtype=float), added)
        pd = _percentile_of(np.asarray(ctx.deletions_reference, dtype=float), deleted)

        return ScoreResult(
            quantified_lines_added=added,
            quantified_lines_deleted=deleted,
            absolute_lines_added=change_set.absolute_lines_added,
            absolute_lines_deleted=change_set.absolute_lines_deleted,
            percentile_addition=pa,
            percentile_deletion=pd,
            diff_percentile=(pa + pd) / 2.0,
            label=ctx.label_for(added + deleted),
        )
