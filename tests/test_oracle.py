from __future__ import annotations

import pytest

from pr_quantifier.quantifier.domain.entities import (
    ChangeKind,
    ChangeRecord,
    NormalizedChangeSet,
    ScoreResult,
    ScoreValidationError,
)
from pr_quantifier.quantifier.oracle import PercentileOracle, QuantifierContext, load_context


def _changes(*records: tuple[str, int, int]) -> NormalizedChangeSet:
    return NormalizedChangeSet.of(ChangeRecord(p, a, d, ChangeKind.MODIFIED) for p, a, d in records)


def test_percentiles_stay_in_range() -> None:
    oracle = PercentileOracle()
    for added, deleted in [(0, 0), (1, 0), (40, 12), (10_000, 50_000)]:
        res = oracle.score(_changes(("a.py", added, deleted)))
        for pct in (res.percentile_addition, res.percentile_deletion, res.diff_percentile):
            assert 0.0 <= pct <= 100.0

    huge = oracle.score(_changes(("a.py", 10_000, 50_000)))
    assert huge.percentile_addition == 100.0
    assert huge.label == "Extra Large"


def test_default_labels() -> None:
    oracle = PercentileOracle()
    assert oracle.score(_changes(("a.py", 5, 4))).label == "Extra Small"
    assert oracle.score(_changes(("a.py", 20, 0))).label == "Small"
    assert oracle.score(_changes(("a.py", 50, 49))).label == "Medium"
    assert oracle.score(_changes(("a.py", 300, 0))).label == "Large"


def test_excluded_files_count_as_absolute_only() -> None:
    ctx = QuantifierContext.from_yaml("excluded:\n  - '*.lock'\n  - 'docs/*'\n")
    res = PercentileOracle().score(
        _changes(("poetry.lock", 900, 800), ("docs/guide.md", 10, 0), ("src/app.py", 7, 2)),
        ctx,
    )

    assert (res.quantified_lines_added, res.quantified_lines_deleted) == (7, 2)
    assert (res.absolute_lines_added, res.absolute_lines_deleted) == (917, 802)
    assert res.label == "Extra Small"


def test_context_thresholds_override_labels() -> None:
    ctx = QuantifierContext.from_yaml(
        "thresholds:\n  - {label: tiny, upper_bound: 2}\n  - {label: big}\n"
    )
    oracle = PercentileOracle()
    assert oracle.score(_changes(("a.py", 1, 1)), ctx).label == "tiny"
    assert oracle.score(_changes(("a.py", 3, 0)), ctx).label == "big"


def test_load_context_tolerates_missing_and_invalid_content() -> None:
    assert load_context(None) is None
    assert load_context("- just\n- a list\n") is None
    assert load_context("thresholds: []\n") is None
    assert load_context("") is not None


def test_score_result_enforces_invariants() -> None:
    with pytest.raises(ScoreValidationError):
        ScoreResult(1, 0, 1, 0, 101.0, 0.0, 0.0, "x")
    with pytest.raises(ScoreValidationError):
        ScoreResult(5, 0, 4, 0, 10.0, 0.0, 5.0, "x")
