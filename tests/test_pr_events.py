from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from pr_quantifier.adapters.github.github_client import GitHubApiError, GitHubNotFoundError
from pr_quantifier.adapters.github.pr_events import PullRequestEventHandler, change_set_from_files
from pr_quantifier.integration.event_bus import InMemoryEventBus
from pr_quantifier.integration.events import PullRequestQuantified
from pr_quantifier.integration.metrics import InMemoryMetrics
from pr_quantifier.quantifier.domain.entities import ChangeKind
from pr_quantifier.quantifier.oracle import PercentileOracle


def _payload(action: str = "opened") -> str:
    return json.dumps(
        {
            "action": action,
            "number": 12,
            "pull_request": {"number": 12, "head": {"sha": "deadbeef", "ref": "feature"}},
            "repository": {"full_name": "octo/widgets"},
            "installation": {"id": 99},
        }
    )


@dataclass
class _FakeClient:
    files: list[dict[str, Any]] = field(default_factory=list)
    contents: dict[str, str] = field(default_factory=dict)
    raise_on_read: Exception | None = None
    labels: list[str] = field(default_factory=list)
    raw_reads: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def get_pull_request_files(self, repo_full: str, number: int) -> list[dict[str, Any]]:
        return self.files

    def get_raw_file(self, repo_full: str, ref: str, path: str) -> str:
        self.raw_reads.append(path)
        if self.raise_on_read is not None:
            raise self.raise_on_read
        if path not in self.contents:
            raise GitHubNotFoundError(path, status_code=404)
        return self.contents[path]

    def get_issue_labels(self, repo_full: str, number: int) -> list[str]:
        return list(self.labels)

    def add_labels(self, repo_full: str, number: int, labels: list[str]) -> None:
        self.added.extend(labels)

    def remove_label(self, repo_full: str, number: int, label: str) -> None:
        self.removed.append(label)


def _handler(client: _FakeClient, **kwargs: Any) -> tuple[PullRequestEventHandler, InMemoryMetrics, list]:
    bus = InMemoryEventBus()
    metrics = InMemoryMetrics().attach(bus)
    events: list[PullRequestQuantified] = []
    bus.subscribe(PullRequestQuantified, events.append)
    handler = PullRequestEventHandler(client=client, oracle=PercentileOracle(), bus=bus, **kwargs)  # type: ignore[arg-type]
    return handler, metrics, events


def test_change_set_from_files_maps_statuses() -> None:
    cs = change_set_from_files(
        [
            {"filename": "a.py", "status": "added", "additions": 3, "deletions": 0},
            {"filename": "b.py", "status": "removed", "additions": 0, "deletions": 9},
            {"filename": "c.py", "status": "renamed", "additions": 1, "deletions": 1, "previous_filename": "old.py"},
            {"filename": "d.py", "status": "modified", "additions": 2, "deletions": 2},
        ]
    )
    assert [r.kind for r in cs] == [ChangeKind.ADDED, ChangeKind.DELETED, ChangeKind.RENAMED, ChangeKind.MODIFIED]
    assert cs.records[2].previous_path == "old.py"
    assert (cs.absolute_lines_added, cs.absolute_lines_deleted) == (6, 12)


def test_root_context_found_with_single_read() -> None:
    client = _FakeClient(
        files=[{"filename": "README.md", "status": "modified", "additions": 4, "deletions": 1}],
        contents={".prquantifier": "excluded: []\n"},
    )
    handler, metrics, events = _handler(client)

    outcome = handler.handle_event(_payload())

    assert outcome is not None
    assert outcome.context.path == ".prquantifier"
    assert client.raw_reads == [".prquantifier"]
    assert metrics.count("PullRequestQuantifyElapsedMs") == 1
    assert len(events) == 1
    assert events[0].label == "Extra Small"
    assert events[0].pull_request_number == 12


def test_docs_change_falls_back_to_root_context() -> None:
    client = _FakeClient(
        files=[{"filename": "docs/readme.md", "status": "modified", "additions": 1, "deletions": 0}],
        contents={".prquantifier": "excluded: []\n"},
    )
    handler, _, _ = _handler(client)

    outcome = handler.handle_event(_payload())

    assert outcome is not None
    assert outcome.context.path == ".prquantifier"
    assert client.raw_reads.count(".prquantifier") == 1
    assert client.raw_reads == [".prquantifier", "docs/.prquantifier"]


def test_no_context_does_not_fail() -> None:
    client = _FakeClient(files=[{"filename": "src/app.py", "status": "modified", "additions": 40, "deletions": 0}])
    handler, metrics, events = _handler(client)

    outcome = handler.handle_event(_payload("synchronize"))

    assert outcome is not None
    assert not outcome.context.found
    assert outcome.score.label == "Medium"
    assert client.raw_reads == [".prquantifier", "src/.prquantifier"]
    assert metrics.count("PullRequestQuantifyElapsedMs") == 1
    assert len(events) == 1


def test_context_read_failure_still_scores() -> None:
    client = _FakeClient(
        files=[{"filename": "src/app.py", "status": "modified", "additions": 2, "deletions": 0}],
        raise_on_read=GitHubApiError("forbidden", status_code=403),
    )
    handler, _, events = _handler(client)

    outcome = handler.handle_event(_payload())

    assert outcome is not None
    assert outcome.context.error is not None
    assert outcome.context.path is None
    assert outcome.context.attempts == (".prquantifier",)
    assert outcome.score.quantified_lines_added == 2
    assert len(events) == 1


def test_directory_context_excludes_generated_files() -> None:
    client = _FakeClient(
        files=[
            {"filename": "svc/gen/api_pb2.py", "status": "added", "additions": 800, "deletions": 0},
            {"filename": "svc/main.py", "status": "modified", "additions": 3, "deletions": 1},
        ],
        contents={"svc/.prquantifier": "excluded:\n  - '*_pb2.py'\n"},
    )
    handler, _, _ = _handler(client)

    outcome = handler.handle_event(_payload())

    assert outcome is not None
    assert outcome.context.path == "svc/.prquantifier"
    assert outcome.score.quantified_lines_added == 3
    assert outcome.score.absolute_lines_added == 803


def test_label_is_applied_and_stale_size_labels_removed() -> None:
    client = _FakeClient(
        files=[{"filename": "a.py", "status": "modified", "additions": 1, "deletions": 0}],
        labels=["Large", "bug"],
    )
    handler, _, _ = _handler(client, apply_label=True)

    handler.handle_event(_payload())

    assert client.removed == ["Large"]
    assert client.added == ["Extra Small"]


def test_other_actions_are_ignored() -> None:
    client = _FakeClient()
    handler, metrics, events = _handler(client)

    assert handler.handle_event(_payload("closed")) is None
    assert events == []
    assert metrics.count("PullRequestQuantifyElapsedMs") == 0


def test_context_only_resolution_skips_scoring_and_labels() -> None:
    client = _FakeClient(
        files=[{"filename": "svc/main.py", "status": "modified", "additions": 3, "deletions": 1}],
        contents={"svc/.prquantifier": "excluded: []\n"},
        labels=["Large"],
    )
    handler, metrics, events = _handler(client, apply_label=True)

    resolution = handler.resolve_event_context(_payload())

    assert resolution is not None
    assert resolution.path == "svc/.prquantifier"
    assert resolution.attempts == (".prquantifier", "svc/.prquantifier")
    assert client.added == [] and client.removed == []
    assert events == []
    assert metrics.count("PullRequestQuantifyElapsedMs") == 0
    assert handler.resolve_event_context(_payload("closed")) is None
