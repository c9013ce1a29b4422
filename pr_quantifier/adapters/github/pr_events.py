from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from pydantic import BaseModel, Field

from pr_quantifier.adapters.github.context_resolver import ContextResolutionError, ContextResolver
from pr_quantifier.adapters.github.github_client import GitHubClient, GitHubContentReader
from pr_quantifier.integration.event_bus import EventBus
from pr_quantifier.integration.events import PullRequestQuantified
from pr_quantifier.pipeline.config import ContextConfig
from pr_quantifier.quantifier.domain.entities import (
    ChangeKind,
    ChangeRecord,
    ContextResolution,
    NormalizedChangeSet,
    ScoreResult,
)
from pr_quantifier.quantifier.interfaces import ScoringOracle
from pr_quantifier.quantifier.oracle import QuantifierContext, load_context

logger = logging.getLogger(__name__)

QUANTIFIED_ACTIONS = frozenset({"opened", "reopened", "synchronize", "ready_for_review"})

_FILE_STATUS_KINDS = {
    "added": ChangeKind.ADDED,
    "copied": ChangeKind.ADDED,
    "removed": ChangeKind.DELETED,
    "renamed": ChangeKind.RENAMED,
}


class HeadRef(BaseModel):
    sha: str
    ref: str = ""


class PullRequestPayload(BaseModel):
    number: int
    head: HeadRef
    draft: bool = False


class RepositoryPayload(BaseModel):
    full_name: str


class PullRequestEvent(BaseModel):
    """The subset of a `pull_request` webhook payload the quantifier reads."""

    action: str
    pull_request: PullRequestPayload
    repository: RepositoryPayload
    installation: dict[str, Any] | None = Field(default=None)

    @classmethod
    def parse(cls, payload: str | bytes | Mapping[str, Any]) -> "PullRequestEvent":
        if isinstance(payload, (str, bytes)):
            payload = json.loads(payload)
        return cls.model_validate(payload)


def change_set_from_files(files: list[Mapping[str, Any]]) -> NormalizedChangeSet:
    records = []
    for f in files:
        kind = _FILE_STATUS_KINDS.get(str(f.get("status") or ""), ChangeKind.MODIFIED)
        records.append(
            ChangeRecord(
                path=str(f["filename"]),
                lines_added=int(f.get("additions") or 0),
                lines_deleted=int(f.get("deletions") or 0),
                kind=kind,
                previous_path=f.get("previous_filename") if kind is ChangeKind.RENAMED else None,
            )
        )
    return NormalizedChangeSet.of(records)


@dataclass(frozen=True)
class PullRequestOutcome:
    repository: str
    number: int
    head_sha: str
    score: ScoreResult
    context: ContextResolution
    elapsed_ms: int


@dataclass
class PullRequestEventHandler:
    """Quantify a pull request from its webhook payload.

    Context lookup never blocks quantification: when it fails the pull
    request is scored with the oracle's defaults.
    """

    client: GitHubClient
    oracle: ScoringOracle
    bus: EventBus
    context_config: ContextConfig = field(default_factory=ContextConfig)
    apply_label: bool = False
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    def _resolve_context(self, repo_full: str, files: list[str], ref: str) -> ContextResolution:
        resolver = ContextResolver(
            reader=GitHubContentReader(self.client, repo_full),
            root_path=self.context_config.root_path,
            file_name=self.context_config.file_name,
        )
        try:
            return resolver.resolve(files, ref)
        except ContextResolutionError as exc:
            logger.warning("Context resolution failed for %s@%s: %s", repo_full, ref, exc)
            return ContextResolution(attempts=exc.attempts, error=str(exc))

    def _publish_label(self, repo_full: str, number: int, label: str, ctx: QuantifierContext) -> None:
        known = {t.label for t in ctx.thresholds}
        current = self.client.get_issue_labels(repo_full, number)
        for stale in current:
            if stale in known and stale != label:
                self.client.remove_label(repo_full, number, stale)
        if label not in current:
            self.client.add_labels(repo_full, number, [label])

    def resolve_event_context(self, payload: str | bytes | Mapping[str, Any]) -> ContextResolution | None:
        """Resolve the context for a pull request without scoring or labelling it."""
        event = PullRequestEvent.parse(payload)
        if event.action not in QUANTIFIED_ACTIONS:
            logger.debug("Ignoring pull_request action %s", event.action)
            return None
        repo_full = event.repository.full_name
        files = self.client.get_pull_request_files(repo_full, event.pull_request.number)
        return self._resolve_context(repo_full, [str(f["filename"]) for f in files], event.pull_request.head.sha)

    def handle_event(self, payload: str | bytes | Mapping[str, Any]) -> PullRequestOutcome | None:
        event = PullRequestEvent.parse(payload)
        if event.action not in QUANTIFIED_ACTIONS:
            logger.debug("Ignoring pull_request action %s", event.action)
            return None

        start = self.clock()
        repo_full = event.repository.full_name
        number = event.pull_request.number
        head_sha = event.pull_request.head.sha

        files = self.client.get_pull_request_files(repo_full, number)
        change_set = change_set_from_files(files)

        resolution = self._resolve_context(repo_full, [r.path for r in change_set], head_sha)
        context = load_context(resolution.content)
        score = self.oracle.score(change_set, context)

        if self.apply_label:
            self._publish_label(repo_full, number, score.label, context or QuantifierContext())

        elapsed_ms = int((self.clock() - start) * 1000)
        outcome = PullRequestOutcome(
            repository=repo_full,
            number=number,
            head_sha=head_sha,
            score=score,
            context=resolution,
            elapsed_ms=elapsed_ms,
        )
        logger.info(
            "Quantified %s#%d as %s (%d+/%d-, context=%s)",
            repo_full,
            number,
            score.label,
            score.quantified_lines_added,
            score.quantified_lines_deleted,
            resolution.path,
        )
        self.bus.publish(
            PullRequestQuantified(
                occurred_at=datetime.now(timezone.utc),
                repository=repo_full,
                pull_request_number=number,
                label=score.label,
                context_path=resolution.path,
                elapsed_ms=elapsed_ms,
                result=asdict(score),
            )
        )
        return outcome
