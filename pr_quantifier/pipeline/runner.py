from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from pr_quantifier.adapters.git.git_ops import basic_auth_header, clone_or_fetch_repo, repo_spec_for
from pr_quantifier.integration.event_bus import EventBus, InMemoryEventBus
from pr_quantifier.pipeline.config import (
    QuantifierConfig,
    RepositoryRef,
    flatten_repositories,
    load_organizations,
)
from pr_quantifier.pipeline.git_io import GitError, GitRepository
from pr_quantifier.pipeline.walker import CommitHistoryWalker, WalkSummary, quantify_repository
from pr_quantifier.quantifier.interfaces import ScoringOracle
from pr_quantifier.quantifier.oracle import PercentileOracle, QuantifierContext, load_context

logger = logging.getLogger(__name__)


@dataclass
class QuantifyRunner:
    """Quantify one repository, or every repository of a bulk YAML list in turn."""

    config: QuantifierConfig = field(default_factory=QuantifierConfig)
    oracle: ScoringOracle = field(default_factory=PercentileOracle)
    bus: EventBus = field(default_factory=InMemoryEventBus)

    def _context_for(self, repo_path: Path) -> QuantifierContext | None:
        local = self.config.context.local_path.strip()
        if local:
            p = Path(local).expanduser()
            if not p.exists():
                logger.warning("Context file %s not found; using defaults", p)
                return None
            return load_context(p.read_text(encoding="utf-8"))

        repo = GitRepository.discover(repo_path)
        if repo is None:
            return None
        return load_context(repo.read_file(self.config.context.root_path))

    def _walker(self, repo_path: Path) -> CommitHistoryWalker:
        return CommitHistoryWalker(
            oracle=self.oracle,
            batch_size=self.config.walker.batch_size,
            max_workers=self.config.walker.workers(),
            context=self._context_for(repo_path),
            bus=self.bus,
        )

    def quantify_path(self, repo_path: Path, out_dir: Path | None = None) -> WalkSummary | None:
        out = out_dir or self.config.outputs.resolve_base_dir()
        return quantify_repository(repo_path, self._walker(repo_path), out_dir=out)

    def _auth_header(self) -> str | None:
        bulk = self.config.bulk
        user = os.environ.get(bulk.user_env_var, "")
        pat = os.environ.get(bulk.pat_env_var, "")
        if not pat:
            return None
        return basic_auth_header(user, pat)

    def quantify_organizations(
        self,
        organizations_path: Path,
        clone_path: Path | None = None,
    ) -> dict[str, WalkSummary | None]:
        """Quantify every repository listed in the YAML file, one after another.

        An unreadable list aborts before any work starts. Failures inside one
        repository (clone, sink writes) are logged and the next repository runs.
        """
        refs = flatten_repositories(load_organizations(organizations_path))
        base = clone_path or (Path(self.config.bulk.clone_path).expanduser() if self.config.bulk.clone_path else None)
        if base is None:
            raise ValueError("A clone path is required to quantify repositories in bulk")

        out_dir = self.config.outputs.resolve_base_dir() or base
        auth = self._auth_header() if self.config.bulk.clone else None

        results: dict[str, WalkSummary | None] = {}
        for ref in refs:
            results[ref.repository] = self._quantify_ref(ref, base, out_dir, auth)
        return results

    def _quantify_ref(
        self,
        ref: RepositoryRef,
        base: Path,
        out_dir: Path,
        auth: str | None,
    ) -> WalkSummary | None:
        spec = repo_spec_for(ref, self.config.bulk, base)
        try:
            if self.config.bulk.clone:
                clone_or_fetch_repo(spec, auth_header=auth)
            return quantify_repository(spec.local_path, self._walker(spec.local_path), out_dir=out_dir)
        except (GitError, OSError) as exc:
            logger.error("Quantification of %s/%s/%s failed: %s", ref.organization, ref.project, ref.repository, exc)
            return None
