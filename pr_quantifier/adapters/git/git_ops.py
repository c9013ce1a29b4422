from __future__ import annotations

import base64
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from pr_quantifier.pipeline.config import BulkConfig, RepositoryRef
from pr_quantifier.pipeline.git_io import GitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitRepoSpec:
    name: str
    url: str
    local_path: Path


def repo_spec_for(ref: RepositoryRef, bulk: BulkConfig, clone_path: Path) -> GitRepoSpec:
    url = bulk.clone_url_template.format(
        organization=ref.organization,
        project=ref.project,
        repository=ref.repository,
    )
    return GitRepoSpec(name=ref.repository, url=url, local_path=clone_path / ref.repository)


def basic_auth_header(user: str, pat: str) -> str:
    token = base64.b64encode(f"{user}:{pat}".encode("utf-8")).decode("ascii")
    return f"Authorization: Basic {token}"


def _git(action: str, args: list[str], auth_header: str | None) -> None:
    cmd = ["git"]
    if auth_header:
        cmd += ["-c", f"http.extraHeader={auth_header}"]
    cmd += args
    try:
        subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except subprocess.CalledProcessError as exc:
        # Never echo the command: it may carry credentials.
        raise GitError(f"git {action} failed: {exc.stderr}") from exc


def clone_or_fetch_repo(spec: GitRepoSpec, *, auth_header: str | None = None) -> None:
    if spec.local_path.exists():
        logger.info("Fetching %s", spec.name)
        _git("fetch", ["-C", str(spec.local_path), "fetch", "--all", "--prune"], auth_header)
        return

    spec.local_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Cloning %s", spec.name)
    _git("clone", ["clone", spec.url, str(spec.local_path)], auth_header)
