from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

from pr_quantifier.quantifier.domain.entities import ChangeKind, ChangeRecord, NormalizedChangeSet

logger = logging.getLogger(__name__)

# Unit separator; cannot appear in author names or hashes.
_SEP = "\x1f"
_LOG_FORMAT = "%H%x1f%P%x1f%an%x1f%ae%x1f%at"

_STATUS_KINDS = {
    "A": ChangeKind.ADDED,
    "C": ChangeKind.ADDED,
    "D": ChangeKind.DELETED,
    "M": ChangeKind.MODIFIED,
    "T": ChangeKind.MODIFIED,
    "R": ChangeKind.RENAMED,
}


class GitError(RuntimeError):
    pass


def _run_git(repo: Path, args: list[str]) -> str:
    cmd = ["git", "-C", str(repo), *args]
    try:
        res = subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        stderr = getattr(exc, "stderr", "") or ""
        raise GitError(f"git failed: {' '.join(cmd)}\n{stderr}") from exc
    return res.stdout


@dataclass(frozen=True)
class GitCommit:
    sha: str
    parents: tuple[str, ...]
    author_name: str
    author_email: str
    authored_at: datetime

    @property
    def is_root(self) -> bool:
        return not self.parents


def _parse_commit_line(line: str) -> GitCommit:
    sha, parents, name, email, authored_at = line.split(_SEP, 4)
    return GitCommit(
        sha=sha,
        parents=tuple(parents.split()),
        author_name=name,
        author_email=email,
        authored_at=datetime.fromtimestamp(int(authored_at), tz=timezone.utc),
    )


def discover_repo_root(path: Path) -> Path | None:
    """Return the work tree root containing `path`, or None if it is not in a repository."""
    start = Path(path).expanduser()
    if not start.exists():
        return None
    if start.is_file():
        start = start.parent
    try:
        top = _run_git(start, ["rev-parse", "--show-toplevel"]).strip()
    except GitError:
        return None
    return Path(top) if top else None


def parse_raw_numstat(output: str) -> list[ChangeRecord]:
    """Parse `git diff --raw --numstat -z -M` output into change records.

    Raw entries come first (':<modes> <shas> <status>' then one or two paths),
    followed by numstat entries in the same order ('<add>\\t<del>\\t<path>',
    or an empty path followed by the old and new paths for renames).
    """
    tokens = output.split("\0")
    statuses: list[tuple[str, str, str | None]] = []
    counts: list[tuple[int, int]] = []

    i = 0
    while i < len(tokens):
        tok = tokens[i]
        i += 1
        if not tok:
            continue
        if tok.startswith(":"):
            status = tok.split()[-1]
            if status[:1] in ("R", "C"):
                old, new = tokens[i], tokens[i + 1]
                i += 2
                statuses.append((status[:1], new, old))
            else:
                statuses.append((status[:1], tokens[i], None))
                i += 1
            continue

        added, deleted, path = tok.split("\t", 2)
        if not path:
            # Rename/copy: old and new paths follow as separate tokens.
            i += 2
        counts.append((_to_int(added), _to_int(deleted)))

    if len(statuses) != len(counts):
        raise GitError(f"Mismatched diff output: {len(statuses)} raw vs {len(counts)} numstat entries")

    records: list[ChangeRecord] = []
    for (status, path, old_path), (added, deleted) in zip(statuses, counts):
        kind = _STATUS_KINDS.get(status, ChangeKind.MODIFIED)
        records.append(
            ChangeRecord(
                path=path,
                lines_added=added,
                lines_deleted=deleted,
                kind=kind,
                previous_path=old_path if kind is ChangeKind.RENAMED else None,
            )
        )
    return records


def _to_int(value: str) -> int:
    # Binary files are reported as '-'.
    return int(value) if value.isdigit() else 0


@dataclass(frozen=True)
class GitRepository:
    """Read-only handle over a local repository, safe to share between threads."""

    root: Path

    @classmethod
    def discover(cls, path: Path) -> "GitRepository | None":
        root = discover_repo_root(path)
        return cls(root=root) if root is not None else None

    @property
    def name(self) -> str:
        return self.root.name

    def has_commits(self, rev: str = "HEAD") -> bool:
        """False for an unborn branch, e.g. a freshly initialised repository."""
        try:
            _run_git(self.root, ["rev-parse", "--verify", "-q", f"{rev}^{{commit}}"])
        except GitError:
            return False
        return True

    def count_first_parent_commits(self, rev: str = "HEAD") -> int:
        if not self.has_commits(rev):
            return 0
        out = _run_git(self.root, ["rev-list", "--first-parent", "--count", rev]).strip()
        return int(out or 0)

    def iter_first_parent_commits(self, rev: str = "HEAD") -> Iterator[GitCommit]:
        """Stream first-parent history, newest first, without buffering it all."""
        if not self.has_commits(rev):
            return
        cmd = ["git", "-C", str(self.root), "log", "--first-parent", f"--format={_LOG_FORMAT}", rev]
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        if proc.stdout is None:
            proc.kill()
            raise GitError(f"git produced no output pipe: {' '.join(cmd)}")
        try:
            for line in proc.stdout:
                line = line.rstrip("\n")
                if line:
                    yield _parse_commit_line(line)
        finally:
            proc.stdout.close()
            stderr = proc.stderr.read() if proc.stderr is not None else ""
            if proc.stderr is not None:
                proc.stderr.close()
            code = proc.wait()
        if code != 0:
            raise GitError(f"git failed: {' '.join(cmd)}\n{stderr}")

    def diff_trees(self, old: str, new: str) -> list[ChangeRecord]:
        out = _run_git(self.root, ["diff", "--raw", "--numstat", "-z", "-M", old, new])
        return parse_raw_numstat(out)

    def extract_changes(self, commit: GitCommit) -> NormalizedChangeSet:
        """Diff a commit against every parent and concatenate the records."""
        records: list[ChangeRecord] = []
        for parent in commit.parents:
            records.extend(self.diff_trees(parent, commit.sha))
        return NormalizedChangeSet.of(records)

    def time_to_merge(self, commit: GitCommit) -> timedelta:
        """Time from the first commit unique to the merged branch to `commit`."""
        first_parent = commit.parents[0]
        out = _run_git(
            self.root,
            [
                "rev-list",
                "--topo-order",
                "--reverse",
                f"--format={_LOG_FORMAT}",
                commit.sha,
                f"^{first_parent}",
            ],
        )
        earliest: GitCommit | None = None
        for line in out.splitlines():
            # rev-list --format prefixes each entry with a 'commit <sha>' line.
            if line and not line.startswith("commit "):
                earliest = _parse_commit_line(line)
                break
        if earliest is None:
            return timedelta(0)
        return commit.authored_at - earliest.authored_at

    def read_file(self, path: str, ref: str = "HEAD") -> str | None:
        try:
            return _run_git(self.root, ["show", f"{ref}:{path}"])
        except GitError:
            return None
