from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest


@dataclass
class RepoBuilder:
    """Build small real repositories with controlled author dates."""

    root: Path
    clock: int = 1_700_000_000

    def git(self, *args: str, date: int | None = None) -> str:
        env = dict(os.environ)
        env.update(
            {
                "GIT_AUTHOR_NAME": "Ada Lovelace",
                "GIT_AUTHOR_EMAIL": "ada@example.com",
                "GIT_COMMITTER_NAME": "Ada Lovelace",
                "GIT_COMMITTER_EMAIL": "ada@example.com",
                "GIT_CONFIG_GLOBAL": os.devnull,
                "GIT_CONFIG_NOSYSTEM": "1",
            }
        )
        if date is not None:
            env["GIT_AUTHOR_DATE"] = f"@{date} +0000"
            env["GIT_COMMITTER_DATE"] = f"@{date} +0000"
        res = subprocess.run(
            ["git", "-C", str(self.root), *args],
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        return res.stdout.strip()

    def init(self) -> "RepoBuilder":
        self.root.mkdir(parents=True, exist_ok=True)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        return self

    def write(self, path: str, lines: int | list[str]) -> None:
        content = [f"line {i}" for i in range(lines)] if isinstance(lines, int) else lines
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("".join(f"{line}\n" for line in content))

    def commit(self, message: str, advance: int = 60) -> str:
        self.clock += advance
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message, date=self.clock)
        return self.git("rev-parse", "HEAD")

    def merge(self, branch: str, advance: int = 60) -> str:
        self.clock += advance
        self.git("merge", "-q", "--no-ff", "-m", f"Merge {branch}", branch, date=self.clock)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    return RepoBuilder(root=tmp_path / "sample").init()
