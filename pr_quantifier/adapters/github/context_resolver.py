from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Iterable, Iterator

from pr_quantifier.adapters.github.github_client import GitHubNotFoundError
from pr_quantifier.quantifier.domain.entities import ContextResolution
from pr_quantifier.quantifier.interfaces import ContentReader

logger = logging.getLogger(__name__)


class ContextResolutionError(RuntimeError):
    def __init__(self, message: str, attempts: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.attempts = attempts


def parent_directory(path: str) -> str:
    parent = str(PurePosixPath(path.lstrip("/")).parent)
    return "" if parent == "." else parent


def distinct_directories(changed_files: Iterable[str]) -> list[str]:
    """Directories of the changed files, first-seen order, without duplicates."""
    seen: dict[str, None] = {}
    for f in changed_files:
        seen.setdefault(parent_directory(f), None)
    return list(seen)


def directory_candidates(directory: str, file_name: str) -> Iterator[str]:
    """Context file paths from `directory` up to, but excluding, the repository root."""
    parts = PurePosixPath(directory).parts if directory else ()
    for depth in range(len(parts), 0, -1):
        yield str(PurePosixPath(*parts[:depth], file_name))


def first_found(
    candidates: Iterable[str],
    read: Callable[[str], str | None],
) -> tuple[str, str] | None:
    for path in candidates:
        content = read(path)
        if content is not None:
            return path, content
    return None


@dataclass
class ContextResolver:
    """Find the context file governing a pull request.

    Each changed file's directory is searched upward for `file_name`; the
    nearest hit wins. Chains that find nothing fall back to `root_path`
    when that file exists. A missing file only means "keep looking"; any
    other read failure raises ContextResolutionError.
    """

    reader: ContentReader
    root_path: str = ".prquantifier"
    file_name: str = ".prquantifier"

    def resolve(self, changed_files: Iterable[str], ref: str) -> ContextResolution:
        attempts: list[str] = []
        cache: dict[str, str | None] = {}

        def read(path: str) -> str | None:
            if path in cache:
                return cache[path]
            attempts.append(path)
            try:
                content: str | None = self.reader.read_file(path, ref)
            except GitHubNotFoundError:
                content = None
            except Exception as exc:
                raise ContextResolutionError(
                    f"Failed to read context {path} at {ref}: {exc}", attempts=tuple(attempts)
                ) from exc
            cache[path] = content
            return content

        root_content = read(self.root_path)
        fallback = self.root_path if root_content is not None else None

        by_directory: dict[str, str | None] = {}
        chosen: tuple[str, str] | None = None
        for directory in distinct_directories(changed_files):
            hit = first_found(directory_candidates(directory, self.file_name), read)
            if hit is None:
                by_directory[directory] = fallback
                continue
            by_directory[directory] = hit[0]
            if chosen is None:
                chosen = hit

        if chosen is None and root_content is not None:
            chosen = (self.root_path, root_content)

        logger.debug("Context for %s: %s after %d reads", ref, chosen[0] if chosen else None, len(attempts))
        return ContextResolution(
            attempts=tuple(attempts),
            by_directory=by_directory,
            path=chosen[0] if chosen else None,
            content=chosen[1] if chosen else None,
        )
