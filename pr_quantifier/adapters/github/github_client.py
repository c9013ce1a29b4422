from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterator
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)


class GitHubApiError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubNotFoundError(GitHubApiError):
    pass


@dataclass
class GitHubClient:
    token: str
    api_base_url: str = "https://api.github.com"
    user_agent: str = "pr-quantifier"
    timeout_s: float = 60.0

    def _headers(self, accept: str = "application/vnd.github+json") -> dict[str, str]:
        headers = {
            "Accept": accept,
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        accept: str = "application/vnd.github+json",
    ) -> requests.Response:
        url = self.api_base_url.rstrip("/") + path
        while True:
            resp = requests.request(
                method,
                url,
                headers=self._headers(accept),
                params=params,
                json=json,
                timeout=self.timeout_s,
            )
            if resp.status_code == 403 and "rate limit" in resp.text.lower():
                reset = resp.headers.get("X-RateLimit-Reset")
                if reset:
                    wait_s = max(1, int(reset) - int(time.time()) + 1)
                    logger.warning("GitHub rate limit hit. Sleeping %ss", wait_s)
                    time.sleep(wait_s)
                    continue
            if resp.status_code == 404:
                raise GitHubNotFoundError(f"{method} {path} not found", status_code=404)
            if resp.status_code >= 400:
                raise GitHubApiError(
                    f"{method} {path} failed: {resp.status_code} {resp.text}",
                    status_code=resp.status_code,
                )
            return resp

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params).json()

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        per_page: int = 100,
        max_pages: int = 30,
    ) -> Iterator[Any]:
        params = dict(params or {})
        params["per_page"] = per_page
        page = 1
        while page <= max_pages:
            params["page"] = page
            data = self.get(path, params=params)
            if not isinstance(data, list) or not data:
                return
            yield from data
            if len(data) < per_page:
                return
            page += 1

    # --- Pull request helpers -------------------------------------------------

    def get_pull_request_files(self, repo_full: str, number: int) -> list[dict[str, Any]]:
        return list(self.paginate(f"/repos/{repo_full}/pulls/{number}/files"))

    def get_issue_labels(self, repo_full: str, number: int) -> list[str]:
        return [
            str(item.get("name"))
            for item in self.paginate(f"/repos/{repo_full}/issues/{number}/labels")
            if item.get("name")
        ]

    def add_labels(self, repo_full: str, number: int, labels: list[str]) -> None:
        self._request("POST", f"/repos/{repo_full}/issues/{number}/labels", json={"labels": labels})

    def remove_label(self, repo_full: str, number: int, label: str) -> None:
        self._request("DELETE", f"/repos/{repo_full}/issues/{number}/labels/{quote(label, safe='')}")

    def get_raw_file(self, repo_full: str, ref: str, path: str) -> str:
        """Return a file's text at `ref`; raises GitHubNotFoundError if it does not exist."""
        resp = self._request(
            "GET",
            f"/repos/{repo_full}/contents/{quote(path.lstrip('/'))}",
            params={"ref": ref},
            accept="application/vnd.github.raw",
        )
        return resp.text


@dataclass
class GitHubContentReader:
    """Binds a client to one repository for context file reads."""

    client: GitHubClient
    repo_full: str

    def read_file(self, path: str, ref: str) -> str:
        return self.client.get_raw_file(self.repo_full, ref, path)
