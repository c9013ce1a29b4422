from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from pr_quantifier.pipeline.walker import DEFAULT_BATCH_SIZE


class ConfigError(ValueError):
    pass


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).resolve()


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


class WalkerConfig(BaseModel):
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        ge=1,
        description="Commits scored concurrently before each flush to disk.",
    )
    max_workers: int = Field(
        default=0,
        ge=0,
        description="Thread pool size; 0 uses the concurrent.futures default.",
    )

    def workers(self) -> int | None:
        return self.max_workers or None


class OutputConfig(BaseModel):
    base_dir: str = Field(
        default="",
        description="Directory for result files. Empty writes next to the repository.",
    )
    logs_dir: str = Field(default="", description="Optional directory for quantifier.log.")

    def resolve_base_dir(self) -> Path | None:
        return _expand(self.base_dir) if self.base_dir else None

    def resolve_logs_dir(self) -> Path | None:
        return _expand(self.logs_dir) if self.logs_dir else None


class BulkConfig(BaseModel):
    clone: bool = Field(default=False, description="Clone or fetch repositories before quantifying.")
    clone_path: str = Field(default="", description="Directory holding one checkout per repository.")
    clone_url_template: str = Field(
        default="https://dev.azure.com/{organization}/{project}/_git/{repository}",
    )
    user_env_var: str = Field(default="QUANTIFIER_GIT_USER")
    pat_env_var: str = Field(default="QUANTIFIER_GIT_PAT")


class GithubConfig(BaseModel):
    token_env_var: str = Field(default="GITHUB_TOKEN")
    api_base_url: str = Field(default="https://api.github.com")
    apply_label: bool = Field(default=False, description="Write the size label back to the PR.")


class ContextConfig(BaseModel):
    file_name: str = Field(default=".prquantifier", description="Directory-scoped context file name.")
    root_path: str = Field(default=".prquantifier", description="Repository-level context file.")
    local_path: str = Field(
        default="",
        description="Context file used for bulk history runs; empty uses the repository's root file.",
    )


class QuantifierConfig(BaseModel):
    walker: WalkerConfig = Field(default_factory=WalkerConfig)
    outputs: OutputConfig = Field(default_factory=OutputConfig)
    bulk: BulkConfig = Field(default_factory=BulkConfig)
    github: GithubConfig = Field(default_factory=GithubConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)

    @classmethod
    def load(cls, path: Path | None) -> "QuantifierConfig":
        if path is None or not path.exists():
            return cls()
        try:
            return cls.model_validate(_read_toml(path))
        except (ValidationError, ValueError) as exc:
            raise ConfigError(f"Invalid quantifier config {path}: {exc}") from exc


# --- Bulk-mode repository lists ----------------------------------------------


class Repository(BaseModel):
    name: str


class Project(BaseModel):
    name: str
    repositories: list[Repository] = Field(default_factory=list)


class Organization(BaseModel):
    name: str
    projects: list[Project] = Field(default_factory=list)


class RepositoryRef(BaseModel):
    """A repository flattened out of the organization tree."""

    organization: str
    project: str
    repository: str

    model_config = {"frozen": True}


def _normalize_keys(node: Any) -> Any:
    # Accept both 'Name'/'Projects' and 'name'/'projects' spellings.
    if isinstance(node, dict):
        return {str(k).lower(): _normalize_keys(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_normalize_keys(v) for v in node]
    return node


def load_organizations(path: Path) -> list[Organization]:
    """Read the organization → project → repository YAML list.

    Example:

        - name: contoso
          projects:
            - name: web
              repositories:
                - name: frontend
    """
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read repository list {path}: {exc}") from exc

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"Repository list {path} must be a YAML list of organizations")
    try:
        return [Organization.model_validate(item) for item in _normalize_keys(raw)]
    except ValidationError as exc:
        raise ConfigError(f"Invalid repository list {path}: {exc}") from exc


def flatten_repositories(organizations: list[Organization]) -> list[RepositoryRef]:
    return [
        RepositoryRef(organization=o.name, project=p.name, repository=r.name)
        for o in organizations
        for p in o.projects
        for r in p.repositories
    ]
