from __future__ import annotations

import logging
from pathlib import Path

import pytest

from pr_quantifier.adapters.git.git_ops import basic_auth_header, repo_spec_for
from pr_quantifier.common.logging_config import LOG_FILE_NAME, configure_logging
from pr_quantifier.pipeline.config import (
    ConfigError,
    QuantifierConfig,
    RepositoryRef,
    flatten_repositories,
    load_organizations,
)


def test_defaults_without_file() -> None:
    cfg = QuantifierConfig.load(None)
    assert cfg.walker.batch_size == 100
    assert cfg.walker.workers() is None
    assert cfg.context.root_path == ".prquantifier"
    assert cfg.outputs.resolve_base_dir() is None


def test_toml_overrides(tmp_path: Path) -> None:
    path = tmp_path / "quantifier.toml"
    path.write_text('[walker]\nbatch_size = 25\nmax_workers = 4\n\n[github]\napply_label = true\n')

    cfg = QuantifierConfig.load(path)

    assert cfg.walker.batch_size == 25
    assert cfg.walker.workers() == 4
    assert cfg.github.apply_label is True


def test_invalid_batch_size_rejected(tmp_path: Path) -> None:
    path = tmp_path / "quantifier.toml"
    path.write_text("[walker]\nbatch_size = 0\n")

    with pytest.raises(ConfigError):
        QuantifierConfig.load(path)


def test_organizations_flatten_in_order(tmp_path: Path) -> None:
    path = tmp_path / "repos.yaml"
    path.write_text(
        "- Name: contoso\n"
        "  Projects:\n"
        "    - Name: web\n"
        "      Repositories:\n"
        "        - Name: frontend\n"
        "        - Name: backend\n"
        "- name: fabrikam\n"
        "  projects:\n"
        "    - name: tools\n"
        "      repositories:\n"
        "        - name: cli\n"
    )

    refs = flatten_repositories(load_organizations(path))

    assert refs == [
        RepositoryRef(organization="contoso", project="web", repository="frontend"),
        RepositoryRef(organization="contoso", project="web", repository="backend"),
        RepositoryRef(organization="fabrikam", project="tools", repository="cli"),
    ]


def test_unreadable_organizations_file_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_organizations(tmp_path / "missing.yaml")

    bad = tmp_path / "bad.yaml"
    bad.write_text("organizations: nope\n")
    with pytest.raises(ConfigError):
        load_organizations(bad)


def test_repo_spec_and_auth_header(tmp_path: Path) -> None:
    cfg = QuantifierConfig()
    ref = RepositoryRef(organization="contoso", project="web", repository="frontend")

    spec = repo_spec_for(ref, cfg.bulk, tmp_path)

    assert spec.url == "https://dev.azure.com/contoso/web/_git/frontend"
    assert spec.local_path == tmp_path / "frontend"
    assert basic_auth_header("me", "pat") == "Authorization: Basic bWU6cGF0"


def test_logs_dir_receives_run_log(tmp_path: Path) -> None:
    logs = tmp_path / "logs"
    configure_logging(logging.INFO, log_dir=str(logs))
    try:
        logging.getLogger("pr_quantifier.pipeline.walker").warning("Skipping commit abc123")
        for handler in logging.getLogger().handlers:
            handler.flush()
        text = (logs / LOG_FILE_NAME).read_text(encoding="utf-8")
    finally:
        configure_logging(logging.INFO)

    assert "| WARNING | pr_quantifier.pipeline.walker | Skipping commit abc123" in text
