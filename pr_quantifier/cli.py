from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer

from pr_quantifier.adapters.github.github_client import GitHubClient
from pr_quantifier.adapters.github.pr_events import PullRequestEventHandler
from pr_quantifier.common.logging_config import configure_logging
from pr_quantifier.integration.event_bus import InMemoryEventBus
from pr_quantifier.integration.metrics import InMemoryMetrics
from pr_quantifier.pipeline.config import ConfigError, QuantifierConfig
from pr_quantifier.pipeline.progress_ui import progress_ui
from pr_quantifier.pipeline.runner import QuantifyRunner
from pr_quantifier.quantifier.oracle import PercentileOracle


app = typer.Typer(add_completion=False, help="Quantify the size of code changes.")


def _load_config(config: Optional[str], batch_size: Optional[int]) -> QuantifierConfig:
    path = Path(config).expanduser() if config else None
    try:
        cfg = QuantifierConfig.load(path)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if batch_size is not None:
        if batch_size < 1:
            raise typer.BadParameter("--batch-size must be at least 1")
        cfg.walker.batch_size = batch_size
    logs_dir = cfg.outputs.resolve_logs_dir()
    configure_logging(logging.INFO, log_dir=str(logs_dir) if logs_dir else None)
    return cfg


@app.command()
def repo(
    path: str = typer.Argument(..., help="Any path inside the repository to quantify"),
    config: Optional[str] = typer.Option(None, help="Path to quantifier.toml"),
    batch_size: Optional[int] = typer.Option(None, help="Commits per batch (default 100)"),
    output_dir: Optional[str] = typer.Option(None, help="Where to write the results CSV"),
    context: Optional[str] = typer.Option(None, help="Context file to score with"),
) -> None:
    """Quantify every first-parent commit of one repository."""
    cfg = _load_config(config, batch_size)
    if context:
        cfg.context.local_path = context

    bus = InMemoryEventBus()
    with progress_ui() as ui:
        ui.attach(bus)
        runner = QuantifyRunner(config=cfg, bus=bus)
        out = Path(output_dir).expanduser() if output_dir else None
        summary = runner.quantify_path(Path(path).expanduser(), out_dir=out)

    if summary is None:
        typer.echo(f"No repo found at {path}")
        return
    typer.echo(
        f"{summary.repository}: {summary.commits_scored} commits scored, "
        f"{summary.commits_failed} skipped in {summary.batches} batches"
    )


@app.command()
def bulk(
    organizations: str = typer.Argument(..., help="YAML list of organizations/projects/repositories"),
    clone_path: Optional[str] = typer.Option(None, help="Directory holding the repository checkouts"),
    config: Optional[str] = typer.Option(None, help="Path to quantifier.toml"),
    batch_size: Optional[int] = typer.Option(None, help="Commits per batch (default 100)"),
    clone: Optional[bool] = typer.Option(None, "--clone/--no-clone", help="Clone or fetch before quantifying"),
) -> None:
    """Quantify every repository listed in a bulk configuration file, in order."""
    cfg = _load_config(config, batch_size)
    if clone is not None:
        cfg.bulk.clone = clone

    bus = InMemoryEventBus()
    metrics = InMemoryMetrics().attach(bus)
    with progress_ui() as ui:
        ui.attach(bus)
        runner = QuantifyRunner(config=cfg, bus=bus)
        try:
            results = runner.quantify_organizations(
                Path(organizations).expanduser(),
                Path(clone_path).expanduser() if clone_path else None,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    failed = [name for name, summary in results.items() if summary is None]
    typer.echo(
        f"Quantified {len(results) - len(failed)}/{len(results)} repositories, "
        f"{int(sum(metrics.values('RepositoryCommitsScored')))} commits scored"
    )
    if failed:
        typer.echo("Not quantified: " + ", ".join(failed))


@app.command()
def pr(
    event: str = typer.Argument(..., help="Path to a pull_request webhook payload (JSON)"),
    config: Optional[str] = typer.Option(None, help="Path to quantifier.toml"),
    apply_label: Optional[bool] = typer.Option(None, "--apply-label/--no-apply-label"),
    context_only: bool = typer.Option(False, "--context-only", help="Only resolve and print the context file"),
) -> None:
    """Quantify a single pull request from its webhook payload."""
    cfg = _load_config(config, None)
    token = os.environ.get(cfg.github.token_env_var, "")
    if not token:
        raise typer.BadParameter(f"Missing GitHub token in env var: {cfg.github.token_env_var}")

    bus = InMemoryEventBus()
    metrics = InMemoryMetrics().attach(bus)
    handler = PullRequestEventHandler(
        client=GitHubClient(token=token, api_base_url=cfg.github.api_base_url),
        oracle=PercentileOracle(),
        bus=bus,
        context_config=cfg.context,
        apply_label=cfg.github.apply_label if apply_label is None else apply_label,
    )
    payload = Path(event).expanduser().read_text(encoding="utf-8")
    if context_only:
        resolution = handler.resolve_event_context(payload)
        if resolution is None:
            typer.echo("Event ignored")
            return
        typer.echo(json.dumps(asdict(resolution), indent=2))
        return

    outcome = handler.handle_event(payload)
    if outcome is None:
        typer.echo("Event ignored")
        return

    typer.echo(
        json.dumps(
            {
                "repository": outcome.repository,
                "number": outcome.number,
                "context": outcome.context.path,
                "context_attempts": list(outcome.context.attempts),
                "context_error": outcome.context.error,
                "score": asdict(outcome.score),
                "elapsed_ms": outcome.elapsed_ms,
                "metrics_recorded": metrics.count("PullRequestQuantifyElapsedMs"),
            },
            indent=2,
        )
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
