"""CLI entry point for gh-project-summary.

Commands:
- collect: Collect a project and write the aggregate result as JSON
- limits: Show the current GitHub rate budget
- estimate: Estimate the API calls a collection would need
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from gh_project_summary import __version__
from gh_project_summary.collect.orchestrator import build_orchestrator
from gh_project_summary.collect.projects import ProjectResolver
from gh_project_summary.config import CollectionOptions, Config, TimeFilter, load_config
from gh_project_summary.errors import CollectionError
from gh_project_summary.github.auth import AuthenticationError, resolve_token
from gh_project_summary.github.graphql import GraphQLClient
from gh_project_summary.github.http import GitHubClient, GitHubHTTPError
from gh_project_summary.github.ratelimit import RateBudgetService
from gh_project_summary.github.rest import RestClient
from gh_project_summary.logging import setup_logging
from gh_project_summary.merge import (
    HintScope,
    NestedResult,
    QueryHint,
    build_output_result,
    build_project_result,
    format_jq_examples,
)

# Status goes to stderr so JSON on stdout stays parseable
console = Console(stderr=True)

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


def _load(config_path: Path | None) -> Config:
    return load_config(config_path) if config_path else Config()


def _project_id(cfg: Config, project: str | None) -> str:
    project_id = project or cfg.project.id or ",".join(cfg.project.repositories)
    if not project_id:
        msg = "No project given. Pass --project or set project.id in the config file."
        raise click.UsageError(msg)
    return project_id


def _options(
    cfg: Config,
    since: datetime | None,
    until: datetime | None,
    no_comments: bool,
    no_reviews: bool,
) -> CollectionOptions:
    options = cfg.collection
    update: dict[str, Any] = {}
    if since or until:
        window = options.time_filter
        update["time_filter"] = TimeFilter(
            since=since or window.since,
            until=until or window.until,
        )
    if no_comments:
        update["include_comments"] = False
    if no_reviews:
        update["include_reviews"] = False
    return options.model_copy(update=update) if update else options


def _client(cfg: Config, token: str | None) -> GitHubClient:
    try:
        resolved = resolve_token(token, cfg.github.token_env)
    except AuthenticationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise click.Abort() from e
    return GitHubClient(token=resolved, timeout=cfg.github.timeout, base_url=cfg.github.api_url)


def _example_hints(hints: list[QueryHint], per_kind: int = 3) -> list[QueryHint]:
    """A few whole-result queries followed by a few per-repository ones."""
    nested = [hint for hint in hints if hint.query.startswith(".repositories")]
    others = [hint for hint in hints if not hint.query.startswith(".repositories")]
    every = [hint for hint in nested if hint.scope == HintScope.ALL_ITEMS]
    return others[:per_kind] + (every or nested)[:per_kind]


def _report_error(ctx: click.Context, error: Exception) -> None:
    console.print(f"\n[bold red]Error:[/bold red] {error}")
    if isinstance(error, CollectionError):
        for instruction in error.recovery_instructions:
            console.print(f"  [yellow]-[/yellow] {instruction}")
    if ctx.obj.get("verbose"):
        import traceback

        console.print("\n[dim]Traceback:[/dim]")
        console.print(traceback.format_exc())


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.yaml file",
)
project_option = click.option(
    "--project",
    "-p",
    default=None,
    help="Projects v2 node id (PVT_...) or comma-separated owner/repo list",
)
token_option = click.option(
    "--token",
    default=None,
    help="GitHub token (defaults to the configured environment variable or gh CLI)",
)


@click.group()
@click.version_option(version=__version__, prog_name="gh-project-summary")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output")
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, verbose: bool, json_logs: bool) -> None:
    """Collect GitHub project activity and compute summary statistics.

    \b
    Quick Start:
        gh-project-summary limits
        gh-project-summary estimate --project owner/repo,owner/other
        gh-project-summary collect --project owner/repo --output result.json
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose=verbose, json_format=json_logs)


@main.command()
@config_option
@project_option
@token_option
@click.option("--since", type=click.DateTime(formats=DATE_FORMATS), default=None)
@click.option("--until", type=click.DateTime(formats=DATE_FORMATS), default=None)
@click.option("--no-comments", is_flag=True, default=False, help="Skip issue comments")
@click.option("--no-reviews", is_flag=True, default=False, help="Skip reviews and review comments")
@click.option(
    "--summary-only",
    is_flag=True,
    default=False,
    help="Write only project metrics with repositories nested by name",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write JSON here instead of stdout",
)
@click.pass_context
def collect(
    ctx: click.Context,
    config_path: Path | None,
    project: str | None,
    token: str | None,
    since: datetime | None,
    until: datetime | None,
    no_comments: bool,
    no_reviews: bool,
    summary_only: bool,
    output: Path | None,
) -> None:
    """Collect a project and write the aggregate result as JSON.

    The result holds flat arrays of every collected item, indexes into
    them, computed metrics and run metadata, with each repository's metrics
    also nested under `repositories.<name>`. --summary-only drops the raw
    arrays and indexes.
    """
    cfg = _load(config_path)
    project_id = _project_id(cfg, project)
    options = _options(cfg, since, until, no_comments, no_reviews)
    arguments = {
        "project": project_id,
        "since": since.isoformat() if since else None,
        "until": until.isoformat() if until else None,
        "no_comments": no_comments,
        "no_reviews": no_reviews,
        "summary_only": summary_only,
    }

    async def run() -> NestedResult:
        async with _client(cfg, token) as client:
            orchestrator = build_orchestrator(client, cfg)
            result = await orchestrator.collect(project_id, options, arguments=arguments)
        return build_project_result(result) if summary_only else build_output_result(result)

    console.print(f"[bold]Collecting {project_id}[/bold]")
    try:
        outcome = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Collection interrupted by user[/yellow]")
        raise click.Abort() from None
    except (CollectionError, GitHubHTTPError) as e:
        _report_error(ctx, e)
        raise click.Abort() from e

    data = outcome.data
    text = json.dumps(data, indent=2, default=str)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text)
    else:
        click.echo(text)

    collection = data["metadata"]["collection"]
    console.print()
    console.print("[bold green]Collection complete![/bold green]")
    console.print(f"  Repositories: {len(collection['repositories_processed'])}")
    for name, count in collection["items_collected"].items():
        console.print(f"  {name}: {count}")
    if collection["errors_encountered"]:
        console.print(
            f"  [yellow]Skipped {collection['errors_encountered']} repositories:[/yellow] "
            + ", ".join(collection["repositories_skipped"])
        )
    if output:
        console.print(f"  Output: {output}")
        console.print("\n[bold]Example queries:[/bold]")
        for line in format_jq_examples(_example_hints(outcome.hints), str(output)):
            console.print(f"  {line}", markup=False)


@main.command()
@config_option
@token_option
@click.pass_context
def limits(ctx: click.Context, config_path: Path | None, token: str | None) -> None:
    """Show the current GitHub rate budget."""
    cfg = _load(config_path)

    async def run() -> Any:
        async with _client(cfg, token) as client:
            return await RateBudgetService(RestClient(client), cfg.rate_limit).check_current_limits()

    try:
        snapshot = asyncio.run(run())
    except GitHubHTTPError as e:
        _report_error(ctx, e)
        raise click.Abort() from e

    table = Table(title="GitHub rate budget")
    table.add_column("API")
    table.add_column("Remaining", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Resets at")
    for name, usage in (("REST", snapshot.rest), ("GraphQL", snapshot.graphql)):
        table.add_row(
            name,
            str(usage.remaining),
            str(usage.limit),
            str(usage.calls_made),
            usage.reset_time.isoformat(),
        )
    console.print(table)


@main.command()
@config_option
@project_option
@token_option
@click.option("--no-comments", is_flag=True, default=False, help="Skip issue comments")
@click.option("--no-reviews", is_flag=True, default=False, help="Skip reviews and review comments")
@click.pass_context
def estimate(
    ctx: click.Context,
    config_path: Path | None,
    project: str | None,
    token: str | None,
    no_comments: bool,
    no_reviews: bool,
) -> None:
    """Estimate the API calls a collection would need."""
    cfg = _load(config_path)
    project_id = _project_id(cfg, project)
    options = _options(cfg, None, None, no_comments, no_reviews)

    async def run() -> Any:
        async with _client(cfg, token) as client:
            resolver = ProjectResolver(GraphQLClient(client), cfg.project.repositories)
            repositories = await resolver.list_repositories(project_id)
            budget = RateBudgetService(RestClient(client), cfg.rate_limit)
            return await budget.estimate_required_calls(repositories, options)

    try:
        call_estimate = asyncio.run(run())
    except (CollectionError, GitHubHTTPError) as e:
        _report_error(ctx, e)
        raise click.Abort() from e

    console.print(f"[bold]Estimate for {project_id}[/bold]")
    console.print(f"  Repositories: {call_estimate.repository_count}")
    console.print(f"  Estimated calls: {call_estimate.estimated_calls}")
    console.print(f"  Estimated duration: {call_estimate.estimated_duration}")
    console.print(f"  Recommended batch size: {call_estimate.recommended_batch_size}")
    if call_estimate.feasible:
        console.print("  [green]Fits the remaining budget[/green]")
    else:
        console.print("  [bold red]Exceeds the remaining budget[/bold red]")
