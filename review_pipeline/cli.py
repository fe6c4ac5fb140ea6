# review_pipeline/cli.py
"""
CLI interface for review-pipeline.

Thin presentation layer over ReviewPipeline and BudgetOptimizer.
"""

import asyncio
import json
from pathlib import Path

import typer
import yaml

from review_pipeline.budget import BudgetOptimizer, OptimizeOptions, ReviewFile
from review_pipeline.config import ReviewConfig, get_config_path, load_config
from review_pipeline.errors import PipelineError
from review_pipeline.llm import CancelToken, ReviewContext
from review_pipeline.logging_config import configure_logging
from review_pipeline.pipeline import ReviewOutcome, ReviewPipeline

app = typer.Typer(
    name="review-pipeline",
    help="Budgeted, rate-limited LLM code review.",
    no_args_is_help=True,
)

EXIT_PIPELINE_ERROR = 2

_SKIP_DIRS = {".git", ".hg", ".svn", ".venv", "node_modules", "__pycache__"}


def _run(coro):
    """Run async function from sync CLI context."""
    return asyncio.run(coro)


def _status_color(status: str) -> str:
    colors = {
        "PASS": typer.colors.GREEN,
        "WARNING": typer.colors.YELLOW,
        "FAIL": typer.colors.RED,
        "ERROR": typer.colors.MAGENTA,
    }
    return colors.get(status, typer.colors.WHITE)


def _read_file(path: Path, root: Path) -> ReviewFile:
    try:
        display = path.resolve().relative_to(root).as_posix()
    except ValueError:
        display = path.as_posix()
    return ReviewFile(
        path=display,
        content=path.read_text(encoding="utf-8", errors="replace"),
        size_bytes=path.stat().st_size,
    )


def collect_files(paths: list[Path]) -> list[ReviewFile]:
    """Read files (directories recursively, skipping VCS/dependency dirs)."""
    root = Path.cwd().resolve()
    files: list[ReviewFile] = []
    for path in paths:
        if path.is_dir():
            for child in sorted(path.rglob("*")):
                if child.is_file() and not _SKIP_DIRS.intersection(child.parts):
                    files.append(_read_file(child, root))
        elif path.is_file():
            files.append(_read_file(path, root))
        else:
            raise typer.BadParameter(f"Path does not exist: {path}")
    return files


def _load(config_file: Path | None) -> ReviewConfig:
    try:
        config = load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(EXIT_PIPELINE_ERROR)
    configure_logging(config.logging.level, config.logging.json_output)
    return config


def _print_outcome(outcome: ReviewOutcome) -> None:
    result = outcome.result
    status = result.overall_status
    typer.echo(typer.style(f"Status:   {status}", fg=_status_color(status), bold=True))
    typer.echo(
        f"Files:    {len(outcome.optimization.optimized)} reviewed, "
        f"{len(outcome.optimization.excluded)} excluded"
    )
    if result.usage is not None:
        typer.echo(f"Tokens:   {result.usage.total_tokens}")
    typer.echo(f"Attempts: {len(outcome.attempts)}  ({outcome.elapsed_seconds:.1f}s)")

    if result.parse_error:
        typer.echo(typer.style(f"Error:    {result.parse_error}", fg=typer.colors.RED))

    for excluded in outcome.optimization.excluded:
        typer.echo(f"  skipped {excluded.path} ({excluded.reason})")

    if result.issues:
        typer.echo()
    for issue in result.issues:
        location = issue.file + (f":{issue.line}" if issue.line is not None else "")
        typer.echo(f"[{issue.severity}] {issue.category} {location} - {issue.title}")
        if issue.recommendation:
            typer.echo(f"    -> {issue.recommendation}")


@app.command()
def review(
    paths: list[Path] = typer.Argument(..., help="Files or directories to review"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config YAML file"),
    exclude: list[str] = typer.Option(None, "--exclude", "-e", help="Exclude paths containing this"),
    include: list[str] = typer.Option(None, "--include", "-i", help="Only paths containing this"),
    branch: str = typer.Option("main", "--branch", "-b", help="Target branch of the change"),
    timeout: float = typer.Option(None, "--timeout", help="Overall deadline in seconds"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Review files with the configured LLM."""
    config = _load(config_file)
    files = collect_files(paths)

    try:
        pipeline = ReviewPipeline.from_config(config)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_PIPELINE_ERROR)

    pipeline.options = OptimizeOptions(
        exclude_patterns=[*pipeline.options.exclude_patterns, *(exclude or [])],
        include_patterns=[*pipeline.options.include_patterns, *(include or [])],
        max_tokens_per_file=pipeline.options.max_tokens_per_file,
    )
    context = ReviewContext(target_branch=branch)

    async def _review() -> ReviewOutcome:
        cancel = CancelToken.with_timeout(timeout) if timeout else None
        try:
            return await pipeline.run(files, context, cancel)
        finally:
            await pipeline.close()

    try:
        outcome = _run(_review())
    except PipelineError as e:
        typer.echo(f"Error ({e.kind.value}): {e}", err=True)
        raise typer.Exit(EXIT_PIPELINE_ERROR)
    except KeyboardInterrupt:
        typer.echo("\nCancelled.", err=True)
        raise typer.Exit(130)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "result": outcome.result.model_dump(mode="json", exclude_none=True),
                    "excluded": [e.model_dump() for e in outcome.optimization.excluded],
                    "truncated": outcome.optimization.optimization_applied,
                    "attempts": len(outcome.attempts),
                    "elapsed_seconds": outcome.elapsed_seconds,
                    "estimated_cost": outcome.estimated_cost,
                    "model": outcome.model,
                },
                indent=2,
            )
        )
    else:
        _print_outcome(outcome)

    if outcome.overall_status in ("FAIL", "ERROR"):
        raise typer.Exit(1)


@app.command()
def analyze(
    paths: list[Path] = typer.Argument(..., help="Files or directories to measure"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config YAML file"),
):
    """Show token/size usage against the budget without calling the LLM."""
    config = _load(config_file)
    files = collect_files(paths)
    optimizer = BudgetOptimizer()

    check = optimizer.check_limits(files, config.budget)
    report = optimizer.usage_report(check.analysis, config.budget)

    typer.echo(f"Files:       {report.total_files}")
    typer.echo(f"Tokens:      {report.total_tokens} (available {check.available_tokens})")
    typer.echo(f"Size:        {report.total_size}")
    typer.echo(f"Cost:        ${report.estimated_cost:.4f}")
    typer.echo(f"Utilization: {check.utilization:.1f}%")
    verdict = "within limits" if check.within_limits else f"exceeded ({check.reason})"
    color = typer.colors.GREEN if check.within_limits else typer.colors.RED
    typer.echo(typer.style(f"Budget:      {verdict}", fg=color))

    for line in dict.fromkeys([*check.recommendations, *report.recommendations]):
        typer.echo(f"  - {line}")


@app.command("config")
def show_config(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config YAML file"),
):
    """Print the config file location and the effective configuration."""
    config = _load(config_file)
    typer.echo(f"# {config_file or get_config_path()}")
    data = config.model_dump(mode="json")
    if data["llm"].get("api_key"):
        data["llm"]["api_key"] = "***"
    typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
