"""CLI interface using typer + rich."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ats_optimizer.cache.response_cache import ResponseCache, SQLiteResponseCache
from ats_optimizer.clients.llm_client import LLMClient, RetryPolicy
from ats_optimizer.config import AppConfig, OptimizationConfig, load_config
from ats_optimizer.errors import OptimizerError
from ats_optimizer.logging.cost_calculator import calculate_cost
from ats_optimizer.logging.models import RunLog
from ats_optimizer.logging.usage_store import UsageStore
from ats_optimizer.models.optimization import OptimizationResult
from ats_optimizer.models.scoring import MatchResult
from ats_optimizer.pipeline.orchestrator import OptimizationOrchestrator
from ats_optimizer.pipeline.summary import build_job_summary

app = typer.Typer(
    name="ats-optimizer",
    help="Iterative ATS résumé optimization against a job posting",
    no_args_is_help=True,
)
console = Console()

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _read_text(path: Path, label: str) -> str:
    if not path.exists():
        console.print(f"[red]{label} file not found: {path}[/red]")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _build_cache(config: AppConfig) -> ResponseCache:
    if not config.cache.enabled:
        return ResponseCache()
    return SQLiteResponseCache(
        db_path=config.cache.resolved_db_path,
        ttl_days=config.cache.ttl_days,
    )


def _build_client(config: AppConfig, cache: ResponseCache) -> LLMClient:
    return LLMClient(
        timeout=config.llm.timeout,
        retry_policy=RetryPolicy(
            max_attempts=config.llm.max_retries,
            base_delay=config.llm.base_delay,
            multiplier=config.llm.backoff_multiplier,
            max_delay=config.llm.max_delay,
        ),
        cache=cache,
        model=config.llm.model,
    )


def _save_run_log(
    mode: str,
    llm: LLMClient,
    elapsed: float,
    *,
    result: OptimizationResult | None = None,
    match_result: MatchResult | None = None,
    error: Exception | None = None,
) -> None:
    tokens = llm.get_token_summary()
    log = RunLog(
        mode=mode,
        elapsed_seconds=elapsed,
        total_input_tokens=tokens["input"],
        total_output_tokens=tokens["output"],
        estimated_cost_usd=calculate_cost(tokens["calls"]),
        success=error is None,
        error_message=str(error) if error else None,
    )
    if result is not None:
        log = log.model_copy(update={
            "initial_score": result.metrics.initial_score,
            "final_score": result.final_score,
            "iterations": result.metrics.iteration_count,
            "termination_reason": result.termination_reason.value,
            "warning_count": len(result.warnings),
        })
    elif match_result is not None:
        log = log.model_copy(update={
            "initial_score": match_result.overall_score,
            "final_score": match_result.overall_score,
            "iterations": 1,
            "warning_count": len(match_result.warnings),
        })
    try:
        UsageStore().save_log(log)
    except (OSError, sqlite3.Error) as e:
        logger.warning("Could not save usage log: %s", e)


def _print_breakdown(match_result: MatchResult) -> None:
    table = Table(title="Score breakdown")
    table.add_column("Dimension")
    table.add_column("Weight", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Elements", justify="right")
    for name, detail in match_result.breakdown.details.items():
        table.add_row(name, f"{detail.weight:.2f}", f"{detail.score:.3f}", str(detail.element_count))
    console.print(table)


@app.command()
def optimize(
    job: Path = typer.Option(..., "--job", help="Job posting text file"),
    resume: Path = typer.Option(..., "--resume", help="Résumé text file"),
    target: float = typer.Option(None, "--target", help="Target score (0-1)"),
    max_iterations: int = typer.Option(None, "--max-iterations", help="Maximum rounds"),
    output: Path = typer.Option(None, "--output", "-o", help="Where to save the final résumé"),
    as_json: bool = typer.Option(False, "--json", help="Print the job-queue summary as JSON"),
    config_path: Path = typer.Option(None, "--config", help="config.yaml path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Revise a résumé round by round until it reaches the target score."""
    _setup_logging(verbose)
    try:
        config = load_config(config_path)
        optimization = config.optimization
        if target is not None or max_iterations is not None:
            optimization = OptimizationConfig(
                target_score=target if target is not None else optimization.target_score,
                max_iterations=(
                    max_iterations if max_iterations is not None else optimization.max_iterations
                ),
                early_stopping_rounds=optimization.early_stopping_rounds,
                min_improvement=optimization.min_improvement,
                dimension_weights=dict(optimization.dimension_weights),
            )
    except OptimizerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    job_text = _read_text(job, "Job posting")
    resume_text = _read_text(resume, "Résumé")

    cache = _build_cache(config)
    llm = _build_client(config, cache)
    orchestrator = OptimizationOrchestrator(llm, config, cache=cache)

    start = time.monotonic()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Optimizing...", total=None)

            def on_phase(phase: str, detail: str) -> None:
                progress.update(task, description=f"{phase}: {detail}")

            result = asyncio.run(
                orchestrator.run(job_text, resume_text, optimization=optimization, on_phase=on_phase)
            )
    except OptimizerError as e:
        _save_run_log("optimize", llm, time.monotonic() - start, error=e)
        console.print(f"[red]Run aborted: {e}[/red]")
        raise typer.Exit(1)

    _save_run_log("optimize", llm, time.monotonic() - start, result=result)

    summary = build_job_summary(result)
    if as_json:
        console.print_json(summary.model_dump_json())
    else:
        table = Table(title="Rounds")
        table.add_column("Round", justify="right")
        table.add_column("Score", justify="right")
        table.add_column("Priority", justify="right")
        table.add_column("Warnings", justify="right")
        for record in result.iterations:
            table.add_row(
                str(record.round),
                f"{record.score:.3f}",
                str(len(record.recommendations.priority)),
                str(len(record.warnings)),
            )
        console.print(table)
        console.print(
            Panel(
                f"Final score: [bold]{result.final_score:.3f}[/bold] "
                f"(from {result.metrics.initial_score:.3f})\n"
                f"Termination: {result.termination_reason.value}\n"
                f"Elapsed: {result.elapsed_seconds:.1f}s",
                title="Result",
            )
        )
        if result.warnings:
            console.print("\n[yellow]Warnings:[/yellow]")
            for warning in result.warnings:
                console.print(f"  - {warning}")

    if output is None:
        output = resume.with_name(f"{resume.stem}_optimized{resume.suffix or '.txt'}")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.final_resume, encoding="utf-8")
    console.print(f"\n[green]Saved résumé: {output}[/green]")


@app.command()
def score(
    job: Path = typer.Option(..., "--job", help="Job posting text file"),
    resume: Path = typer.Option(..., "--resume", help="Résumé text file"),
    config_path: Path = typer.Option(None, "--config", help="config.yaml path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Score a résumé once and show gaps, strengths and recommendations."""
    _setup_logging(verbose)
    try:
        config = load_config(config_path)
    except OptimizerError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)

    job_text = _read_text(job, "Job posting")
    resume_text = _read_text(resume, "Résumé")

    cache = _build_cache(config)
    llm = _build_client(config, cache)
    orchestrator = OptimizationOrchestrator(llm, config, cache=cache)

    start = time.monotonic()
    try:
        with console.status("Analyzing..."):
            outcome = asyncio.run(orchestrator.analyze(job_text, resume_text))
    except OptimizerError as e:
        _save_run_log("score", llm, time.monotonic() - start, error=e)
        console.print(f"[red]Analysis failed: {e}[/red]")
        raise typer.Exit(1)

    match_result = outcome.match_result
    _save_run_log("score", llm, time.monotonic() - start, match_result=match_result)

    console.print(Panel(f"[bold]{match_result.overall_score:.3f}[/bold]", title="Overall score"))
    _print_breakdown(match_result)

    if match_result.strengths:
        console.print("\n[green]Strengths:[/green]")
        for s in match_result.strengths:
            console.print(
                f"  - {s.element.text} <- {s.resume_element.text} "
                f"({s.match_type.value}, {s.strength:.2f})"
            )
    if match_result.gaps:
        console.print("\n[yellow]Gaps:[/yellow]")
        for g in match_result.gaps:
            console.print(f"  - {g.element.text} ({g.dimension}, importance {g.importance:.2f})")

    recs = outcome.recommendations
    console.print(Panel(recs.summary, title="Recommendations"))
    for label, items in (("Priority", recs.priority), ("Optional", recs.optional), ("Rewording", recs.rewording)):
        if items:
            console.print(f"\n[bold]{label}:[/bold]")
            for r in items:
                console.print(f"  - [{r.type.value}] {r.suggestion}")

    if match_result.warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in match_result.warnings:
            console.print(f"  - {warning}")


@app.command("cache-stats")
def cache_stats() -> None:
    """Show response cache statistics."""
    config = load_config()
    cache = SQLiteResponseCache(
        db_path=config.cache.resolved_db_path,
        ttl_days=config.cache.ttl_days,
    )
    stats = cache.stats()
    console.print(Panel(
        f"Total: {stats['total']} | Active: {stats['active']} | Expired: {stats['expired']}",
        title="Response cache",
    ))


@app.command("cache-clear")
def cache_clear() -> None:
    """Delete every cached response."""
    config = load_config()
    cache = SQLiteResponseCache(
        db_path=config.cache.resolved_db_path,
        ttl_days=config.cache.ttl_days,
    )
    removed = cache.clear()
    console.print(f"[green]Removed {removed} cached responses.[/green]")


@app.command()
def usage() -> None:
    """Show this month's usage statistics."""
    stats = UsageStore().get_monthly_stats()
    avg = stats["avg_final_score"]
    improvement = stats["avg_improvement"]
    console.print(Panel(
        f"Runs: {stats['total_runs']} (success {stats['success_rate']:.0f}%)\n"
        f"Tokens: {stats['total_input_tokens']} in / {stats['total_output_tokens']} out\n"
        f"Cost: ${stats['total_cost_usd']:.4f}\n"
        f"Avg final score: {avg if avg is not None else '-'} | "
        f"Avg improvement: {improvement if improvement is not None else '-'}",
        title=f"Usage {stats['month']}",
    ))


if __name__ == "__main__":
    app()
