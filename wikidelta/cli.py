"""Typer-based CLI for wikidelta incremental documentation sync."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__, config
from .config_manager import config_location, load_full_config, load_settings, set_setting
from .diff_engine import MyersDiff, diff_stats
from .impact import ImpactAnalyzer
from .models import ChangeInfo
from .parser import PythonSymbolParser
from .pipeline import UpdatePipeline, change_kind
from .risk import RiskAssessmentService, SuggestionGenerator
from .scheduler import UpdateOptimizer
from .storage import SQLiteArtifactStore, load_threshold, save_threshold
from .vcs import GitSource, NotARepositoryError

app = typer.Typer(
    help="📚 wikidelta: keep generated docs in sync with code, one small update at a time.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_app = typer.Typer(help="Show or change wikidelta settings.")
app.add_typer(config_app, name="config")

console = Console()

RISK_STYLES = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}
PRIORITY_STYLES = {"critical": "bold red", "high": "red", "normal": "yellow", "low": "dim"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"wikidelta v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
):
    """wikidelta: impact-driven incremental updates for generated documentation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise typer.BadParameter(f"Cannot read '{path}': {exc}")


def _changes_for(project_path: Path, changed: List[str]) -> List[ChangeInfo]:
    if not changed:
        raise typer.BadParameter("Pass at least one --changed PATH.")
    changes = []
    for rel in changed:
        rel_path = Path(rel).as_posix()
        change_type = "modified" if (project_path / rel_path).exists() else "deleted"
        changes.append(ChangeInfo(file_path=rel_path, change_type=change_type))
    return changes


def _analyzer_for(project_path: Path) -> ImpactAnalyzer:
    settings = load_settings()
    analyzer = ImpactAnalyzer(max_depth=settings.impact.max_depth)
    analyzer.initialize(PythonSymbolParser(project_path).parse_project())
    return analyzer


# ===================================================================
# Diff / merge
# ===================================================================

@app.command("diff")
def diff(
    old: Path = typer.Argument(..., exists=True, dir_okay=False, help="Original file."),
    new: Path = typer.Argument(..., exists=True, dir_okay=False, help="Changed file."),
):
    """Show a unified line diff of two files."""
    old_text, new_text = _read_text(old), _read_text(new)
    output = MyersDiff().generate_unified_diff(old_text, new_text)
    additions, deletions, unchanged = diff_stats(old_text, new_text)

    if output:
        typer.echo(f"--- {old}")
        typer.echo(f"+++ {new}")
        typer.echo(output)
    else:
        typer.echo("No differences.")
    typer.echo(f"\n{additions} addition(s), {deletions} deletion(s), {unchanged} unchanged")


@app.command("merge")
def merge(
    base: Path = typer.Argument(..., exists=True, dir_okay=False, help="Common ancestor."),
    ours: Path = typer.Argument(..., exists=True, dir_okay=False, help="Our version."),
    theirs: Path = typer.Argument(..., exists=True, dir_okay=False, help="Their version."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the merged text here."),
):
    """Three-way merge of two edited copies of BASE. Exits 1 on conflicts."""
    result = MyersDiff().merge(_read_text(base), _read_text(ours), _read_text(theirs))

    if output:
        output.write_text(result.content, encoding="utf-8")
        typer.echo(f"Wrote merged text to {output}")
    else:
        typer.echo(result.content)

    if not result.resolved:
        for conflict in result.conflicts:
            typer.echo(f"❌ Conflict at lines {conflict.start_line}-{conflict.end_line}", err=True)
        raise typer.Exit(code=1)


# ===================================================================
# Impact / planning
# ===================================================================

@app.command("impact")
def impact(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Python project root."),
    changed: List[str] = typer.Option([], "--changed", "-c", help="Changed file, relative to the project."),
):
    """Show which artifacts a set of changed files affects, and how risky it is."""
    project_path = project_path.resolve()
    changes = _changes_for(project_path, changed)
    analyzer = _analyzer_for(project_path)
    result = analyzer.analyze_impact(changes)

    if not result.affected_artifacts:
        console.print("[dim]No artifacts affected.[/dim]")
    else:
        table = Table(title="📄 Affected artifacts", title_style="bold cyan")
        table.add_column("Artifact")
        table.add_column("Priority")
        table.add_column("Impact")
        table.add_column("Symbols", justify="right")
        table.add_column("Reason", style="dim")
        for artifact in result.affected_artifacts:
            style = PRIORITY_STYLES.get(artifact.priority, "white")
            table.add_row(
                artifact.artifact_id,
                f"[{style}]{artifact.priority}[/{style}]",
                artifact.impact_type,
                str(len(artifact.affected_symbols)),
                artifact.reason,
            )
        console.print(table)

    console.print(
        f"  [dim]Direct[/dim] {len(result.direct_impacts)}  "
        f"[dim]Indirect[/dim] {len(result.indirect_impacts)}  "
        f"[dim]Effort[/dim] {result.estimated_effort:.0f}ms"
    )
    if result.update_order:
        console.print(f"  [dim]Update order[/dim] {' → '.join(result.update_order)}")

    direct_items, indirect_items = analyzer.to_impact_items(result)
    assessment = RiskAssessmentService().assess_risk(direct_items, indirect_items, change_kind(changes))
    style = RISK_STYLES[assessment.overall_risk]
    lines = [f"[{style}]{assessment.overall_risk.upper()}[/{style}] (score {assessment.risk_score})"]
    lines.extend(f"• {f.description} [dim]({f.severity})[/dim]" for f in assessment.factors)
    lines.append("")
    lines.append(assessment.recommendation)
    console.print(Panel("\n".join(lines), title="⚠️  Risk", width=min(console.width, 90)))

    suggestions = SuggestionGenerator().generate(
        direct_items + indirect_items, assessment.overall_risk, assessment.factors
    )
    for action in suggestions:
        console.print(f"  [bold]{action.priority:>6}[/bold]  {action.title}")


@app.command("plan")
def plan(
    project_path: Path = typer.Argument(..., exists=True, file_okay=False, help="Python project root."),
    changed: List[str] = typer.Option([], "--changed", "-c", help="Changed file, relative to the project."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Operations per batch."),
):
    """Show the batched update plan for a set of changed files."""
    project_path = project_path.resolve()
    changes = _changes_for(project_path, changed)
    settings = load_settings()
    batch_settings = settings.batch
    if batch_size is not None:
        batch_settings = batch_settings.model_copy(update={"batch_size": batch_size})

    optimizer = UpdateOptimizer(_analyzer_for(project_path), batch_settings.to_batch_config())
    batch_plan = optimizer.optimize_batch(changes)

    table = Table(title="🗂️  Update plan", title_style="bold cyan")
    table.add_column("Batch")
    table.add_column("Priority")
    table.add_column("Operations")
    table.add_column("Depends on", style="dim")
    for batch in batch_plan.batches:
        ops = ", ".join(str(op) for op in batch.operations)
        style = PRIORITY_STYLES.get(batch.priority, "white")
        table.add_row(batch.id, f"[{style}]{batch.priority}[/{style}]", ops, ", ".join(batch.dependencies) or "-")
    console.print(table)

    strategy = batch_plan.strategy
    console.print(
        f"  [dim]Strategy[/dim] {strategy.type if strategy else '-'}  "
        f"[dim]Operations[/dim] {batch_plan.total_operations}  "
        f"[dim]Waves[/dim] {batch_plan.parallel_groups}  "
        f"[dim]Estimate[/dim] {batch_plan.estimated_time}ms"
    )


# ===================================================================
# Sync
# ===================================================================

@app.command("sync")
def sync(
    project_path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Git working tree."),
    since: Optional[str] = typer.Option(None, "--since", help="Revision to diff against (default: last sync)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan only; do not touch stored artifacts."),
    markers: bool = typer.Option(False, "--markers", help="Store conflicting artifacts with conflict markers."),
):
    """Run one incremental update cycle for a git project."""
    project_path = project_path.resolve()
    try:
        source = GitSource(project_path, suffixes=sorted(config.SUPPORTED_EXTENSIONS))
    except NotARepositoryError as exc:
        raise typer.BadParameter(str(exc))

    store = SQLiteArtifactStore(config.project_db_path(project_path))
    try:
        pipeline = UpdatePipeline(
            project_path,
            source,
            PythonSymbolParser(project_path),
            store,
            settings=load_settings(),
            on_conflict="markers" if markers else "keep",
        )
        report = pipeline.run(since=since, dry_run=dry_run)
    except NotARepositoryError as exc:
        raise typer.BadParameter(str(exc))
    finally:
        store.close()

    if not report.changes:
        typer.echo("✅ Everything is up to date.")
        return

    mode = "incremental" if report.used_incremental else "full"
    typer.echo(
        f"{len(report.changes)} changed file(s), {len(report.symbol_changes)} symbol change(s), "
        f"{len(report.impact.affected_artifacts)} artifact(s) affected ({mode} update, "
        f"risk {report.risk.overall_risk})."
    )

    if dry_run or report.result is None:
        for batch in report.plan.batches:
            typer.echo(f"  {batch.id}: {', '.join(str(op) for op in batch.operations)}")
        return

    for outcome in report.outcomes.values():
        typer.echo(f"  {outcome}")
    for error in report.result.errors:
        typer.echo(f"  ❌ {error.operation}: {error.error}", err=True)
    typer.echo(str(report.result))

    if not report.result.success:
        raise typer.Exit(code=1)


@app.command("artifacts")
def artifacts(
    project_path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Synced project."),
    artifact_id: Optional[str] = typer.Argument(None, help="Print this artifact's content."),
):
    """List stored artifacts, or print one."""
    with SQLiteArtifactStore(config.project_db_path(project_path.resolve())) as store:
        if artifact_id is None:
            ids = store.list()
            if not ids:
                typer.echo("No artifacts stored yet. Run 'wikidelta sync' first.")
                raise typer.Exit(code=0)
            for aid in ids:
                typer.echo(aid)
            return

        artifact = store.load(artifact_id)
    if artifact is None:
        raise typer.BadParameter(f"Artifact '{artifact_id}' not found.")
    typer.echo(artifact.content)


# ===================================================================
# Threshold
# ===================================================================

@app.command("threshold")
def threshold(
    project_size: int = typer.Argument(..., min=1, help="Number of files in the project."),
    change_percentage: float = typer.Argument(..., min=0, help="Share of files changed, in percent."),
    record: Optional[bool] = typer.Option(
        None,
        "--record-success/--record-failure",
        help="Record the outcome of an update of this size.",
    ),
    update_time: float = typer.Option(0.0, "--time", min=0, help="Update time in ms for --record-*."),
):
    """Decide between incremental and full update for a change of this size."""
    controller = load_threshold(config=load_settings().threshold.to_threshold_config())
    use_incremental = controller.should_use_incremental(project_size, change_percentage)
    recommendation = controller.get_recommendation(project_size)

    verdict = "incremental" if use_incremental else "full"
    typer.echo(f"Threshold: {controller.calculate_threshold(project_size):.1f}%  →  {verdict} update")
    typer.echo(f"{recommendation.recommendation} (confidence {recommendation.confidence:.2f})")

    if record is not None:
        controller.record_result(project_size, change_percentage, use_incremental, record, update_time)
        save_threshold(controller)
        stats = controller.get_stats()
        typer.echo(f"Recorded. {stats.history_size} update(s) in history.")


# ===================================================================
# Config
# ===================================================================

@config_app.command("show")
def config_show():
    """Print the effective settings."""
    settings = load_settings()
    console.print(f"[dim]Config[/dim] {config_location()}")
    for section, values in settings.model_dump().items():
        table = Table(title=escape(f"[{section}]"), show_header=False, box=None, title_justify="left")
        table.add_column("key", style="cyan")
        table.add_column("value")
        for key, value in values.items():
            table.add_row(key, str(value))
        console.print(table)

    extra = sorted(set(load_full_config()) - set(settings.model_dump()))
    if extra:
        console.print(f"[dim]Unrecognised sections kept as-is: {', '.join(extra)}[/dim]")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting as <section>.<name>, e.g. batch.batch_size."),
    value: str = typer.Argument(..., help="New value."),
):
    """Change one setting."""
    try:
        set_setting(key, value)
    except KeyError as exc:
        raise typer.BadParameter(exc.args[0])
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    typer.echo(f"✅ {key} = {value}")
