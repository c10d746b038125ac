"""CLI entry point for shotdiff."""

from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from shotdiff.batch.coordinator import BatchSubmission
from shotdiff.differ.image_diff import diff_images
from shotdiff.errors import ShotDiffError
from shotdiff.models.config import ShotDiffConfig
from shotdiff.models.entities import BuildSummary
from shotdiff.orchestrator import Orchestrator
from shotdiff.reporter.json_report import generate_json_report

console = Console()

STATUS_STYLES = {
    "complete": "green",
    "pending": "yellow",
    "progress": "yellow",
    "expired": "magenta",
    "error": "red",
    "aborted": "dim",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_orchestrator(config: str) -> Orchestrator:
    try:
        cfg = ShotDiffConfig.load(config)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config}[/red]")
        console.print("Run 'shotdiff init' to create a default config.")
        sys.exit(1)
    return Orchestrator(cfg)


def _summary_table(summaries: list[BuildSummary]) -> Table:
    table = Table(title="Builds")
    table.add_column("#", style="bold")
    table.add_column("Status")
    table.add_column("Conclusion")
    table.add_column("Review")
    table.add_column("URL")
    for s in summaries:
        style = STATUS_STYLES.get(s.status.value, "")
        table.add_row(
            str(s.number),
            f"[{style}]{s.status.value}[/{style}]" if style else s.status.value,
            s.conclusion.value if s.conclusion else "-",
            s.review_status.value if s.review_status else "-",
            s.url or "",
        )
    return table


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Screenshot diffing and visual build review"""
    setup_logging(verbose)


@cli.command()
@click.option("--data-dir", default=".shotdiff", help="Where builds and assets are stored")
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def init(data_dir: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config} already exists. Overwrite?"):
            return

    cfg = ShotDiffConfig(data_dir=data_dir)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nSubmit screenshots with:")
    console.print("  [blue]shotdiff submit -r owner/repo --commit <sha> --branch main shots/*.png[/blue]")


@cli.command()
@click.argument("images", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--repository", "-r", required=True, help="Repository identifier, e.g. owner/repo")
@click.option("--commit", required=True, help="Commit SHA of the run")
@click.option("--branch", required=True, help="Branch of the run")
@click.option("--name", default="default", help="Build name")
@click.option("--parallel", is_flag=True, help="This batch is one shard of a parallel build")
@click.option("--parallel-nonce", default=None, help="Identifier shared by all shards")
@click.option("--parallel-total", default=None, type=int, help="Number of shards")
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def submit(
    images: tuple[str, ...],
    repository: str,
    commit: str,
    branch: str,
    name: str,
    parallel: bool,
    parallel_nonce: str | None,
    parallel_total: int | None,
    config: str,
) -> None:
    """Upload screenshots as one batch of a build."""
    orchestrator = _load_orchestrator(config)
    try:
        screenshots = [orchestrator.upload_screenshot(Path(p)) for p in images]
        submission = BatchSubmission(
            repository_id=repository,
            commit=commit,
            branch=branch,
            name=name,
            screenshots=screenshots,
            parallel=parallel,
            parallel_nonce=parallel_nonce,
            parallel_total=parallel_total,
        )
        receipt = orchestrator.submit(submission)
    except ValidationError as e:
        console.print(f"[red]Invalid submission:[/red] {e.errors()[0]['msg']}")
        sys.exit(1)
    except ShotDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    build = receipt.build
    console.print(f"[green]Build #{build.number}[/green] ({build.id})")
    console.print(f"  Screenshots: {len(receipt.screenshots)}")
    console.print(f"  Complete: {receipt.bucket.complete}")
    console.print(f"  URL: [blue]{orchestrator.build_url(build)}[/blue]")


@cli.command()
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def process(config: str) -> None:
    """Run build and diff jobs for every build ready to be processed."""
    orchestrator = _load_orchestrator(config)
    summaries = orchestrator.run_pending()
    if not summaries:
        console.print("[yellow]No builds ready to process[/yellow]")
        return
    console.print(_summary_table(summaries))


@cli.command()
@click.option("--build", "-b", "build_id", default=None, help="Show the diffs of one build")
@click.option("--report", is_flag=True, help="Write a JSON report for the build")
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def status(build_id: str | None, report: bool, config: str) -> None:
    """Show build statuses, conclusions and review statuses."""
    orchestrator = _load_orchestrator(config)
    try:
        summaries = orchestrator.get_summaries([build_id] if build_id else None)
    except ShotDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(_summary_table(summaries))
    if not build_id:
        return

    diffs = orchestrator.diff_details(build_id)
    table = Table(title="Screenshot diffs")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Score")
    table.add_column("Job")
    table.add_column("Review")
    for d in diffs:
        table.add_row(
            d["name"],
            d["status"],
            "-" if d["score"] is None else f"{d['score']:.2%}",
            d["job_status"],
            d["validation_status"] or "-",
        )
    console.print(table)

    if report:
        path = Path(orchestrator.config.report_output_dir) / f"report_{build_id}.json"
        generate_json_report(summaries[0], diffs, path)
        console.print(f"  JSON report: [blue]{path}[/blue]")


@cli.command()
@click.argument("diff_id")
@click.argument("verdict", type=click.Choice(["accepted", "rejected", "unknown"]))
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def review(diff_id: str, verdict: str, config: str) -> None:
    """Record a review verdict on a screenshot diff."""
    orchestrator = _load_orchestrator(config)
    try:
        orchestrator.review_diff(diff_id, verdict)
    except ShotDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Diff {diff_id} marked {verdict}[/green]")


@cli.command()
@click.argument("build_id")
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def abort(build_id: str, config: str) -> None:
    """Abort a build."""
    orchestrator = _load_orchestrator(config)
    try:
        build = orchestrator.abort_build(build_id)
    except ShotDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Build #{build.number} aborted[/green]")


@cli.command()
@click.argument("base", type=click.Path(dir_okay=False))
@click.argument("compare", type=click.Path(dir_okay=False))
@click.option("--output", "-o", default=None, help="Where to write the diff mask PNG")
@click.option("--tolerance", default=0, type=click.IntRange(0, 255), help="Per-channel tolerance")
def compare(base: str, compare: str, output: str | None, tolerance: int) -> None:
    """Compare two images directly."""
    try:
        result = diff_images(base, compare, channel_tolerance=tolerance)
    except ShotDiffError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(f"Score: [bold]{result.score:.4%}[/bold] ({result.width}x{result.height})")
    if result.diff_path is None:
        console.print("[green]No difference[/green]")
        return
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(result.diff_path), output)
        console.print(f"  Diff mask: [blue]{output}[/blue]")
    else:
        result.diff_path.unlink(missing_ok=True)


if __name__ == "__main__":
    cli()
