"""CLI entry point for the step-cache runner."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from stepcache.models.config import FrameworkConfig
from stepcache.models.test_case import DataFile, TestCase
from stepcache.models.test_result import TestResult
from stepcache.orchestrator import Orchestrator
from stepcache.store.data_store import DataStore, StoreError

console = Console()

DEFAULT_CONFIG = "stepcache-config.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> FrameworkConfig:
    try:
        return FrameworkConfig.load(path)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {path}[/red]")
        console.print("Run 'stepcache init' to create a default config.")
        sys.exit(1)


def _store(config_path: str) -> DataStore:
    return DataStore(_load_config(config_path).data_file)


def print_summary(results: list[TestResult]) -> None:
    table = Table(title="Results Summary")
    table.add_column("Case", style="bold")
    table.add_column("Status")
    table.add_column("Steps")
    table.add_column("Replayed")
    table.add_column("Duration")
    table.add_column("Error", overflow="fold")
    for r in results:
        status = "[green]passed[/green]" if r.status == "passed" else "[red]failed[/red]"
        replayed = sum(1 for s in r.steps if s.path == "replay")
        done = sum(1 for s in r.steps if s.status == "passed")
        table.add_row(
            r.id, status, f"{done}/{len(r.steps)}", str(replayed),
            f"{(r.duration or 0) / 1000:.1f}s", (r.error or "")[:200],
        )
    console.print(table)
    passed = sum(1 for r in results if r.status == "passed")
    console.print(f"[bold]{passed}/{len(results)} passed[/bold]")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Natural-language browser tests with cached action replay"""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--case", "-k", "case_ids", multiple=True, help="Run only these case ids")
@click.option("--concurrency", "-n", type=int, default=None, help="Max cases in flight")
@click.option("--only-api", is_flag=True, help="Validate API requests instead of the expected result")
@click.option("--record-api", is_flag=True, help="Record API traffic for each case (runs one at a time)")
@click.option("--headed", is_flag=True, help="Show the browser")
def run(config: str, case_ids: tuple[str, ...], concurrency: int | None,
        only_api: bool, record_api: bool, headed: bool) -> None:
    """Run cases from the data file, replaying cached steps where possible."""
    cfg = _load_config(config)
    updates: dict = {}
    if concurrency is not None:
        updates["max_concurrency"] = max(1, concurrency)
    if only_api:
        updates["only_api"] = True
    if record_api:
        updates["record_api"] = True
    if headed:
        updates["headless"] = False
    if updates:
        cfg = cfg.model_copy(update=updates)

    try:
        results = Orchestrator(cfg).run(list(case_ids) or None)
    except StoreError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    if not results:
        console.print("[yellow]No cases were run.[/yellow]")
        return
    print_summary(results)
    if any(r.status != "passed" for r in results):
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--url", "-u", required=True, help="Page to start recording on")
@click.option("--case-id", default=None, help="Store the captured actions as this case's steps")
@click.option("--api-url", "api_urls", multiple=True, help="Record request schemas for this API URL")
def record(config: str, url: str, case_id: str | None, api_urls: tuple[str, ...]) -> None:
    """Open a browser and capture your actions until Ctrl+C."""
    cfg = _load_config(config)
    path = Orchestrator(cfg).record(url, case_id=case_id, api_urls=list(api_urls))
    console.print(f"[green]Recording saved:[/green] [blue]{path}[/blue]")


@cli.command()
@click.option("--data-file", "-d", default="./data/cases.json", help="Case data file path")
def init(data_file: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return
    FrameworkConfig(data_file=data_file).save(config_path)
    console.print(f"[green]Config created:[/green] {config_path}")


@cli.group()
def cases() -> None:
    """Inspect and manage stored cases."""


@cases.command("list")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def list_cases(config: str) -> None:
    """Show stored cases and their cached state."""
    store = _store(config)
    data = store.load()
    table = Table(title=f"Cases in {store.path}")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Steps")
    table.add_column("Cached")
    table.add_column("Plan")
    table.add_column("Last result")
    for case in data.test_cases:
        history = case.result.steps if case.result else []
        cached = sum(1 for s in history if s.actions)
        table.add_row(
            case.id, case.name, str(len(case.steps)), str(cached),
            "yes" if case.result and case.result.assertion_plan else "no",
            case.result.status if case.result else "-",
        )
    console.print(table)
    if data.statistics:
        s = data.statistics
        console.print(f"Last run {data.last_run or '-'}: {s.passed}/{s.total} passed ({s.pass_rate:.1f}%), "
                      f"avg {s.average_duration / 1000:.1f}s")


@cases.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def import_cases(source: str, config: str) -> None:
    """Append cases from a JSON file (a list of cases or a data file); existing ids are skipped."""
    with open(source, encoding="utf-8") as f:
        raw = json.load(f)
    try:
        if isinstance(raw, list):
            incoming = [TestCase.model_validate(item) for item in raw]
        else:
            incoming = DataFile.model_validate(raw).test_cases
    except ValidationError as e:
        console.print(f"[red]Invalid case file:[/red] {e}")
        sys.exit(1)
    added = _store(config).import_cases(incoming, source_file=source)
    console.print(f"[green]Imported {added} case(s)[/green], skipped {len(incoming) - added}")


@cases.command("delete")
@click.argument("case_id")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def delete_case(case_id: str, config: str) -> None:
    """Remove a case and its cached history."""
    if _store(config).delete_case(case_id):
        console.print(f"[green]Deleted case {case_id}[/green]")
    else:
        console.print(f"[yellow]No case with id {case_id}[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
