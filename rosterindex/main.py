"""
Command-line entry point.

    rosterindex update players --all-time
    rosterindex lookup players "Shohei Ohtani" ruth-0-h
    rosterindex names teams n
    rosterindex verify players
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .catalog import LookupResult, RosterCatalog
from .config import INDEX_NAMES, IndexConfig
from .core.exceptions import RosterIndexError
from .feed import StatsApiClient, player_entities, season_range, team_entities
from .storage import BuildReport, Entity, format_size

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="rosterindex",
                                 description="Build and query the player and team name indexes.")
    ap.add_argument("--data-dir", help="Directory holding the index files (default: $ROSTERINDEX_DATA_DIR or ./database)")
    ap.add_argument("--id-width", type=int, help="Digits per stored id (default: $ROSTERINDEX_ID_WIDTH or 6)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    update = sub.add_parser("update", help="Rebuild an index from the Stats API")
    update.add_argument("index", choices=INDEX_NAMES)
    update.add_argument("--all-time", action="store_true", help="Players of every season since 1876")
    update.add_argument("--from-json", type=Path, help="Build from a saved API payload instead of fetching")

    find = sub.add_parser("lookup", help="Find the ids of one or more names")
    find.add_argument("index", choices=INDEX_NAMES)
    find.add_argument("names", nargs="+")

    names = sub.add_parser("names", help="List stored keys")
    names.add_argument("index", choices=INDEX_NAMES)
    names.add_argument("prefix", nargs="?", default="")

    verify = sub.add_parser("verify", help="Check an index file for format violations")
    verify.add_argument("index", choices=INDEX_NAMES)
    return ap


def load_entities(config: IndexConfig, index: str, all_time: bool = False,
                  from_json: Optional[Path] = None) -> list[Entity]:
    """Collect builder triples, either from a saved payload or the live API."""
    if from_json is not None:
        try:
            payload = json.loads(from_json.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RosterIndexError(f"Cannot load payload {from_json}: {e}") from e
        return player_entities(payload) if index == "players" else team_entities(payload)

    client = StatsApiClient(config.api_base, config.timeout)
    if index == "players":
        return client.players(season_range(all_time))
    return client.teams()


def render_report(report: BuildReport) -> Table:
    table = Table(title="Index rebuilt", box=box.ROUNDED, show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Index file", report.index_path)
    table.add_row("Name file", report.names_path or "-")
    table.add_row("Records", str(report.records))
    table.add_row("Disambiguated names", str(report.collisions))
    table.add_row("Key width", str(report.key_width))
    table.add_row("Line length", str(report.line_length))
    table.add_row("Size", format_size(report.records * report.line_length))
    return table


def render_results(index: str, results: list[LookupResult]) -> Table:
    table = Table(title=f"{index} lookup", box=box.ROUNDED)
    table.add_column("Query", style="cyan")
    table.add_column("Key", style="green")
    table.add_column("Flag", justify="center")
    table.add_column("Id", justify="right", style="bold")
    for result in results:
        if result.found:
            entry = result.match
            table.add_row(escape(result.query), escape(entry.key), escape(entry.aux_flag), str(entry.entity_id))
        elif result.candidates:
            listing = escape(", ".join(result.candidates))
            table.add_row(escape(result.query), f"[yellow]ambiguous: {listing}[/yellow]", "", "")
        else:
            table.add_row(escape(result.query), "[red]no entry found[/red]", "", "")
    return table


def run(args: argparse.Namespace) -> int:
    config = IndexConfig.from_env(data_dir=args.data_dir, id_width=args.id_width)
    catalog = RosterCatalog(config)

    if args.command == "update":
        entities = load_entities(config, args.index, args.all_time, args.from_json)
        console.print(render_report(catalog.rebuild(args.index, entities)))
        return 0

    if args.command == "lookup":
        console.print(render_results(args.index, [catalog.find(args.index, name) for name in args.names]))
        return 0

    if args.command == "names":
        for key in catalog.names(args.index, args.prefix):
            console.print(key, markup=False, highlight=False)
        return 0

    errors = catalog.verify(args.index)
    for error in errors:
        err_console.print(f"[bold red]✗[/bold red] {escape(error)}")
    if errors:
        return 1
    console.print(f"[bold green]✓[/bold green] {config.index_path(args.index)} is valid")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point of the application."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        return run(args)
    except RosterIndexError as e:
        err_console.print(f"[bold red]error:[/bold red] {escape(str(e))}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
