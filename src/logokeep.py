#!/usr/bin/env python3
"""
LogoKeep CLI - Command-line tool for extracting and managing stored company logos.

Usage:
    uv run logokeep extract <domain_name> [options]
    uv run logokeep list
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from logo_keeper import (
    AttemptRecord,
    LogoEntity,
    LogoKeeperError,
    LogoService,
    NoLogoFound,
    Settings,
)


def setup_logging(verbose: bool = False) -> None:
    """Set up logging; quiet unless --verbose is given."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()] if verbose else [logging.NullHandler()],
    )

    # HTTP request lines drown out the pipeline's own messages
    logging.getLogger("httpx").setLevel(logging.WARNING if verbose else logging.CRITICAL)
    logging.getLogger("logo_keeper").setLevel(level)


def format_dimensions(entity: LogoEntity) -> str:
    if entity.width and entity.height:
        return f"{entity.width}×{entity.height}"
    return "vector" if entity.format == "svg" else "-"


def create_entity_panel(entity: LogoEntity) -> Panel:
    """Create a rich panel describing a stored logo."""
    details = Table(show_header=False, box=None, padding=(0, 1))
    details.add_row("[cyan]ID:[/cyan]", str(entity.id))
    details.add_row("[cyan]Name:[/cyan]", entity.name)
    details.add_row("[cyan]Domain:[/cyan]", entity.domain)
    details.add_row("[cyan]Format:[/cyan]", (entity.format or "unknown").upper())
    details.add_row("[cyan]Size:[/cyan]", format_dimensions(entity))
    details.add_row("[cyan]Bytes:[/cyan]", str(entity.byte_size or 0))
    details.add_row(
        "[cyan]Storage:[/cyan]", "ImgBB" if entity.uses_remote_storage else "Inline"
    )

    source = entity.original_source_url or "-"
    if len(source) > 80:
        source = source[:40] + "..." + source[-37:]
    details.add_row("[cyan]Source:[/cyan]", f"[link]{source}[/link]")
    if entity.remote_ref_url:
        details.add_row("[cyan]Hosted at:[/cyan]", f"[link]{entity.remote_ref_url}[/link]")
    if entity.extracted_at:
        details.add_row("[cyan]Extracted:[/cyan]", entity.extracted_at.isoformat())

    border_style = "green" if entity.has_logo else "red"
    return Panel(details, title=f"Logo • {entity.domain}", border_style=border_style)


def display_entities(entities: List[LogoEntity], console: Console) -> None:
    if not entities:
        console.print("[yellow]No logos stored yet[/yellow]")
        return

    table = Table(title=f"{len(entities)} stored logos")
    table.add_column("ID", justify="right")
    table.add_column("Domain", style="cyan")
    table.add_column("Name")
    table.add_column("Format")
    table.add_column("Size")
    table.add_column("Storage")
    table.add_column("Updated", style="dim")

    for entity in entities:
        table.add_row(
            str(entity.id),
            entity.domain,
            entity.name,
            entity.format or "-",
            format_dimensions(entity),
            "imgbb" if entity.uses_remote_storage else "inline",
            entity.updated_at.strftime("%Y-%m-%d %H:%M") if entity.updated_at else "-",
        )
    console.print(table)


def display_attempts(attempts: List[AttemptRecord], console: Console) -> None:
    if not attempts:
        console.print("[yellow]No attempts recorded[/yellow]")
        return

    table = Table(title="Extraction attempts")
    table.add_column("When", style="dim")
    table.add_column("Result")
    table.add_column("URL", overflow="fold")
    table.add_column("Error", style="red", overflow="fold")

    for attempt in attempts:
        table.add_row(
            attempt.attempted_at.strftime("%Y-%m-%d %H:%M:%S") if attempt.attempted_at else "-",
            "[green]ok[/green]" if attempt.success else "[red]failed[/red]",
            attempt.attempted_url,
            attempt.error_message or "",
        )
    console.print(table)


async def save_logo(
    service: LogoService, entity: LogoEntity, output_dir: str, console: Console
) -> None:
    """Write the stored logo to <output_dir>/<domain>_logo.<format>."""
    data, _ = await service.retrieve_image(entity)
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)

    ext = entity.format if entity.format and entity.format != "unknown" else "png"
    if ext == "jpeg":
        ext = "jpg"
    output_path = directory / f"{entity.domain}_logo.{ext}"
    output_path.write_bytes(data)

    console.print(
        f"[bold green]💾 Saved to:[/bold green] [link]{output_path.absolute()}[/link]"
    )


async def run_extract(service: LogoService, args, console: Console) -> int:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Extracting logo for {args.domain}...", total=None)
        try:
            entity = await service.extract(args.domain, name=args.name, force=args.force)
        except NoLogoFound as e:
            console.print(f"[red]❌ {e}[/red]")
            return 1

    console.print(create_entity_panel(entity))
    if args.output:
        await save_logo(service, entity, args.output, console)
    return 0


async def run_command(service: LogoService, args, console: Console) -> int:
    if args.command == "extract":
        return await run_extract(service, args, console)

    if args.command == "show":
        entity = await service.get(args.id)
        console.print(create_entity_panel(entity))
        if args.output:
            await save_logo(service, entity, args.output, console)
        return 0

    if args.command == "list":
        display_entities(await service.list(limit=args.limit, offset=args.offset), console)
        return 0

    if args.command == "delete":
        if await service.delete(args.id):
            console.print(f"[green]✅ Deleted logo {args.id}[/green]")
            return 0
        console.print(f"[red]❌ No logo with id {args.id}[/red]")
        return 1

    if args.command == "attempts":
        display_attempts(await service.list_attempts(args.id), console)
        return 0

    if args.command == "health":
        info = service.health()
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_row("[cyan]Status:[/cyan]", f"[green]{info['status']}[/green]")
        for key, value in info["database"].items():
            table.add_row(f"[cyan]Database {key}:[/cyan]", str(value))
        for key, value in info["storage"].items():
            table.add_row(f"[cyan]Storage {key}:[/cyan]", str(value))
        console.print(Panel(table, title="Health", border_style="green"))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logokeep",
        description="Extract, store and inspect company logos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run logokeep extract github.com
  uv run logokeep extract https://www.stripe.com --force --output logos/
  uv run logokeep list --limit 20
  uv run logokeep attempts 3
        """,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show detailed debug information"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract and store a logo for a domain")
    extract.add_argument("domain", help="Domain or URL (e.g., github.com)")
    extract.add_argument("--name", help="Company name (defaults to one derived from the domain)")
    extract.add_argument(
        "--force", action="store_true", help="Re-extract even if a logo is already stored"
    )
    extract.add_argument("--output", metavar="DIR", help="Also save the logo file into DIR")

    show = subparsers.add_parser("show", help="Show a stored logo")
    show.add_argument("id", type=int)
    show.add_argument("--output", metavar="DIR", help="Save the logo file into DIR")

    listing = subparsers.add_parser("list", help="List stored logos, most recent first")
    listing.add_argument("--limit", type=int, default=50)
    listing.add_argument("--offset", type=int, default=0)

    delete = subparsers.add_parser("delete", help="Delete a stored logo and its attempts")
    delete.add_argument("id", type=int)

    attempts = subparsers.add_parser("attempts", help="Show extraction attempts for a logo")
    attempts.add_argument("id", type=int)

    subparsers.add_parser("health", help="Show database and storage configuration")
    return parser


async def main(argv: List[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(verbose=args.verbose)
    console = Console()

    try:
        service = await LogoService.from_settings(Settings())
    except Exception as e:
        console.print(f"[red]❌ Could not start: {e}[/red]")
        return 1

    try:
        async with service:
            return await run_command(service, args, console)
    except KeyboardInterrupt:
        console.print("\n[red]❌ Operation cancelled by user[/red]")
        return 1
    except LogoKeeperError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except Exception as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        if args.verbose:
            console.print_exception()
        return 1


def cli_entry() -> None:
    """Sync entry point for CLI script."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli_entry()
