from __future__ import annotations

import argparse

from rich.table import Table

from custodia.application.services.project_service import ProjectService
from custodia.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the resource database and payload archive")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    result = ProjectService(ctx.paths).init_project()

    table = Table(title="Custodia project", show_header=False)
    table.add_column("Item", style="bold")
    table.add_column("Value", overflow="fold")
    table.add_row("Project root", str(ctx.paths.project_root))
    table.add_row("Database", f"{result.db_path} ({'created' if result.db_created else 'existing'})")
    table.add_row("Archive", str(ctx.paths.archive_dir))
    table.add_row("Resources", str(result.resource_count))
    for path in result.created_dirs:
        table.add_row("Created", str(path))
    ctx.console.print(table)
    return 0
