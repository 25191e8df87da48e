from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich.table import Table

from custodia.cli.context import CLIContext, require_runtime
from custodia.core.files import write_bytes_atomic


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("access", help="Usage-controlled data access")
    access_subparsers = parser.add_subparsers(dest="access_command", required=True)

    read_parser = access_subparsers.add_parser("read", help="Read resource data through usage control")
    read_parser.add_argument("resource_id")
    read_parser.add_argument("--representation", help="Read this representation instead of any readable one")
    read_parser.add_argument("--output", type=Path, help="Write data to this file instead of stdout")
    read_parser.set_defaults(handler=run_read)

    sweep_parser = access_subparsers.add_parser("sweep", help="Delete resources whose usage period ended")
    sweep_parser.set_defaults(handler=run_sweep)


def run_read(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    if args.representation:
        data = runtime.gate.read_representation(args.resource_id, args.representation)
    else:
        data = runtime.gate.read_resource(args.resource_id)

    if args.output is not None:
        write_bytes_atomic(data, args.output.expanduser().resolve())
        ctx.console.print(f"[green]Wrote[/green] {len(data)} bytes to {args.output}")
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    return 0


def run_sweep(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    result = runtime.gate.sweep_expired()

    table = Table(title="Deletion Sweep")
    table.add_column("Resource", overflow="fold")
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")
    for resource_id in result.deleted:
        table.add_row(resource_id, "deleted", "")
    for resource_id, message in result.failed.items():
        table.add_row(resource_id, "error", message)

    ctx.console.print(table)
    return 1 if result.failed else 0
