from __future__ import annotations

import argparse
from pathlib import Path

from custodia.cli.context import CLIContext, require_runtime
from custodia.cli.json_input import read_json_file
from custodia.core.errors import ValidationError


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("import", help="Store a resource described by another connector")
    parser.add_argument("description_file", type=Path, help="Resource description JSON")
    parser.add_argument("--data", type=Path, help="Payload received for the resource")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    description = read_json_file(args.description_file)
    if not isinstance(description, dict):
        raise ValidationError("Resource description must be a JSON object")

    resource_id = runtime.importer.save_metadata(description)
    if args.data is not None:
        runtime.importer.save_data(resource_id, args.data.expanduser().read_bytes())

    ctx.console.print(f"[green]Imported[/green] {resource_id}")
    return 0
