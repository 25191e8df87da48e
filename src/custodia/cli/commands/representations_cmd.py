from __future__ import annotations

import argparse
from pathlib import Path

from custodia.cli.commands.resources_cmd import representation_table
from custodia.cli.context import CLIContext, require_runtime
from custodia.cli.json_input import read_json_file
from custodia.core.errors import ValidationError
from custodia.domain.models.resource import ResourceRepresentation


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("representations", help="Representation management for one resource")
    reps_subparsers = parser.add_subparsers(dest="representations_command", required=True)

    list_parser = reps_subparsers.add_parser("list", help="List representations of a resource")
    list_parser.add_argument("resource_id")
    list_parser.set_defaults(handler=run_list)

    add_parser = reps_subparsers.add_parser("add", help="Add a representation from a JSON file")
    add_parser.add_argument("resource_id")
    add_parser.add_argument("representation_file", type=Path)
    add_parser.add_argument("--id", dest="representation_id", help="Use this id instead of generating one")
    add_parser.set_defaults(handler=run_add)

    update_parser = reps_subparsers.add_parser("update", help="Replace a representation from a JSON file")
    update_parser.add_argument("resource_id")
    update_parser.add_argument("representation_id")
    update_parser.add_argument("representation_file", type=Path)
    update_parser.set_defaults(handler=run_update)

    delete_parser = reps_subparsers.add_parser("delete", help="Delete a representation")
    delete_parser.add_argument("resource_id")
    delete_parser.add_argument("representation_id")
    delete_parser.set_defaults(handler=run_delete)


def _load_representation(path: Path) -> ResourceRepresentation:
    raw = read_json_file(path)
    if not isinstance(raw, dict):
        raise ValidationError("Representation file must hold a JSON object")
    return ResourceRepresentation.from_dict(raw)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    ctx.console.print(representation_table(runtime.resource_service.get_metadata(args.resource_id)))
    return 0


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    representation = _load_representation(args.representation_file)
    if args.representation_id:
        rep_id = runtime.resource_service.add_representation_with_id(
            args.resource_id, representation, args.representation_id
        )
    else:
        rep_id = runtime.resource_service.add_representation(args.resource_id, representation)
    ctx.console.print(f"[green]Added representation[/green] {rep_id}")
    return 0


def run_update(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    representation = _load_representation(args.representation_file)
    runtime.resource_service.update_representation(args.resource_id, args.representation_id, representation)
    ctx.console.print(f"[green]Updated representation[/green] {args.representation_id}")
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    if runtime.resource_service.delete_representation(args.resource_id, args.representation_id):
        ctx.console.print(f"[green]Deleted representation[/green] {args.representation_id}")
        return 0
    ctx.console.print(f"[yellow]No representation[/yellow] {args.representation_id}")
    return 1
