from __future__ import annotations

import argparse
from pathlib import Path

from rich.panel import Panel
from rich.table import Table

from custodia.cli.context import CLIContext, require_runtime
from custodia.cli.json_input import read_json_file, read_text_or_json_file
from custodia.core.errors import PolicyError, ResourceNotFoundError
from custodia.domain.models.resource import ResourceMetadata


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("resources", help="Offered resource management")
    resources_subparsers = parser.add_subparsers(dest="resources_command", required=True)

    list_parser = resources_subparsers.add_parser("list", help="List stored resources")
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.set_defaults(handler=run_list)

    show_parser = resources_subparsers.add_parser("show", help="Show resource metadata")
    show_parser.add_argument("resource_id")
    show_parser.set_defaults(handler=run_show)

    add_parser = resources_subparsers.add_parser("add", help="Create a resource from a metadata JSON file")
    add_parser.add_argument("metadata_file", type=Path)
    add_parser.add_argument("--id", dest="resource_id", help="Use this id instead of generating one")
    add_parser.add_argument("--data", type=Path, help="Payload file for LOCAL representations")
    add_parser.set_defaults(handler=run_add)

    update_parser = resources_subparsers.add_parser("update", help="Replace resource metadata from a JSON file")
    update_parser.add_argument("resource_id")
    update_parser.add_argument("metadata_file", type=Path)
    update_parser.set_defaults(handler=run_update)

    data_parser = resources_subparsers.add_parser("set-data", help="Attach or replace the stored payload")
    data_parser.add_argument("resource_id")
    data_parser.add_argument("data_file", type=Path)
    data_parser.set_defaults(handler=run_set_data)

    policy_parser = resources_subparsers.add_parser("policy", help="Replace the resource policy document")
    policy_parser.add_argument("resource_id")
    policy_parser.add_argument("policy_file", type=Path)
    policy_parser.set_defaults(handler=run_policy)

    delete_parser = resources_subparsers.add_parser("delete", help="Delete a resource")
    delete_parser.add_argument("resource_id")
    delete_parser.set_defaults(handler=run_delete)


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    resources = runtime.resource_service.list_resources(limit=args.limit)

    table = Table(title=f"Resources ({len(resources)})")
    table.add_column("ID", overflow="fold")
    table.add_column("Title")
    table.add_column("Representations")
    table.add_column("Payload")
    table.add_column("Modified")

    for r in resources:
        title = r.metadata.title if r.metadata is not None else "[red]invalid[/red]"
        reps = r.metadata.representations if r.metadata is not None else None
        table.add_row(
            r.id,
            title,
            str(len(reps)) if reps is not None else "-",
            "yes" if r.has_data else "no",
            r.modified_at,
        )

    ctx.console.print(table)
    return 0


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    resource = runtime.resource_service.get(args.resource_id)
    if resource is None:
        raise ResourceNotFoundError(f"The resource does not exist: {args.resource_id}")
    metadata = resource.metadata

    try:
        contract = runtime.reader.parse_contract(metadata.policy)
    except PolicyError:
        pattern = "unreadable policy"
    else:
        pattern = ", ".join(p.value for p in runtime.reader.required_checks(contract)) or "provide-access"

    summary = Panel.fit(
        f"Title: {metadata.title}\n"
        f"Description: {metadata.description}\n"
        f"Keywords: {', '.join(metadata.keywords) or '-'}\n"
        f"Publisher: {metadata.publisher or '-'}\n"
        f"License: {metadata.license or '-'}\n"
        f"Version: {metadata.version or '-'}\n"
        f"Usage control: {pattern}\n"
        f"Created: {resource.created_at}  Modified: {resource.modified_at}  Revision: {resource.revision}",
        title=resource.id,
    )
    ctx.console.print(summary)
    ctx.console.print(representation_table(metadata))
    return 0


def run_add(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    metadata = ResourceMetadata.from_dict(read_json_file(args.metadata_file))

    if args.resource_id:
        runtime.resource_service.create_with_id(metadata, args.resource_id)
        resource_id = args.resource_id
    else:
        resource_id = runtime.resource_service.create(metadata)

    if args.data is not None:
        runtime.resource_service.set_data(resource_id, args.data.expanduser().read_bytes())

    ctx.console.print(f"[green]Created[/green] {resource_id}")
    return 0


def run_update(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    metadata = ResourceMetadata.from_dict(read_json_file(args.metadata_file))
    runtime.resource_service.update_metadata(args.resource_id, metadata)
    ctx.console.print(f"[green]Updated[/green] {args.resource_id}")
    return 0


def run_set_data(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    runtime.resource_service.set_data(args.resource_id, args.data_file.expanduser().read_bytes())
    ctx.console.print(f"[green]Stored payload[/green] for {args.resource_id}")
    return 0


def run_policy(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    policy = read_text_or_json_file(args.policy_file)
    runtime.resource_service.update_policy(args.resource_id, policy)
    ctx.console.print(f"[green]Policy replaced[/green] for {args.resource_id}")
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    runtime = require_runtime(ctx)
    runtime.resource_service.delete(args.resource_id)
    ctx.console.print(f"[green]Deleted[/green] {args.resource_id}")
    return 0


def representation_table(metadata: ResourceMetadata) -> Table:
    representations = metadata.representations or {}
    table = Table(title=f"Representations ({len(representations)})")
    table.add_column("ID", overflow="fold")
    table.add_column("Media Type")
    table.add_column("Filename")
    table.add_column("Size")
    table.add_column("Source", overflow="fold")
    for rep_id, rep in representations.items():
        if rep.source is None:
            source = "[red]none[/red]"
        elif rep.source.url:
            source = f"{rep.source.type.value} {rep.source.url}"
        else:
            source = rep.source.type.value
        table.add_row(rep_id, rep.media_type, rep.filename, str(rep.byte_size), source)
    return table
