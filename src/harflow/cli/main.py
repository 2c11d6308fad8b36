"""harflow CLI - turn recorded HTTP sessions into executable flows."""

import json
import os
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

import harflow
from harflow import console
from harflow.config import get_settings
from harflow.exceptions import HarflowError, InvalidInputError
from harflow.har.translator import TranslateOptions, TranslationResult, translate_file
from harflow.ids import SequentialIdSource, new_id, parse_id
from harflow.logging import configure_logging, get_logger

# Configure logging early using env vars directly; -v/--log-format in
# main_callback() may reconfigure later.
configure_logging(
    level=os.environ.get("HARFLOW_LOG_LEVEL", "WARNING"),
    json_output=os.environ.get("HARFLOW_LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

app = typer.Typer(
    name="harflow",
    help="""
    harflow - turn recorded HTTP sessions into executable flows

    \b
    Quick start:
      harflow translate session.har                 Summarize the generated flow
      harflow translate session.har -o flow.json    Write the full translation
      harflow translate session.har --show-edges    List dependency edges
    """,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback(invoke_without_command=True)
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
) -> None:
    """harflow - turn recorded HTTP sessions into executable flows."""
    settings = get_settings()
    json_output = (log_format or settings.log_format) == "json"

    if verbose >= 2:
        configure_logging(level="DEBUG", json_output=json_output)
    elif verbose >= 1:
        configure_logging(level="INFO", json_output=json_output)
    elif log_format is not None:
        configure_logging(level=settings.log_level, json_output=json_output)


@app.command()
def version() -> None:
    """Show the harflow version."""
    console.out_console.print(f"harflow {harflow.__version__}")


@app.command("translate")
def translate_command(
    har_file: Annotated[
        Path,
        typer.Argument(
            help="Path to HAR file to translate",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    workspace_id: Annotated[
        str | None,
        typer.Option(
            "--workspace-id",
            "-w",
            help="Workspace id (26-char base32 or 32-char hex; default: new id)",
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Write the translation as JSON to this path ('-' for stdout)",
        ),
    ] = None,
    threshold_ms: Annotated[
        int | None,
        typer.Option(
            "--threshold-ms",
            min=0,
            help="Chain requests started within this many milliseconds",
        ),
    ] = None,
    stable_ids: Annotated[
        bool,
        typer.Option(
            "--stable-ids",
            help="Use reproducible sequential ids (identical input, identical output)",
        ),
    ] = False,
    show_edges: Annotated[
        bool,
        typer.Option("--show-edges", help="List the flow edges"),
    ] = False,
) -> None:
    """Translate a HAR file into requests, files, and a flow graph.

    \b
    Examples:
        harflow translate checkout.har
        harflow translate checkout.har -o checkout.flow.json
        harflow translate checkout.har --stable-ids -o - | jq .edges
    """
    try:
        workspace = parse_id(workspace_id) if workspace_id else new_id()
    except ValueError as exc:
        console.error(f"Invalid workspace id: {exc}")
        raise typer.Exit(1) from None

    options = TranslateOptions(
        id_source=SequentialIdSource() if stable_ids else None,
        timestamp_sequencing_threshold_ms=threshold_ms,
    )

    console.info(f"Translating {har_file}")
    try:
        result = translate_file(har_file, workspace, options)
    except InvalidInputError as exc:
        console.error(f"Invalid HAR input: {exc}")
        raise typer.Exit(1) from None
    except HarflowError as exc:
        LOG.error("translation_failed", error=str(exc), har_file=str(har_file))
        console.error(f"Translation failed: {exc}")
        raise typer.Exit(1) from None

    if len(result.nodes) == 1:
        console.warn(f"No entries found in {har_file}")
    _print_summary(result)
    if show_edges:
        _print_edges(result)

    if output is None:
        return

    payload = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if str(output) == "-":
        sys.stdout.write(payload + "\n")
        return
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload + "\n", encoding="utf-8")
    except OSError as exc:
        console.error(f"Failed to write {output}: {exc}")
        raise typer.Exit(1) from None
    console.success(f"Wrote {output}")


def _print_summary(result: TranslationResult) -> None:
    """Print record counts for a translation."""
    table = Table(
        title=f"Flow: {result.flow.name}",
        title_style="bold",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Records", style="cyan")
    table.add_column("Count", justify="right")

    deltas = sum(1 for h in result.http_requests if h.is_delta)
    rows = [
        ("Requests (base)", len(result.http_requests) - deltas),
        ("Requests (delta)", deltas),
        ("Headers", len(result.http_headers)),
        ("Search params", len(result.http_search_params)),
        ("Body fields", len(result.http_body_forms) + len(result.http_body_url_encoded)),
        ("Raw bodies", len(result.http_body_raws)),
        ("Assertions", len(result.http_asserts)),
        ("Files", len(result.files)),
        ("Nodes", len(result.nodes)),
        ("Edges", len(result.edges)),
    ]
    for label, count in rows:
        table.add_row(label, str(count))

    console.err_console.print(table)


def _print_edges(result: TranslationResult) -> None:
    """Print edges as ``source -> target`` with the request each node runs."""
    names = {node.id: node.name for node in result.nodes}
    http_names = {h.id: h.name for h in result.http_requests}
    node_requests = {rn.flow_node_id: http_names.get(rn.http_id, "") for rn in result.request_nodes}

    table = Table(
        title=f"Edges ({len(result.edges)})",
        title_style="bold",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Request", style="dim")

    for edge in result.edges:
        table.add_row(
            names.get(edge.source_id, "?"),
            names.get(edge.target_id, "?"),
            node_requests.get(edge.target_id, ""),
        )

    console.err_console.print(table)
