"""CLI entry point for cursor-history."""

import json
import logging
from pathlib import Path

import click
import uvicorn

from .config import contract_path
from .errors import CursorHistoryError
from .export import (
    conversation_to_dict,
    conversation_to_json,
    conversation_to_markdown,
    safe_filename,
    search_result_to_dict,
    summary_to_dict,
    workspace_to_dict,
)
from .history import CursorHistory

DEFAULT_LIST_LIMIT = 20


def _history(ctx: click.Context) -> CursorHistory:
    return ctx.obj["history"]


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _report_failures(history: CursorHistory) -> None:
    for failure in history.failures:
        click.echo(f"warning: skipped {failure.path}: {failure.reason}", err=True)


@click.group()
@click.option("--data-path", type=click.Path(file_okay=False), default=None,
              help="Custom Cursor workspaceStorage directory.")
@click.option("--workspace", "-w", default=None, help="Only use conversations from this project path.")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.option("--driver", type=click.Choice(["sqlite3", "apsw"]), default=None,
              help="SQLite driver to read stores with.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, data_path, workspace, as_json, driver, verbose):
    """Browse, search and export Cursor chat history."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["history"] = CursorHistory(data_path=data_path, driver=driver)
    ctx.obj["workspace"] = workspace
    ctx.obj["json"] = as_json


@main.command("list")
@click.option("--limit", "-n", default=DEFAULT_LIST_LIMIT, show_default=True, help="Conversations to show.")
@click.option("--all", "show_all", is_flag=True, help="Show every conversation.")
@click.option("--global", "from_global", is_flag=True, help="List conversations from global storage.")
@click.pass_context
def list_command(ctx, limit, show_all, from_global):
    """List conversations, newest first."""
    history = _history(ctx)
    limit = None if show_all else limit
    try:
        if from_global:
            summaries = history.list_global_conversations(limit=limit)
        else:
            summaries = history.list_conversations(workspace=ctx.obj["workspace"], limit=limit)
    except CursorHistoryError as e:
        raise click.ClickException(str(e))
    _report_failures(history)

    if ctx.obj["json"]:
        _echo_json([summary_to_dict(s) for s in summaries])
        return
    if not summaries:
        click.echo("No conversations found.")
        return
    for s in summaries:
        when = s.created_at.strftime("%Y-%m-%d %H:%M")
        where = contract_path(s.workspace_path) if s.workspace_path else s.workspace_id
        click.echo(f"{s.display_index:>4}  {when}  {s.message_count:>4} msgs  {s.title}")
        click.echo(f"      {where}")


@main.command()
@click.argument("identifier")
@click.pass_context
def show(ctx, identifier):
    """Show a conversation by index or id."""
    history = _history(ctx)
    try:
        conv = history.get_conversation(identifier, workspace=ctx.obj["workspace"])
    except CursorHistoryError as e:
        raise click.ClickException(str(e))

    if ctx.obj["json"]:
        _echo_json(conversation_to_dict(conv))
        return
    click.echo(conversation_to_markdown(conv))


@main.command()
@click.argument("query")
@click.option("--limit", "-n", default=10, show_default=True, help="Maximum conversations to show.")
@click.option("--context", "context_chars", default=50, show_default=True,
              help="Characters of context around each match.")
@click.pass_context
def search(ctx, query, limit, context_chars):
    """Search message content across all conversations."""
    history = _history(ctx)
    try:
        results = history.search(
            query, workspace=ctx.obj["workspace"], context_chars=context_chars, limit=limit
        )
    except CursorHistoryError as e:
        raise click.ClickException(str(e))
    _report_failures(history)

    if ctx.obj["json"]:
        _echo_json([search_result_to_dict(r) for r in results])
        return
    if not results:
        click.echo(f"No matches for '{query}'.")
        return
    for r in results:
        click.echo(f"{r.display_index:>4}  {r.title}  ({r.match_count} matches)")
        for snippet in r.snippets:
            click.echo(f"      [{snippet.message_role}] {snippet.text}")


@main.command()
@click.argument("identifier")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", show_default=True)
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None,
              help="Output file (default: derived from the title).")
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
@click.pass_context
def export(ctx, identifier, fmt, output, force):
    """Export a conversation to Markdown or JSON."""
    history = _history(ctx)
    try:
        conv = history.get_conversation(identifier, workspace=ctx.obj["workspace"])
    except CursorHistoryError as e:
        raise click.ClickException(str(e))

    content = conversation_to_json(conv) if fmt == "json" else conversation_to_markdown(conv)
    path = Path(output) if output else Path(safe_filename(conv.title, fmt))
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    path.write_text(content, encoding="utf-8")
    click.echo(f"Exported #{conv.display_index} to {path}")


@main.command()
@click.pass_context
def workspaces(ctx):
    """List workspaces with chat history."""
    history = _history(ctx)
    try:
        scan = history.scan_workspaces()
    except CursorHistoryError as e:
        raise click.ClickException(str(e))
    _report_failures(history)

    if ctx.obj["json"]:
        _echo_json([workspace_to_dict(w) for w in scan.workspaces])
        return
    if not scan.workspaces:
        click.echo("No workspaces with chat history found.")
        return
    for ws in scan.workspaces:
        click.echo(f"{ws.conversation_count:>5}  {contract_path(ws.root_path)}")


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.pass_context
def serve(ctx, port: int, host: str):
    """Start the local read-only web API."""
    from . import server

    server._history = _history(ctx)
    click.echo(f"Starting cursor-history on http://{host}:{port}")
    uvicorn.run(server.app, host=host, port=port, reload=False)
