"""Claude Restore CLI."""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from claude_restore import __version__
from claude_restore.config import AppConfig, ConfigError
from claude_restore.errors import format_error

console = Console()
logger = logging.getLogger(__name__)


def _load_config(claude_root: str | None = None, port: int | None = None, host: str | None = None) -> AppConfig:
    try:
        return AppConfig.load(claude_root=claude_root, port=port, host=host)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)


def _fail(result) -> None:
    console.print(f"[red]{format_error(result.error)}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--claude-root", type=click.Path(file_okay=False), help="Claude data directory (default ~/.claude)")
@click.pass_context
def main(ctx, claude_root):
    """Browse Claude Code conversations and restore file checkpoints."""
    ctx.ensure_object(dict)
    ctx.obj["claude_root"] = claude_root


@main.command()
@click.option("--port", "-p", type=int, help="Port to listen on (default 3000)")
@click.option("--host", help="Interface to bind (default 127.0.0.1)")
@click.option("--claude-root", type=click.Path(file_okay=False), help="Claude data directory (default ~/.claude)")
@click.option("--no-browser", is_flag=True, help="Don't open a browser")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def serve(ctx, port, host, claude_root, no_browser, verbose):
    """Start the web UI and REST API."""
    from claude_restore.ui.server import run_server

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = _load_config(claude_root or ctx.obj.get("claude_root"), port, host)
    logger.debug(f"Loaded config: {config.to_dict()}")

    console.print(f"[bold]Claude Restore UI[/bold] running at http://localhost:{config.port}")
    console.print(f"Claude root: {config.claude_root}")
    console.print("Press Ctrl+C to stop")

    try:
        run_server(config, open_browser=not no_browser)
    except OSError as e:
        console.print(f"[red]Cannot listen on {config.host}:{config.port}: {e}[/red]")
        sys.exit(1)


@main.command()
@click.pass_context
def projects(ctx):
    """List projects."""
    from claude_restore.projects import list_projects

    config = _load_config(ctx.obj.get("claude_root"))
    found = list_projects(config)

    if not found:
        console.print(f"[yellow]No projects found in {config.projects_root}[/yellow]")
        return

    table = Table()
    table.add_column("ID")
    table.add_column("PATH")

    for project in found:
        table.add_row(project.id, project.name)

    console.print(table)


@main.command()
@click.argument("project_id")
@click.pass_context
def conversations(ctx, project_id):
    """List a project's conversations, newest first."""
    from claude_restore.projects import list_conversations

    config = _load_config(ctx.obj.get("claude_root"))
    result = list_conversations(config, project_id)
    if not result.ok:
        _fail(result)

    found = result.unwrap()
    if not found:
        console.print(f"[yellow]No conversations in '{project_id}'[/yellow]")
        return

    table = Table()
    table.add_column("ID")
    table.add_column("MODIFIED")
    table.add_column("BRANCH")
    table.add_column("FILES", justify="right")

    for conv in found:
        table.add_row(
            conv.id,
            conv.mtime.isoformat()[:16].replace("T", " "),
            conv.git_branch or "-",
            str(conv.files_modified if conv.files_modified is not None else "?"),
        )

    console.print(table)


@main.command()
@click.argument("project_id")
@click.argument("conversation_id")
@click.pass_context
def checkpoints(ctx, project_id, conversation_id):
    """List the checkpoints of a conversation."""
    from claude_restore.projects import locate_conversation
    from claude_restore.transcript import extract_checkpoints, extract_cwd, read_log

    config = _load_config(ctx.obj.get("claude_root"))
    located = locate_conversation(config, project_id, conversation_id)
    if not located.ok:
        _fail(located)

    records = read_log(located.unwrap())
    found = extract_checkpoints(records)

    console.print(f"[dim]cwd: {extract_cwd(records) or '(unknown)'}[/dim]")
    if not found:
        console.print("[yellow]No checkpoints in this conversation.[/yellow]")
        return

    table = Table()
    table.add_column("MESSAGE ID")
    table.add_column("TIMESTAMP")
    table.add_column("FILES", justify="right")

    for cp in found:
        table.add_row(cp.message_id, cp.timestamp[:19].replace("T", " "), str(cp.file_count))

    console.print(table)


@main.command()
@click.argument("project_id")
@click.argument("conversation_id")
@click.argument("message_id")
@click.option("--target", "-t", help="Directory to restore into (default: original cwd)")
@click.option("--file", "-f", "files", multiple=True, help="Only restore this path (repeatable)")
@click.pass_context
def restore(ctx, project_id, conversation_id, message_id, target, files):
    """Restore the files of a checkpoint."""
    from claude_restore.restore import RestoreRequest, restore_checkpoint

    config = _load_config(ctx.obj.get("claude_root"))
    request = RestoreRequest(
        project_id=project_id,
        conversation_id=conversation_id,
        checkpoint_message_id=message_id,
        target_dir=target,
        files=tuple(files),
    )

    result = restore_checkpoint(config, request)
    if not result.ok:
        _fail(result)

    restored = result.unwrap()
    console.print(f"[green]✓[/green] Restored {restored.count} files to {restored.target_dir}")
    for path in restored.files:
        console.print(f"  {path}")
    for error in restored.errors:
        console.print(f"  [red]{error}[/red]")


@main.command("export")
@click.argument("scope", type=click.Choice(["global", "project", "conversation", "checkpoint"]))
@click.argument("ids", nargs=-1)
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Bundle file (default: generated name)")
@click.pass_context
def export_cmd(ctx, scope, ids, output):
    """Export an archive bundle.

    \b
    claude-restore export global
    claude-restore export project PROJECT_ID
    claude-restore export conversation PROJECT_ID CONVERSATION_ID
    claude-restore export checkpoint PROJECT_ID CONVERSATION_ID MESSAGE_ID
    """
    from claude_restore import archive
    from claude_restore.atomic import atomic_write_text

    exporters = {
        "global": (archive.export_global, 0),
        "project": (archive.export_project, 1),
        "conversation": (archive.export_conversation, 2),
        "checkpoint": (archive.export_checkpoint, 3),
    }
    exporter, arity = exporters[scope]
    if len(ids) != arity:
        raise click.UsageError(f"'{scope}' export takes {arity} id(s), got {len(ids)}")

    config = _load_config(ctx.obj.get("claude_root"))
    result = exporter(config, *ids)
    if not result.ok:
        _fail(result)

    bundle = result.unwrap()
    path = Path(output or bundle.filename)
    written = atomic_write_text(path, json.dumps(bundle.to_dict(), indent=2), mode=0o600)
    if not written.ok:
        _fail(written)

    console.print(f"[green]✓[/green] Exported {len(bundle.files)} files to {path}")


@main.command("import")
@click.argument("bundle_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--strategy", type=click.Choice(["merge", "replace"]), default="merge", help="Global import conflict handling")
@click.option("--project", "project_id", help="Project to import a conversation into (default: from bundle)")
@click.option("--target", "-t", help="Target directory for checkpoint bundles")
@click.pass_context
def import_cmd(ctx, bundle_file, strategy, project_id, target):
    """Import an archive bundle."""
    from claude_restore import archive

    try:
        data = json.loads(Path(bundle_file).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        console.print(f"[red]Not a bundle file: {e}[/red]")
        sys.exit(1)

    config = _load_config(ctx.obj.get("claude_root"))
    bundle_type = data.get("type") if isinstance(data, dict) else None

    if bundle_type == "conversation":
        project_id = project_id or data.get("projectId")
        if not project_id:
            raise click.UsageError("--project is required for this bundle")
        result = archive.import_conversation(config, project_id, data)
    elif bundle_type == "checkpoint":
        result = archive.import_checkpoint(config, data, target)
    else:
        result = archive.import_global(config, data, strategy)

    if not result.ok:
        _fail(result)

    imported = result.unwrap()
    mark = "[green]✓[/green]" if imported.success else "[yellow]![/yellow]"
    console.print(f"{mark} {imported.message}")
    for error in imported.errors:
        console.print(f"  [red]{error}[/red]")


if __name__ == "__main__":
    main()
