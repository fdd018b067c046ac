"""
Command Line Interface entry point using Typer.
"""
import json
from typing import Optional

import typer

from . import __version__
from .audit import get_audit_log
from .config import load_config
from .errors import CpmError, FileLockedError
from .selector import select
from .store import (
    delete_profile,
    get_archive_path,
    get_profile_path,
    list_profile_names,
    load_profile,
    read_metadata,
    save_profile,
)
from .ui import (
    build_tree,
    confirm,
    console,
    render_error,
    render_fields,
    render_progress,
    render_status,
    render_table,
    render_tree,
    render_warning,
)
from .utils import human_size

app = typer.Typer(
    help="[bold cyan]CPM[/] - save, share and restore Claude CLI configuration profiles.",
    no_args_is_help=True,
    rich_markup_mode="rich"
)

MAX_FILES_SHOWN = 15


@app.command(name="save")
def save_cmd(
    name: str = typer.Argument(..., help="Name of the new profile"),
    description: str = typer.Option("", "--description", "-d", help="Short description"),
    tags: str = typer.Option("", "--tags", "-t", help="Comma-separated tags"),
    include_secrets: bool = typer.Option(False, "--include-secrets", help="Do not filter credentials and keys"),
):
    """Save the current Claude directory as a profile."""
    try:
        config = load_config()
        if include_secrets:
            render_warning("Credentials and keys will be included in this profile. Do not publish it.")
        with render_progress("Creating profile snapshot..."):
            result = save_profile(
                name,
                config.claude_dir,
                config.profiles_dir,
                description=description,
                tags=tags,
                include_secrets=include_secrets,
                rules=config.selection_rules(),
            )
    except CpmError as e:
        render_error(f"Failed to save profile: {e}")
        raise typer.Exit(1)

    render_status("success", f"Profile saved: [bold]{name}[/]", "green")
    fields = {
        "Location": str(result.profile_dir),
        "Files": str(len(result.metadata.files)),
    }
    if description:
        fields["Desc"] = description
    render_fields(name, fields)
    console.print(f"[dim]Load this profile anytime with:[/] [cyan]cpm load {name}[/]")

@app.command(name="load")
def load_cmd(
    name: str = typer.Argument(..., help="Profile to load"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite without asking"),
    backup: bool = typer.Option(False, "--backup", "-b", help="Back up the current directory first"),
):
    """Merge a saved profile into the Claude directory."""
    try:
        config = load_config()
        metadata = read_metadata(name, config.profiles_dir)
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if not get_profile_path(name, config.profiles_dir).exists():
        render_error(f"Profile not found: {name}\nList local profiles with: cpm local")
        raise typer.Exit(1)

    console.print(f"[bold]Profile:[/] [cyan]{name}[/]")
    if metadata and metadata.description:
        console.print(f"[dim]{metadata.description}[/]")

    if config.claude_dir.exists() and not force:
        if not confirm("This will overwrite files in your current Claude configuration. Continue?"):
            render_status("info", "Aborted.", "yellow")
            raise typer.Exit(0)
        if not backup:
            backup = confirm("Back up the current Claude directory first?", default=True)
        force = True

    try:
        with render_progress("Loading profile..."):
            result = load_profile(
                name,
                config.claude_dir,
                config.profiles_dir,
                config.cache_dir,
                backup=backup,
                force=force,
            )
    except FileLockedError as e:
        render_error(str(e))
        raise typer.Exit(1)
    except CpmError as e:
        render_error(f"Failed to load profile: {e}")
        raise typer.Exit(1)

    render_status("success", f"Profile loaded: [bold]{name}[/]", "green")
    if result.backup_path:
        render_status("backup", f"Previous config backed up to {result.backup_path}", "dim")

@app.command(name="local")
def local_cmd(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format."),
):
    """List locally saved profiles."""
    try:
        config = load_config()
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)
    names = list_profile_names(config.profiles_dir)

    if json_output:
        data = []
        for n in names:
            try:
                meta = read_metadata(n, config.profiles_dir)
            except CpmError:
                continue
            if meta:
                data.append(json.loads(meta.to_json()))
        typer.echo(json.dumps(data, indent=2))
        return

    if not names:
        render_status("info", "No local profiles found. Save your current config with: cpm save <name>")
        return

    rows = []
    for n in names:
        try:
            meta = read_metadata(n, config.profiles_dir)
        except CpmError as e:
            rows.append([n, "[red]ERROR[/]", str(e).split("\n")[0][:60], ""])
            continue
        if meta is None:
            continue
        rows.append([
            n,
            meta.description or "",
            ", ".join(meta.tags),
            f"{len(meta.files)} files, {meta.created_at:%Y-%m-%d}",
        ])
    render_table("Local Profiles", ["Name", "Description", "Tags", "Contents"], rows)

@app.command(name="info")
def info_cmd(
    name: str = typer.Argument(..., help="Profile to describe"),
    tree: bool = typer.Option(False, "--tree", help="Show every archived file as a tree"),
):
    """Show detailed information about a saved profile."""
    try:
        config = load_config()
        meta = read_metadata(name, config.profiles_dir)
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if meta is None:
        render_error(f"Profile not found: {name}")
        raise typer.Exit(1)

    profile_path = get_profile_path(name, config.profiles_dir)
    archive = get_archive_path(name, config.profiles_dir)
    fields = {
        "Name": meta.name,
        "Version": meta.version,
        "Description": meta.description or "No description",
        "Tags": ", ".join(meta.tags) or "None",
        "Created": meta.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        "Platform": meta.platform,
        "Claude Ver": meta.claude_version,
        "Secrets": "included" if meta.includes_secrets else "excluded",
        "Archive": human_size(archive.stat().st_size) if archive.exists() else "missing",
        "Location": str(profile_path),
    }
    for category, items in meta.contents.items():
        if items:
            fields[category] = ", ".join(f"/{i}" for i in items) if category == "commands" else ", ".join(items)
    render_fields("Profile Information", fields)

    if tree:
        render_tree(build_tree(name, meta.files), title="Files Included")
        return

    for f in meta.files[:MAX_FILES_SHOWN]:
        console.print(f"  [dim]•[/] {f}")
    if len(meta.files) > MAX_FILES_SHOWN:
        console.print(f"  [dim]... and {len(meta.files) - MAX_FILES_SHOWN} more files[/]")

@app.command(name="preview")
def preview_cmd(
    include_secrets: bool = typer.Option(False, "--include-secrets", help="Do not filter credentials and keys"),
):
    """Show which files `cpm save` would archive."""
    try:
        config = load_config()
        entries = select(config.claude_dir, include_secrets=include_secrets, rules=config.selection_rules())
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if not entries:
        render_status("info", "Nothing would be archived.")
        return
    render_tree(build_tree(str(config.claude_dir), entries), title=f"{len(entries)} entries")

@app.command(name="delete")
def delete_cmd(
    name: str = typer.Argument(..., help="Profile to delete"),
    force: bool = typer.Option(False, "--force", "-f", help="Delete without asking"),
):
    """Delete a locally saved profile."""
    try:
        config = load_config()
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)
    if not force and not confirm(f"Delete profile '{name}'? This cannot be undone."):
        render_status("info", "Aborted.", "yellow")
        raise typer.Exit(0)
    try:
        delete_profile(name, config.profiles_dir)
    except CpmError as e:
        render_error(str(e))
        raise typer.Exit(1)
    render_status("delete", f"Deleted profile: {name}", "green")

@app.command(name="audit")
def audit_cmd(last_n: int = typer.Option(50, "--last", "-n", help="Number of recent events to show")):
    """Show recent audit events."""
    try:
        events = get_audit_log(last_n)
    except OSError as e:
        render_error(f"Failed to read audit log: {e}")
        raise typer.Exit(1)
    if not events:
        render_status("info", "No audit events found.")
        return

    rows = [
        [str(e.get("timestamp", "")), str(e.get("event", "unknown")), json.dumps(e.get("details", {}), default=str)]
        for e in events
    ]
    render_table("Audit Log", ["Timestamp", "Event", "Details"], rows)

@app.command(name="version")
def version_cmd():
    """Display the CPM version."""
    typer.echo(f"cpm {__version__}")


def main(argv: Optional[list] = None) -> None:
    app(args=argv)

if __name__ == "__main__":
    main()
