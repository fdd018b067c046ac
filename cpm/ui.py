"""
Rich Terminal UI components.
Status lines, panels, tables and tree previews with an ASCII fallback.
"""
import sys
from contextlib import contextmanager
from typing import Dict, Generator, Iterable, List, Mapping

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

# Detect ASCII fallback
try:
    "\U0001f4e6".encode(sys.stdout.encoding or "utf-8")
    HAS_UNICODE = True
except (UnicodeEncodeError, LookupError, AttributeError):
    HAS_UNICODE = False

ICONS: Dict[str, str] = {
    "snapshot": "\U0001f4e6",
    "restore": "\U0001f4e5",
    "backup": "\U0001f5c4",
    "delete": "\U0001f5d1",
    "success": "✅",
    "error": "❌",
    "warn": "⚠",
    "info": "ℹ",
}

ASCII_ICONS: Dict[str, str] = {
    "snapshot": "[PK]",
    "restore": "[RST]",
    "backup": "[BAK]",
    "delete": "[DEL]",
    "success": "[OK]",
    "error": "[ERR]",
    "warn": "[WARN]",
    "info": "[INF]",
}

def icon(name: str) -> str:
    return ICONS.get(name, "") if HAS_UNICODE else ASCII_ICONS.get(name, "")

console = Console()
err_console = Console(stderr=True)

def render_status(action: str, message: str, style: str = "white") -> None:
    """Print a single line status update."""
    i = icon(action)
    console.print(f"{i} [{style}]{message}[/]")

def render_error(message: str) -> None:
    """Print a styled error panel."""
    i = icon("error")
    err_console.print()
    err_console.print(Panel(Text(message, style="red"), border_style="red", expand=False, title=f"{i} ERROR"))

def render_warning(message: str) -> None:
    """Print a styled warning panel."""
    i = icon("warn")
    console.print()
    console.print(Panel(Text(message, style="yellow"), border_style="yellow", expand=False, title=f"{i} WARNING"))

def confirm(prompt_text: str, default: bool = False) -> bool:
    """Interactive confirmation prompt."""
    i = icon("warn")
    return typer.confirm(f"{i} {prompt_text}", default=default)

def render_table(title: str, headers: List[str], rows: List[List[str]]) -> None:
    """Render a structured Rich Table."""
    console.print()
    table = Table(
        title=title,
        border_style="cyan",
        header_style="bold magenta",
        show_lines=True,
        box=box.ROUNDED if HAS_UNICODE else box.ASCII
    )

    if headers:
        table.add_column(headers[0], justify="left", no_wrap=True)
        for h in headers[1:]:
            table.add_column(h, justify="left", overflow="fold")

    for r in rows:
        table.add_row(*r)

    console.print(table)
    console.print()

def render_fields(title: str, fields: Mapping[str, str]) -> None:
    """Render key/value pairs in a bordered panel."""
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in fields.items():
        table.add_row(key, value)
    console.print(Panel(table, title=f"[bold]{title}[/]", border_style="cyan", expand=False))

def build_tree(root_label: str, paths: Iterable[str]) -> Tree:
    """Build a nested Rich tree from slash-separated relative paths."""
    tree = Tree(f"[bold magenta]{root_label}[/]")
    nodes: Dict[str, Tree] = {}

    for relative_path in paths:
        parts = [p for p in relative_path.split("/") if p]
        parent = tree
        prefix = ""
        for depth, part in enumerate(parts):
            prefix = f"{prefix}{part}/"
            node = nodes.get(prefix)
            if node is None:
                is_leaf = depth == len(parts) - 1 and not relative_path.endswith("/")
                label = f"[green]{part}[/]" if is_leaf else f"[bold blue]{part}/[/]"
                node = parent.add(label)
                nodes[prefix] = node
            parent = node

    return tree

def render_tree(tree: Tree, title: str = "Tree Preview") -> None:
    """Render a Rich tree layout."""
    console.print(Panel(tree, border_style="magenta", title=title))

@contextmanager
def render_progress(title: str = "Operation in progress...") -> Generator[Progress, None, None]:
    """Spinner shown while a single blocking step runs."""
    progress = Progress(
        SpinnerColumn(spinner_name="dots2", style="cyan"),
        TextColumn("[bold blue]{task.description}"),
        console=console,
        transient=True,
    )
    with progress:
        progress.add_task(title, total=None)
        yield progress
