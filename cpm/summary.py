"""
Content summary: a categorized inventory of what a profile snapshot contains.
"""
import json
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Mapping, Optional

INSTRUCTIONS_FILE = "CLAUDE.md"
MCP_CONFIG_FILE = "mcp.json"
INSTRUCTIONS_CATEGORY = "instructions"
MCP_CATEGORY = "mcp"


def _add(summary: Dict[str, List[str]], category: str, item: str) -> None:
    items = summary.setdefault(category, [])
    if item not in items:
        items.append(item)

def _mcp_server_names(root: Path) -> Optional[List[str]]:
    """Server names declared in mcp.json, or None when the file is absent or unreadable."""
    try:
        data = json.loads((root / MCP_CONFIG_FILE).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    servers = data.get("mcpServers", data)
    if not isinstance(servers, dict):
        return None
    return list(servers.keys())

def summarize(manifest: Iterable[str], root: Optional[str | Path] = None) -> Dict[str, List[str]]:
    """
    Derive a category -> item names mapping from a manifest.

    `CLAUDE.md` and `mcp.json` map to fixed categories; every other entry with at
    least two segments contributes its first segment as the category and its
    second (extension stripped) as the item. When root is given, the mcp
    category lists the configured server names instead of the file name.
    """
    summary: Dict[str, List[str]] = {}
    for entry in manifest:
        if entry == INSTRUCTIONS_FILE:
            _add(summary, INSTRUCTIONS_CATEGORY, INSTRUCTIONS_FILE)
            continue

        if entry == MCP_CONFIG_FILE:
            servers = _mcp_server_names(Path(root)) if root is not None else None
            if servers is None:
                _add(summary, MCP_CATEGORY, MCP_CONFIG_FILE)
            else:
                summary[MCP_CATEGORY] = []
                for server in servers:
                    _add(summary, MCP_CATEGORY, server)
            continue

        parts = [p for p in entry.split("/") if p]
        if len(parts) < 2:
            continue
        _add(summary, parts[0], PurePosixPath(parts[1]).stem)

    return summary

def has_functional_content(contents: Mapping[str, List[str]]) -> bool:
    """True when at least one category lists an item."""
    return any(items for items in contents.values())
