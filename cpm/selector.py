"""
Allowlist-driven file selection for profile snapshots.
Walks the Claude directory and decides, per entry, whether it goes into the archive.
"""
from pathlib import Path
from typing import List, Optional

from .errors import SelectionError
from .models import SelectionRules


def is_allowed(name: str, rel_path: str, rules: SelectionRules) -> bool:
    """Match an entry against the allowlist by leaf name, full path or `dir/**` prefix."""
    for pattern in rules.allow:
        if pattern.endswith("/**"):
            if rel_path.startswith(pattern[:-2]):
                return True
        elif name == pattern or rel_path == pattern:
            return True
    return False

def is_excluded(name: str, rel_path: str, rules: SelectionRules) -> bool:
    """Match an entry against the exclude patterns (`*.ext`, `name*` or exact)."""
    for pattern in rules.exclude:
        if pattern.startswith("*."):
            if name.endswith(pattern[1:]):
                return True
        elif name == pattern or rel_path == pattern:
            return True
        elif pattern.endswith("*") and name.startswith(pattern[:-1]):
            return True
    return False

def select(
    root: str | Path,
    include_secrets: bool = False,
    rules: Optional[SelectionRules] = None,
) -> List[str]:
    """
    Return the slash-separated relative paths under root that belong in a snapshot.

    The walk is depth-first with each directory listing sorted by name, so the
    result is the same on every platform. Directories are never emitted unless
    they contribute nothing else, in which case they appear once as `dir/` so the
    archive can recreate them.
    """
    rules = rules or SelectionRules()
    base_dir = Path(root)
    if not base_dir.is_dir():
        raise SelectionError(f"Source directory not found: {base_dir}")

    selected: List[str] = []

    def walk(current: Path, rel_prefix: str) -> int:
        try:
            children = sorted(current.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise SelectionError(f"Cannot read directory '{current}': {e}") from e

        emitted = 0
        for child in children:
            rel_path = f"{rel_prefix}{child.name}"
            if not is_allowed(child.name, rel_path, rules):
                continue
            if not include_secrets and is_excluded(child.name, rel_path, rules):
                continue

            if child.is_dir():
                if walk(child, rel_path + "/") == 0:
                    selected.append(rel_path + "/")
                emitted += 1
            else:
                selected.append(rel_path)
                emitted += 1
        return emitted

    walk(base_dir, "")
    return selected
