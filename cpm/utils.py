"""
Core utilities for CPM.
"""
import os
import secrets
import shutil
import time
from pathlib import Path


def validate_path(path: str | Path, base_dir: str | Path) -> Path:
    """
    Resolve a path and ensure it falls strictly under the base_dir to prevent directory traversal.
    """
    resolved_path = Path(path).resolve()
    resolved_base = Path(base_dir).resolve()

    if resolved_path != resolved_base and resolved_base not in resolved_path.parents:
        from .errors import PathTraversalError
        raise PathTraversalError(f"Path '{path}' escapes base directory '{base_dir}'.")
    return resolved_path

def human_size(nbytes: int) -> str:
    """Convert bytes to a human-readable string (e.g. 1.2 MiB)."""
    if nbytes == 0:
        return "0 B"
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    i = 0
    while nbytes >= 1024 and i < len(suffixes) - 1:
        nbytes /= 1024.0  # type: ignore
        i += 1
    if i == 0:
        return f"{int(nbytes)} {suffixes[i]}"
    return f"{nbytes:.1f} {suffixes[i]}"

def timestamp_id() -> str:
    """Return a YYYYMMDD_HHMMSS id with a short random suffix, unique per invocation."""
    return f"{time.strftime('%Y%m%d_%H%M%S')}_{secrets.token_hex(3)}"

def remove_quietly(path: Path) -> None:
    """Best-effort removal of a scratch file or directory."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path, ignore_errors=True)
        elif path.exists() or path.is_symlink():
            os.remove(path)
    except OSError:
        pass
