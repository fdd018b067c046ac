"""
Zip archive construction for profile snapshots.
"""
import zipfile
from pathlib import Path
from typing import Iterable, List

from .errors import ArchiveError, RestoreExtractionError

COMPRESS_LEVEL = 9


def write_archive(root: str | Path, entries: Iterable[str], target: str | Path) -> List[str]:
    """
    Write the selected entries of root into a deflate-compressed zip at target.

    Entries ending in `/` are stored as directory records. Returns the names
    actually written, in write order. A partially written target is left in place
    on failure; removing it is up to the caller.
    """
    base_dir = Path(root)
    written: List[str] = []
    try:
        with zipfile.ZipFile(
            target, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL
        ) as zf:
            for entry in entries:
                source = base_dir / entry.rstrip("/")
                try:
                    zf.write(source, arcname=entry)
                except OSError as e:
                    raise ArchiveError(f"Failed to archive '{source}': {e}") from e
                written.append(entry)
    except ArchiveError:
        raise
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Failed to write archive '{target}': {e}") from e
    return written

def read_manifest(archive: str | Path) -> List[str]:
    """List the entry names stored in an existing archive."""
    try:
        with zipfile.ZipFile(archive) as zf:
            return zf.namelist()
    except (OSError, zipfile.BadZipFile) as e:
        raise RestoreExtractionError(f"Failed to read archive '{archive}': {e}") from e
