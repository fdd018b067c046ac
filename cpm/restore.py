"""
Restore engine.
Stages an archive in a scratch directory, then merges it file by file into the live tree.
"""
import errno
import os
import shutil
import zipfile
import zlib
from pathlib import Path
from typing import Optional, Union

from .errors import (
    ArchiveNotFoundError,
    BackupError,
    DestinationExistsError,
    FileLockedError,
    PathTraversalError,
    RestoreError,
    RestoreExtractionError,
)
from .models import RestoreResult
from .utils import remove_quietly, timestamp_id, validate_path

# Windows sharing and lock violations
_WINDOWS_LOCK_ERRORS = (32, 33)
_LOCK_ERRNOS = (errno.EBUSY, errno.ETXTBSY)

ArchiveSource = Union[str, Path, bytes, bytearray]


def _is_lock_error(e: OSError) -> bool:
    if getattr(e, "winerror", None) in _WINDOWS_LOCK_ERRORS:
        return True
    return e.errno in _LOCK_ERRNOS

def backup_path_for(destination: Path, run_id: str, backup_dir: Optional[Path] = None) -> Path:
    """Timestamped backup location, a sibling of destination unless backup_dir is given."""
    name = f".{destination.name.lstrip('.')}-backup-{run_id}"
    parent = Path(backup_dir) if backup_dir else destination.parent
    return parent / name

def backup_tree(destination: Path, backup_path: Path) -> Path:
    """Copy the whole destination tree to backup_path."""
    try:
        backup_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(destination, backup_path, symlinks=True)
    except (OSError, shutil.Error) as e:
        raise BackupError(f"Failed to back up '{destination}' to '{backup_path}': {e}") from e
    return backup_path

def extract_archive(archive_path: Path, staging_dir: Path) -> None:
    """Extract every member of the archive under staging_dir, skipping paths that escape it."""
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for member in zf.infolist():
                try:
                    extracted_path = validate_path(staging_dir / member.filename, staging_dir)
                except PathTraversalError:
                    continue

                if member.is_dir():
                    extracted_path.mkdir(parents=True, exist_ok=True)
                    continue

                extracted_path.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as f_in, extracted_path.open("wb") as f_out:
                    shutil.copyfileobj(f_in, f_out)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise ArchiveNotFoundError(f"Archive '{archive_path}' not found or corrupted: {e}") from e
    except OSError as e:
        raise RestoreExtractionError(f"Extraction of '{archive_path}' failed: {e}") from e

def overwrite_file(source: Path, target: Path) -> None:
    """
    Replace target's bytes with source's by reading then writing in place.

    The target is opened for writing rather than renamed over, so files that
    another process merely has open for reading can still be replaced.
    """
    data = source.read_bytes()
    try:
        with target.open("wb") as f_out:
            f_out.write(data)
    except OSError as e:
        if _is_lock_error(e):
            raise FileLockedError(target) from e
        raise RestoreError(f"Failed to write '{target}': {e}") from e

def merge_tree(staging_dir: Path, destination: Path) -> None:
    """Copy everything under staging_dir into destination, overwriting files that exist."""
    for root, dirs, files in os.walk(staging_dir):
        dirs.sort()
        root_path = Path(root)
        target_root = destination / root_path.relative_to(staging_dir)
        try:
            target_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RestoreError(f"Failed to create directory '{target_root}': {e}") from e

        for name in sorted(files):
            overwrite_file(root_path / name, target_root / name)

def restore_archive(
    source: ArchiveSource,
    destination: str | Path,
    scratch_dir: str | Path,
    backup: bool = False,
    force: bool = False,
    backup_dir: Optional[str | Path] = None,
) -> RestoreResult:
    """
    Restore an archive (path or raw bytes) onto destination.

    Order: archive check, optional backup, existing-destination check, staging
    extraction, merge. The merge is not transactional; files written before a
    failure stay written. Scratch artifacts are always removed.
    """
    destination = Path(destination).resolve()
    scratch = Path(scratch_dir)
    run_id = timestamp_id()
    temp_archive: Optional[Path] = None
    staging_dir = scratch / f"restore-{run_id}"

    try:
        if isinstance(source, (bytes, bytearray)):
            scratch.mkdir(parents=True, exist_ok=True)
            temp_archive = scratch / f"temp-{run_id}.zip"
            temp_archive.write_bytes(bytes(source))
            archive_path = temp_archive
        else:
            archive_path = Path(source)

        if not archive_path.is_file() or not zipfile.is_zipfile(archive_path):
            raise ArchiveNotFoundError(f"Archive '{archive_path}' not found or corrupted.")

        backup_path: Optional[Path] = None
        if backup and destination.exists():
            backup_path = backup_tree(
                destination, backup_path_for(destination, run_id, Path(backup_dir) if backup_dir else None)
            )

        if destination.exists() and not force:
            raise DestinationExistsError(
                f"Directory '{destination}' exists. Use --force to overwrite or --backup to save the current config."
            )

        staging_dir.mkdir(parents=True)
        extract_archive(archive_path, staging_dir)
        merge_tree(staging_dir, destination)
        return RestoreResult(destination=destination, backup_path=backup_path)
    finally:
        remove_quietly(staging_dir)
        if temp_archive is not None:
            remove_quietly(temp_archive)
