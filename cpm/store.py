"""
Profile store: one metadata record and one archive per profile name.

Layout under the profiles root:

    {profiles_dir}/{name}/profile.json
    {profiles_dir}/{name}/snapshot.zip
"""
import json
import re
import shutil
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pydantic import ValidationError

from .archiver import write_archive
from .audit import AuditLogger
from .errors import (
    ArchiveNotFoundError,
    InvalidProfileNameError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileValidationError,
    RestoreError,
    SnapshotError,
)
from .models import PROFILE_NAME_PATTERN, RestoreResult, SaveResult, SelectionRules, SnapshotMetadata
from .restore import restore_archive
from .selector import select
from .summary import summarize

METADATA_FILE = "profile.json"
ARCHIVE_FILE = "snapshot.zip"


def validate_profile_name(name: str) -> str:
    if not re.fullmatch(PROFILE_NAME_PATTERN, name):
        raise InvalidProfileNameError(
            f"Invalid profile name '{name}'. Use alphanumeric characters, hyphens, and underscores."
        )
    return name

def get_profile_path(name: str, profiles_dir: str | Path) -> Path:
    """Return the directory holding a profile's metadata and archive."""
    return Path(profiles_dir) / validate_profile_name(name)

def get_archive_path(name: str, profiles_dir: str | Path) -> Path:
    return get_profile_path(name, profiles_dir) / ARCHIVE_FILE

def detect_claude_version() -> str:
    """Version string reported by the `claude` CLI, or 'unknown'."""
    try:
        result = subprocess.run(
            ["claude", "--version"], capture_output=True, text=True, timeout=10, check=True
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return result.stdout.strip() or "unknown"

def save_profile(
    name: str,
    source_dir: str | Path,
    profiles_dir: str | Path,
    description: str = "",
    tags: Union[str, Iterable[str], None] = None,
    include_secrets: bool = False,
    rules: Optional[SelectionRules] = None,
    version: str = "1.0.0",
) -> SaveResult:
    """
    Snapshot source_dir into a new profile.

    The archive is closed before profile.json is written, so a profile with
    metadata always has a complete archive. On failure the half-written profile
    directory is removed.
    """
    source = Path(source_dir)
    if not source.is_dir():
        raise SnapshotError(f"Claude directory not found: {source}")

    profile_dir = get_profile_path(name, profiles_dir)
    if profile_dir.exists():
        raise ProfileExistsError(
            f"Profile '{name}' already exists. Use a different name or delete the existing one."
        )

    profile_dir.mkdir(parents=True)
    try:
        entries = select(source, include_secrets=include_secrets, rules=rules)
        files = write_archive(source, entries, profile_dir / ARCHIVE_FILE)

        metadata = SnapshotMetadata(
            name=name,
            version=version,
            description=description,
            tags=tags if isinstance(tags, str) else list(tags or []),
            created_at=datetime.now(timezone.utc),
            claude_version=detect_claude_version(),
            platform=sys.platform,
            includes_secrets=include_secrets,
            files=files,
            contents=summarize(files, source),
        )
        (profile_dir / METADATA_FILE).write_text(metadata.to_json(), encoding="utf-8")
    except Exception:
        shutil.rmtree(profile_dir, ignore_errors=True)
        raise

    AuditLogger().log("profile_saved", profile=name, files=len(files), includes_secrets=include_secrets)
    return SaveResult(profile_dir=profile_dir, metadata=metadata)

def load_profile(
    name: str,
    destination: str | Path,
    profiles_dir: str | Path,
    cache_dir: str | Path,
    backup: bool = False,
    force: bool = False,
    backup_dir: Optional[str | Path] = None,
) -> RestoreResult:
    """Merge a stored profile's archive onto destination."""
    archive_path = get_archive_path(name, profiles_dir)
    if not archive_path.is_file():
        raise ArchiveNotFoundError(f"Profile '{name}' not found or corrupted.")

    try:
        result = restore_archive(
            archive_path, destination, cache_dir, backup=backup, force=force, backup_dir=backup_dir
        )
    except RestoreError as e:
        AuditLogger().log("restore_failed", profile=name, error=str(e))
        raise

    AuditLogger().log(
        "profile_loaded",
        profile=name,
        destination=str(result.destination),
        backup=str(result.backup_path) if result.backup_path else None,
    )
    return result

def read_metadata(name: str, profiles_dir: str | Path) -> Optional[SnapshotMetadata]:
    """Return the stored metadata record, or None when the profile has none."""
    path = get_profile_path(name, profiles_dir) / METADATA_FILE
    if not path.exists():
        return None

    try:
        with path.open("r", encoding="utf-8") as f:
            return SnapshotMetadata(**json.load(f))
    except (OSError, ValueError, ValidationError) as e:
        raise ProfileValidationError(f"Failed to read metadata for profile '{name}': {e}") from e

def list_profile_names(profiles_dir: str | Path) -> List[str]:
    """Names of every stored profile, sorted."""
    root = Path(profiles_dir)
    if not root.is_dir():
        return []

    names = []
    for entry in root.iterdir():
        if entry.name.startswith("."):
            continue
        if entry.is_dir() and (entry / METADATA_FILE).exists():
            names.append(entry.name)
    return sorted(names)

def delete_profile(name: str, profiles_dir: str | Path) -> None:
    """Remove a profile's directory. Raises when it does not exist."""
    profile_dir = get_profile_path(name, profiles_dir)
    if not profile_dir.is_dir():
        raise ProfileNotFoundError(f"Profile not found: {name}")
    shutil.rmtree(profile_dir)
    AuditLogger().log("profile_deleted", profile=name)
