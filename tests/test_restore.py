import errno
import shutil
import zipfile
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from hypothesis import given, settings, strategies as st

from conftest import SEGMENTS, build_tree, tree_contents
from cpm.archiver import write_archive
from cpm.errors import (
    ArchiveNotFoundError,
    BackupError,
    DestinationExistsError,
    FileLockedError,
    RestoreError,
)
from cpm.restore import _is_lock_error, restore_archive
from cpm.selector import select


@pytest.fixture
def archive(claude_dir: Path, tmp_path: Path) -> Path:
    target = tmp_path / "snapshot.zip"
    write_archive(claude_dir, select(claude_dir), target)
    return target

@pytest.fixture
def scratch(tmp_path: Path) -> Path:
    return tmp_path / "cache"

def _selected_contents(claude_dir: Path) -> dict:
    return {
        e: (None if e.endswith("/") else (claude_dir / e).read_bytes())
        for e in select(claude_dir)
    }

def test_round_trip_into_empty_destination(claude_dir: Path, archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "restored"
    result = restore_archive(archive, dest, scratch)

    assert result.destination == dest
    assert result.backup_path is None
    for entry, data in _selected_contents(claude_dir).items():
        if data is None:
            assert (dest / entry).is_dir()
        else:
            assert (dest / entry).read_bytes() == data
    assert not (dest / "commands" / "oauth_token.md").exists()
    assert not (dest / ".credentials.json").exists()

def test_restore_from_bytes_cleans_up_temp_archive(claude_dir: Path, archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "restored"
    restore_archive(archive.read_bytes(), dest, scratch)

    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"
    assert list(scratch.iterdir()) == []

def test_missing_archive_has_no_side_effects(tmp_path: Path, scratch: Path):
    dest = tmp_path / "dest"
    with pytest.raises(ArchiveNotFoundError, match="not found or corrupted"):
        restore_archive(tmp_path / "nope.zip", dest, scratch, force=True)
    assert not dest.exists()

def test_corrupt_archive_bytes_rejected(tmp_path: Path, scratch: Path):
    dest = tmp_path / "dest"
    with pytest.raises(ArchiveNotFoundError):
        restore_archive(b"definitely not a zip", dest, scratch, force=True)
    assert not dest.exists()
    assert list(scratch.iterdir()) == []

def test_existing_destination_without_force_is_untouched(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "CLAUDE.md").write_text("mine")
    before = tree_contents(dest)

    with pytest.raises(DestinationExistsError):
        restore_archive(archive, dest, scratch)

    assert tree_contents(dest) == before
    assert not any(p.name.startswith(".dest-backup-") for p in tmp_path.iterdir())

def test_merge_overwrites_archived_files_and_keeps_others(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    (dest / "commands").mkdir(parents=True)
    (dest / "CLAUDE.md").write_text("old instructions")
    (dest / "commands" / "local-only.md").write_text("keep me")
    (dest / "history.jsonl").write_text("{}")

    restore_archive(archive, dest, scratch, force=True)

    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"
    assert (dest / "commands" / "local-only.md").read_text() == "keep me"
    assert (dest / "history.jsonl").read_text() == "{}"
    assert (dest / "commands" / "foo.md").read_text() == "foo command"

def test_restore_is_idempotent(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    restore_archive(archive, dest, scratch, force=True)
    once = tree_contents(dest)
    restore_archive(archive, dest, scratch, force=True)
    assert tree_contents(dest) == once

def test_backup_copies_destination_before_merge(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "CLAUDE.md").write_text("previous")

    result = restore_archive(archive, dest, scratch, backup=True, force=True)

    assert result.backup_path is not None
    assert result.backup_path.parent == tmp_path
    assert result.backup_path.name.startswith(".dest-backup-")
    assert (result.backup_path / "CLAUDE.md").read_text() == "previous"
    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"

def test_backup_into_explicit_directory(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / ".claude-live"
    dest.mkdir()
    (dest / "CLAUDE.md").write_text("previous")

    result = restore_archive(archive, dest, scratch, backup=True, force=True, backup_dir=tmp_path / "backups")
    assert result.backup_path.parent == tmp_path / "backups"
    assert result.backup_path.name.startswith(".claude-live-backup-")

def test_backup_is_skipped_when_destination_is_absent(archive: Path, scratch: Path, tmp_path: Path):
    result = restore_archive(archive, tmp_path / "dest", scratch, backup=True)
    assert result.backup_path is None

def test_backup_failure_aborts_before_mutation(archive: Path, scratch: Path, tmp_path: Path, monkeypatch):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "CLAUDE.md").write_text("previous")

    def failing_copytree(*args, **kwargs):
        raise OSError(errno.ENOSPC, "No space left on device")
    monkeypatch.setattr(shutil, "copytree", failing_copytree)

    with pytest.raises(BackupError):
        restore_archive(archive, dest, scratch, backup=True, force=True)
    assert (dest / "CLAUDE.md").read_text() == "previous"

def test_locked_file_surfaces_named_error(archive: Path, scratch: Path, tmp_path: Path, monkeypatch):
    dest = tmp_path / "dest"
    (dest / "commands").mkdir(parents=True)
    (dest / "commands" / "foo.md").write_text("held open")

    real_open = Path.open
    def locking_open(self, mode="r", *args, **kwargs):
        if self.name == "foo.md" and self.parent.parent == dest and "w" in mode:
            raise OSError(errno.EBUSY, "Device or resource busy")
        return real_open(self, mode, *args, **kwargs)
    monkeypatch.setattr(Path, "open", locking_open)

    with pytest.raises(FileLockedError) as excinfo:
        restore_archive(archive, dest, scratch, force=True)

    assert excinfo.value.path == dest / "commands" / "foo.md"
    assert "foo.md" in str(excinfo.value)
    assert "Close the running Claude client" in str(excinfo.value)
    # Merge is not transactional: earlier files stay merged, the locked one is untouched
    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"
    assert (dest / "commands" / "bar.md").read_text() == "bar command"
    assert (dest / "commands" / "foo.md").read_text() == "held open"
    assert not any(p.name.startswith("restore-") for p in scratch.iterdir())

def test_open_sibling_files_do_not_block_merge(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "session.lock").write_text("busy")
    (dest / "CLAUDE.md").write_text("old")

    with (dest / "session.lock").open("rb") as held, (dest / "CLAUDE.md").open("rb"):
        restore_archive(archive, dest, scratch, force=True)
        assert held.read() == b"busy"

    assert (dest / "session.lock").read_text() == "busy"
    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"

def test_path_traversal_members_are_skipped(tmp_path: Path, scratch: Path):
    evil = tmp_path / "evil.zip"
    with zipfile.ZipFile(evil, "w") as zf:
        zf.writestr("../escaped.txt", "nope")
        zf.writestr("CLAUDE.md", "fine")

    dest = tmp_path / "inner" / "dest"
    restore_archive(evil, dest, scratch)

    assert (dest / "CLAUDE.md").read_text() == "fine"
    assert not (tmp_path / "inner" / "escaped.txt").exists()
    assert not (scratch / "escaped.txt").exists()

def test_file_where_directory_expected_is_an_io_error(archive: Path, scratch: Path, tmp_path: Path):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "commands").write_text("a file, not a directory")

    with pytest.raises(RestoreError) as excinfo:
        restore_archive(archive, dest, scratch, force=True)
    assert not isinstance(excinfo.value, FileLockedError)

@pytest.mark.parametrize("error,expected", [
    (PermissionError(errno.EACCES, "denied"), False),
    (PermissionError(errno.EPERM, "not permitted"), False),
    (OSError(errno.EBUSY, "busy"), True),
    (OSError(errno.ETXTBSY, "text busy"), True),
    (OSError(errno.ENOSPC, "full"), False),
    (IsADirectoryError(errno.EISDIR, "dir"), False),
])
def test_lock_error_classification(error, expected):
    assert _is_lock_error(error) is expected

def _sharing_violation() -> OSError:
    error = PermissionError(errno.EACCES, "The process cannot access the file")
    error.winerror = 32
    return error

def test_windows_sharing_violation_is_a_lock():
    assert _is_lock_error(_sharing_violation()) is True

def test_permission_denied_is_not_reported_as_lock(archive: Path, scratch: Path, tmp_path: Path, monkeypatch):
    dest = tmp_path / "dest"
    (dest / "commands").mkdir(parents=True)
    (dest / "commands" / "foo.md").write_text("read-only")

    real_open = Path.open
    def denying_open(self, mode="r", *args, **kwargs):
        if self.name == "foo.md" and self.parent.parent == dest and "w" in mode:
            raise PermissionError(errno.EACCES, "Permission denied")
        return real_open(self, mode, *args, **kwargs)
    monkeypatch.setattr(Path, "open", denying_open)

    with pytest.raises(RestoreError, match="Failed to write") as excinfo:
        restore_archive(archive, dest, scratch, force=True)
    assert not isinstance(excinfo.value, FileLockedError)
    assert (dest / "commands" / "foo.md").read_text() == "read-only"

def test_damaged_payload_reports_corrupted_archive(tmp_path: Path, scratch: Path):
    damaged = tmp_path / "damaged.zip"
    body = "".join(f"line {i}: {i * i}\n" for i in range(4000))
    with zipfile.ZipFile(damaged, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("CLAUDE.md", body)

    data = bytearray(damaged.read_bytes())
    # Compressed data follows the first local header and its file name
    start = data.find(b"CLAUDE.md") + len("CLAUDE.md")
    data[start + 10:start + 200] = b"\xff" * 190
    dest = tmp_path / "dest"

    with pytest.raises(ArchiveNotFoundError, match="not found or corrupted"):
        restore_archive(bytes(data), dest, scratch)
    assert not dest.exists()
    assert list(scratch.iterdir()) == []

def test_relative_destination_backs_up_beside_it(archive: Path, scratch: Path, tmp_path: Path, monkeypatch):
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "CLAUDE.md").write_text("old")
    monkeypatch.chdir(dest)

    result = restore_archive(archive, ".", scratch, backup=True, force=True)

    assert result.destination == dest.resolve()
    assert result.backup_path.parent == dest.resolve().parent
    assert result.backup_path.name.startswith(".dest-backup-")
    assert (result.backup_path / "CLAUDE.md").read_text() == "old"
    assert not any(p.name.startswith(".") and "backup" in p.name for p in dest.iterdir())
    assert (dest / "CLAUDE.md").read_text() == "# Instructions\n"

@settings(max_examples=30, deadline=None)
@given(paths=st.lists(st.lists(st.sampled_from(SEGMENTS), min_size=1, max_size=3), max_size=12))
def test_round_trip_and_idempotent_restore(paths):
    with TemporaryDirectory() as td:
        base = Path(td)
        root = base / "src"
        root.mkdir()
        build_tree(root, paths)
        target = base / "snapshot.zip"
        manifest = write_archive(root, select(root), target)

        dest = base / "dest"
        restore_archive(target, dest, base / "cache")
        for entry in manifest:
            if entry.endswith("/"):
                assert (dest / entry).is_dir()
            else:
                assert (dest / entry).read_bytes() == (root / entry).read_bytes()

        first = tree_contents(dest)
        restore_archive(target, dest, base / "cache", force=True)
        assert tree_contents(dest) == first
