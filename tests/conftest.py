import json
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """Keep config.json and the audit log out of the real home directory."""
    config_home = tmp_path / "config-home"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("APPDATA", str(config_home))
    for var in ("CPM_CLAUDE_DIR", "CPM_PROFILES_DIR", "CPM_CACHE_DIR"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("cpm.store.detect_claude_version", lambda: "1.2.3 (Claude Code)")
    config_dir = config_home / "cpm"
    config_dir.mkdir(parents=True)
    return config_dir

@pytest.fixture
def claude_dir(tmp_path: Path) -> Path:
    """A representative .claude directory with allowed, excluded and ignored entries."""
    root = tmp_path / ".claude"
    root.mkdir()

    (root / "CLAUDE.md").write_text("# Instructions\n")
    (root / "settings.json").write_text('{"theme": "dark"}')
    (root / "mcp.json").write_text(json.dumps({"mcpServers": {"github": {}, "fs": {}}}))
    (root / ".credentials.json").write_text('{"token": "abc"}')

    commands = root / "commands"
    commands.mkdir()
    (commands / "foo.md").write_text("foo command")
    (commands / "bar.md").write_text("bar command")
    (commands / "oauth_token.md").write_text("secret")
    (commands / "deploy.pem").write_text("-----BEGIN-----")

    hooks = root / "hooks"
    hooks.mkdir()
    (hooks / "pre.sh").write_text("#!/bin/sh\necho hi\n")
    (hooks / "empty").mkdir()

    project = root / "projects" / "p1"
    project.mkdir(parents=True)
    (project / "notes.md").write_text("notes")
    (project / ".git").mkdir()
    (project / ".git" / "config").write_text("[core]")

    statsig = root / "statsig"
    statsig.mkdir()
    (statsig / "cache.bin").write_bytes(b"\x00\x01")

    return root

EXPECTED_SELECTION = [
    "CLAUDE.md",
    "commands/bar.md",
    "commands/foo.md",
    "hooks/empty/",
    "hooks/pre.sh",
    "mcp.json",
    "projects/p1/notes.md",
    "settings.json",
]

def tree_contents(root: Path) -> dict:
    """Map every file and directory under root to its bytes (None for directories)."""
    return {
        p.relative_to(root).as_posix(): (None if p.is_dir() else p.read_bytes())
        for p in sorted(root.rglob("*"))
    }

SEGMENTS = ["commands", "hooks", "misc", "CLAUDE.md", "a.md", "x.key", "oauth_token.txt", ".git", "sub"]

def build_tree(root: Path, paths) -> list:
    """Create one file per path of segments under root, returning the relative names created."""
    files = []
    for parts in paths:
        target = root.joinpath(*parts)
        # Skip paths that collide with an existing file or directory
        if any(root.joinpath(*parts[:i]).is_file() for i in range(1, len(parts))) or target.exists():
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("/".join(parts))
        files.append("/".join(parts))
    return files
