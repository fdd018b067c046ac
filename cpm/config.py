"""
Configuration for CPM: where the Claude directory, profiles and caches live.
"""
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .models import SelectionRules

APP_NAME = "cpm"
CONFIG_FILE = "config.json"
DEFAULT_MARKETPLACE_REPO = "claude-profiles/marketplace"

ENV_CLAUDE_DIR = "CPM_CLAUDE_DIR"
ENV_PROFILES_DIR = "CPM_PROFILES_DIR"
ENV_CACHE_DIR = "CPM_CACHE_DIR"

def get_config_dir() -> Path:
    """Returns the platform-specific configuration directory."""
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        if appdata:
            base_dir = Path(appdata)
        else:
            base_dir = Path.home() / "AppData" / "Roaming"
    else:
        # XDG Base Directory specification
        xdg_config = os.getenv("XDG_CONFIG_HOME")
        if xdg_config:
            base_dir = Path(xdg_config)
        else:
            base_dir = Path.home() / ".config"

    config_dir = base_dir / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir

def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILE


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    claude_dir: Path = Field(default_factory=lambda: Path.home() / ".claude")
    profiles_dir: Path = Field(default_factory=lambda: Path.home() / ".claude-profiles")
    cache_dir: Path = Field(default_factory=lambda: get_config_dir() / "cache")
    marketplace_repo: str = Field(DEFAULT_MARKETPLACE_REPO, pattern=r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
    extra_excludes: List[str] = Field(default_factory=list)

    def selection_rules(self) -> SelectionRules:
        """Default selection rules plus any user-configured excludes."""
        return SelectionRules().with_excludes(*self.extra_excludes)

    def ensure_dirs(self) -> None:
        self.profiles_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)


def _env_overrides() -> dict:
    overrides = {}
    for key, env in (
        ("claude_dir", ENV_CLAUDE_DIR),
        ("profiles_dir", ENV_PROFILES_DIR),
        ("cache_dir", ENV_CACHE_DIR),
    ):
        value = os.getenv(env)
        if value:
            overrides[key] = Path(value).expanduser()
    return overrides

def _read_config_file(path: Path) -> dict:
    data = {}
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to read config '{path}': {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config '{path}' must contain a JSON object.")
    return data

def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load config.json (if present) and apply environment overrides on top."""
    path = path or get_config_path()
    data = _read_config_file(path)
    data.update(_env_overrides())
    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config '{path}': {e}") from e

def save_config(config: AppConfig, path: Optional[Path] = None) -> Path:
    """Persist the config as JSON."""
    path = path or get_config_path()
    with path.open("w", encoding="utf-8") as f:
        f.write(config.model_dump_json(indent=2))
    return path

def update_config(path: Optional[Path] = None, **changes) -> AppConfig:
    """Apply changes to the stored config file and return the effective config."""
    path = path or get_config_path()
    stored = {**_read_config_file(path), **changes}
    try:
        updated = AppConfig(**stored)
    except ValidationError as e:
        raise ConfigError(f"Invalid config update: {e}") from e
    with path.open("w", encoding="utf-8") as f:
        f.write(updated.model_dump_json(indent=2, include=set(stored)))
    return load_config(path)
