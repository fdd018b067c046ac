"""
Pydantic v2 data models for CPM.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROFILE_NAME_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9_-]*[a-zA-Z0-9]$|^[a-zA-Z0-9]$"

DEFAULT_ALLOW: Tuple[str, ...] = (
    "settings.json",
    "settings.local.json",
    "CLAUDE.md",
    "commands",
    "commands/**",
    "projects",
    "projects/**",
    "templates",
    "templates/**",
    "hooks",
    "hooks/**",
    "mcp.json",
    "mcp_servers",
    "mcp_servers/**",
    "skills",
    "skills/**",
    "agents",
    "agents/**",
)

# Secrets, caches and VCS data
DEFAULT_EXCLUDE: Tuple[str, ...] = (
    ".credentials",
    ".credentials.json",
    ".auth",
    "*.key",
    "*.pem",
    "*.secret",
    "oauth_token*",
    ".cache",
    "node_modules",
    ".git",
)


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)

class SelectionRules(FrozenModel):
    allow: Tuple[str, ...] = DEFAULT_ALLOW
    exclude: Tuple[str, ...] = DEFAULT_EXCLUDE

    def with_excludes(self, *patterns: str) -> "SelectionRules":
        """Return a copy with additional exclude patterns appended."""
        extra = tuple(p for p in patterns if p not in self.exclude)
        return self.model_copy(update={"exclude": self.exclude + extra})

class SnapshotMetadata(FrozenModel):
    """The profile.json record written once per snapshot."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    version: str = "1.0.0"
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(alias="createdAt")
    claude_version: str = Field(default="unknown", alias="claudeVersion")
    platform: str
    includes_secrets: bool = Field(default=False, alias="includesSecrets")
    files: List[str] = Field(default_factory=list)
    contents: Dict[str, List[str]] = Field(default_factory=dict)
    author: Optional[str] = None
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    def with_publication(self, author: str, published_at: Optional[datetime] = None) -> "SnapshotMetadata":
        """Return a new record carrying the publishing author and timestamp."""
        return self.model_copy(update={
            "author": author,
            "published_at": published_at or datetime.now(timezone.utc),
        })

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

class SaveResult(FrozenModel):
    profile_dir: Path
    metadata: SnapshotMetadata

class RestoreResult(FrozenModel):
    destination: Path
    backup_path: Optional[Path] = None
