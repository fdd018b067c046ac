"""
Operation audit logging with structured JSON-Lines.
"""
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_config_dir

AUDIT_FILE = "audit.jsonl"
REDACTED_KEYS = ("password", "token", "secret", "key")


class AuditLogger:
    """Writes structured JSONL audit logs without sensitive data."""
    def __init__(self):
        try:
            self.log_file: Optional[Path] = get_config_dir() / AUDIT_FILE
        except OSError:
            self.log_file = None

    def log(self, event_type: str, **kwargs: Any) -> None:
        """Log a structured operation event. Never raises."""
        if self.log_file is None:
            return

        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "details": kwargs
        }

        for key in REDACTED_KEYS:
            if key in entry["details"]:
                entry["details"][key] = "*****"

        try:
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            sys.stderr.write(f"[cpm audit] Failed to write log: {e}\n")

def get_audit_log(last_n: int = 50) -> list[Dict[str, Any]]:
    """Retrieve the last N events from the audit log."""
    log_file = get_config_dir() / AUDIT_FILE
    if not log_file.exists():
        return []

    try:
        with log_file.open("r", encoding="utf-8") as f:
            lines = f.readlines()
    except OSError:
        return []

    parsed = []
    for line in lines[-last_n:]:
        if line.strip():
            try:
                event = json.loads(line)
            except ValueError:
                continue
            if isinstance(event, dict):
                parsed.append(event)
    return parsed
