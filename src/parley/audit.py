"""Append-only JSONL audit trail, one file per UTC day."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


class AuditLog:
    """Records who did what on which channel. ``record`` never raises."""

    def __init__(self, directory: str | Path, enabled: bool = True) -> None:
        self.directory = Path(directory)
        self.enabled = enabled

    def path_for(self, when: datetime) -> Path:
        return self.directory / f"audit-{when:%Y-%m-%d}.jsonl"

    def record(
        self,
        task_id: str,
        action: str,
        who: str,
        channel: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        if not self.enabled:
            return

        now = datetime.now(UTC)
        entry: dict[str, Any] = {
            "ts": now.isoformat(),
            "task_id": task_id,
            "action": action,
            "who": who,
            "channel": channel,
        }
        if detail:
            entry["detail"] = detail

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(now), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except (OSError, TypeError, ValueError) as e:
            logger.debug("audit.write_failed", action=action, error=str(e))
