"""Clock tool: current date and time in any IANA timezone."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from parley.agent.tools import Tool, error_payload


class DateTimeTool(Tool):
    """Report the current time, optionally converted to a timezone."""

    @property
    def name(self) -> str:
        return "get_current_datetime"

    @property
    def description(self) -> str:
        return "Get the current date, time, and timezone information."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "timezone": {
                    "type": "string",
                    "description": (
                        "IANA timezone name (e.g. 'Asia/Shanghai'). "
                        "Defaults to the server's local timezone."
                    ),
                },
            },
            "required": [],
        }

    async def execute(self, timezone: str = "", **_: Any) -> str:
        now_utc = datetime.now(UTC)
        if timezone:
            try:
                local = now_utc.astimezone(ZoneInfo(timezone))
            except (ZoneInfoNotFoundError, ValueError):
                return error_payload(f"Unknown timezone: {timezone}")
            tz_name = timezone
        else:
            local = now_utc.astimezone()
            tz_name = local.tzname() or "UTC"

        return json.dumps({
            "iso": now_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "formatted": local.strftime("%A, %B %d, %Y, %H:%M:%S"),
            "timezone": tz_name,
            "unix_ms": int(now_utc.timestamp() * 1000),
        })
