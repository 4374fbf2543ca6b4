"""Audit log entries, checkpoints and log categories."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# The API emits between zero and nine fractional digits.
_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp_ns(value: str) -> tuple[datetime, int]:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    datetime stops at microseconds, so the remaining nanoseconds (0-999) are
    returned alongside it.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    nanos = 0
    m = _FRACTION_RE.search(text)
    if m:
        digits = m.group(1)
        nanos = int(digits[6:9].ljust(3, "0"))
        text = f"{text[:m.start()]}.{digits[:6].ljust(6, '0')}{text[m.end():]}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc), nanos


def parse_timestamp(value: str) -> datetime:
    return parse_timestamp_ns(value)[0]


def format_timestamp(value: datetime, nanos: int = 0) -> str:
    """Render as RFC 3339 in UTC, fraction trimmed of trailing zeros."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    fraction = value.microsecond * 1000 + nanos
    if fraction:
        text += "." + f"{fraction:09d}".rstrip("0")
    return text + "Z"


def _metadata(raw: Any) -> dict[str, str]:
    """null values become "", anything else that is not a string is rejected."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"metadata must be an object, got {type(raw).__name__}")
    metadata: dict[str, str] = {}
    for key, val in raw.items():
        if val is None:
            val = ""
        elif not isinstance(val, str):
            raise ValueError(f"metadata value for {key!r} must be a string, got {type(val).__name__}")
        metadata[key] = val
    return metadata


class LogCategory(str, Enum):
    """Which kind of owner an identity names.

    The value doubles as the storage prefix (``workspace=<id>/...``).
    """

    WORKSPACE = "workspace"
    ORGANIZATION = "organization"

    @property
    def endpoint_template(self) -> str:
        if self is LogCategory.WORKSPACE:
            return "/owners/{id}/audit-logs"
        return "/organizations/{id}/audit-logs"

    def endpoint(self, identity: str) -> str:
        return self.endpoint_template.format(id=identity)

    def prefix(self, identity: str) -> str:
        return f"{self.value}={identity}"


@dataclass(frozen=True)
class Actor:
    type: str = ""
    email: str = ""
    id: str = ""


@dataclass(frozen=True)
class AuditLogEntry:
    """One audit log event plus the cursor that points just past it."""

    cursor: str
    id: str
    timestamp: datetime
    event: str = ""
    status: str = ""
    actor: Actor = field(default_factory=Actor)
    metadata: dict[str, str] = field(default_factory=dict)
    # nanoseconds past timestamp.microsecond, 0-999
    nanos: int = 0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "AuditLogEntry":
        """Build an entry from the API shape ``{"cursor", "auditLog": {...}}``."""
        log = data.get("auditLog") or {}
        actor = log.get("actor") or {}
        timestamp, nanos = parse_timestamp_ns(log["timestamp"])
        return cls(
            cursor=data["cursor"],
            id=log.get("id", ""),
            timestamp=timestamp,
            event=log.get("event", ""),
            status=log.get("status", ""),
            actor=Actor(
                type=actor.get("type", ""),
                email=actor.get("email", ""),
                id=actor.get("id", ""),
            ),
            metadata=_metadata(log.get("metadata")),
            nanos=nanos,
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "cursor": self.cursor,
            "auditLog": {
                "id": self.id,
                "timestamp": format_timestamp(self.timestamp, self.nanos),
                "event": self.event,
                "status": self.status,
                "actor": {
                    "type": self.actor.type,
                    "email": self.actor.email,
                    "id": self.actor.id,
                },
                "metadata": dict(self.metadata),
            },
        }


@dataclass(frozen=True)
class Checkpoint:
    """Resumption point persisted once per successful run."""

    last_cursor: str
    last_timestamp: datetime
    last_timestamp_nanos: int = 0

    @classmethod
    def from_entry(cls, entry: AuditLogEntry) -> "Checkpoint":
        return cls(
            last_cursor=entry.cursor,
            last_timestamp=entry.timestamp,
            last_timestamp_nanos=entry.nanos,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        timestamp, nanos = parse_timestamp_ns(data["lastTimestamp"])
        return cls(
            last_cursor=data["lastCursor"],
            last_timestamp=timestamp,
            last_timestamp_nanos=nanos,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "lastCursor": self.last_cursor,
            "lastTimestamp": format_timestamp(self.last_timestamp, self.last_timestamp_nanos),
        }
