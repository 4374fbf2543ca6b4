from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from auditlogs.config import HarvestConfig, RenderConfig, S3Config
from auditlogs.models import Actor, AuditLogEntry, Checkpoint, LogCategory

DAY = datetime(2024, 1, 15, tzinfo=timezone.utc)


def make_entries(num: int, start: datetime, prefix: str = "") -> list[AuditLogEntry]:
    """``num`` login events one minute apart starting at ``start``."""
    tag = prefix or start.strftime("%Y%m%d%H%M")
    return [
        AuditLogEntry(
            cursor=f"{tag}-{i}",
            id=f"aud-{tag}-{i}",
            timestamp=start + timedelta(minutes=i),
            event="LoginEvent",
            status="success",
            actor=Actor(type="user", email="test@example.com", id="user-1"),
        )
        for i in range(num)
    ]


def page_after(entries: list[AuditLogEntry], cursor: str, limit: int) -> list[AuditLogEntry]:
    """Entries strictly after ``cursor`` (from the start if it is unknown)."""
    for i, entry in enumerate(entries):
        if entry.cursor == cursor:
            return entries[i + 1:i + 1 + limit]
    return entries[:limit]


class FakeService:
    """AuditLogService stand-in serving a fixed list of entries."""

    def __init__(
        self,
        entries: list[AuditLogEntry],
        category: LogCategory = LogCategory.WORKSPACE,
        error: Optional[Exception] = None,
    ) -> None:
        self.entries = entries
        self.category = category
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    def get(self, identity: str, cursor: str, limit: int) -> list[AuditLogEntry]:
        self.calls.append((identity, cursor, limit))
        if self.error is not None:
            raise self.error
        return page_after(self.entries, cursor, limit)


class FakeStore:
    """In-memory S3Store stand-in."""

    def __init__(
        self,
        checkpoint: Optional[Checkpoint] = None,
        upload_error: Optional[Exception] = None,
        load_error: Optional[Exception] = None,
        save_error: Optional[Exception] = None,
    ) -> None:
        self.checkpoints: dict[tuple[LogCategory, str], Checkpoint] = {}
        self.default_checkpoint = checkpoint
        self.upload_error = upload_error
        self.load_error = load_error
        self.save_error = save_error
        self.uploads: list[tuple[LogCategory, str, list[AuditLogEntry]]] = []
        self.saves = 0

    def checkpoint_for(self, category: LogCategory, identity: str) -> Optional[Checkpoint]:
        return self.checkpoints.get((category, identity), self.default_checkpoint)

    def load_checkpoint(self, category, identity):
        if self.load_error is not None:
            raise self.load_error
        return self.checkpoint_for(category, identity)

    def save_checkpoint(self, category, identity, checkpoint):
        self.saves += 1
        if self.save_error is not None:
            raise self.save_error
        self.checkpoints[(category, identity)] = checkpoint

    def upload_audit_logs(self, category, identity, entries):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((category, identity, list(entries)))
        return f"s3://bucket/{category.value}={identity}/{len(self.uploads)}"


class FakeRenderClient:
    """RenderClient stand-in keyed by endpoint."""

    def __init__(self, streams: dict[str, list[AuditLogEntry]], errors: Optional[dict] = None) -> None:
        self.streams = streams
        self.errors = errors or {}
        self.endpoints: list[str] = []
        self.closed = 0

    def get_audit_logs(self, endpoint: str, cursor: str, limit: int) -> list[AuditLogEntry]:
        self.endpoints.append(endpoint)
        if endpoint in self.errors:
            raise self.errors[endpoint]
        return page_after(self.streams.get(endpoint, []), cursor, limit)

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def harvest_config() -> HarvestConfig:
    return HarvestConfig(
        workspace_ids=["tea-1", "tea-2"],
        render=RenderConfig(api_key="test-api-key"),
        s3=S3Config(bucket="test-bucket"),
        organization_id="org-1",
        max_concurrency=2,
    )
