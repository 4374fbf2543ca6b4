"""Fan a harvest out over every configured identity on a bounded thread pool."""

from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import boto3

from auditlogs.config import HarvestConfig
from auditlogs.errors import AuditLogError
from auditlogs.models import LogCategory
from auditlogs.processor import LogProcessor
from auditlogs.sources.render_api import AuditLogService, RenderClient
from auditlogs.storage import S3Store

logger = logging.getLogger("auditlogs.harvester")


@dataclass(frozen=True)
class IdentityResult:
    category: LogCategory
    identity: str
    summary: Optional[dict[str, int]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "identity": self.identity,
            "ok": self.ok,
            "summary": self.summary,
            "error": self.error,
        }


def build_store(config: HarvestConfig) -> S3Store:
    client = boto3.client("s3", region_name=config.s3.region)
    return S3Store(client, config.s3.bucket, config.s3.encryption)


def build_client(config: HarvestConfig) -> RenderClient:
    return RenderClient(
        config.render.api_key,
        base_url=config.render.base_url,
        timeout=config.render.timeout_seconds,
    )


def identity_jobs(
    config: HarvestConfig,
    workspace_ids: Optional[Sequence[str]] = None,
    organization_id: Optional[str] = None,
) -> list[tuple[LogCategory, str]]:
    """Workspaces first, then the organization if one is set."""
    workspaces = list(workspace_ids) if workspace_ids else list(config.workspace_ids)
    jobs = [(LogCategory.WORKSPACE, ws) for ws in workspaces]
    org = organization_id or config.organization_id
    if org:
        jobs.append((LogCategory.ORGANIZATION, org))
    return jobs


def _run_one(
    store: S3Store,
    client_factory: Callable[[], RenderClient],
    category: LogCategory,
    identity: str,
    cancel_event: Optional[threading.Event],
) -> IdentityResult:
    extra = {"category": category.value, "identity": identity}
    logger.info("Processing %s %s", category.value, identity, extra=extra)
    try:
        # requests.Session is not thread-safe, each task gets its own
        client = client_factory()
        try:
            service = AuditLogService(client, category)
            summary = LogProcessor(store, service).process(identity, cancel_event)
        finally:
            client.close()
    except AuditLogError as exc:
        logger.error("Error processing %s audit logs: %s", category.value, exc, extra=extra)
        return IdentityResult(category, identity, error=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error processing %s audit logs", category.value, extra=extra)
        return IdentityResult(category, identity, error=f"{type(exc).__name__}: {exc}")
    return IdentityResult(category, identity, summary=summary)


def harvest(
    config: HarvestConfig,
    store: S3Store,
    jobs: Optional[Sequence[tuple[LogCategory, str]]] = None,
    cancel_event: Optional[threading.Event] = None,
    client_factory: Optional[Callable[[], RenderClient]] = None,
) -> list[IdentityResult]:
    """Process every identity and wait for all of them.

    One identity failing never stops the others. Results come back in job
    order regardless of completion order. Each task builds its own Render
    client through ``client_factory`` (default: ``build_client(config)``);
    the S3 store is shared.
    """
    if jobs is None:
        jobs = identity_jobs(config)
    if client_factory is None:
        client_factory = functools.partial(build_client, config)

    with ThreadPoolExecutor(
        max_workers=config.max_concurrency, thread_name_prefix="auditlogs"
    ) as pool:
        futures = [
            pool.submit(_run_one, store, client_factory, category, identity, cancel_event)
            for category, identity in jobs
        ]
        results = [f.result() for f in futures]

    failed = sum(1 for r in results if not r.ok)
    logger.info("All identities processed (%d ok, %d failed)", len(results) - failed, failed)
    return results
