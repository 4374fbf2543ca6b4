"""Per-identity log processor: paginate, split by day, upload, checkpoint."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Optional

from auditlogs.errors import RunCancelledError
from auditlogs.models import AuditLogEntry, Checkpoint
from auditlogs.partitioner import partition_by_day
from auditlogs.sources.render_api import AuditLogService
from auditlogs.storage import S3Store

logger = logging.getLogger("auditlogs.processor")

PAGE_SIZE = 1000


class LogProcessor:
    """Drains one identity's audit log stream into S3.

    Not safe to run twice concurrently for the same identity: the checkpoint
    is unlocked and the last writer wins.
    """

    def __init__(self, store: S3Store, service: AuditLogService, page_size: int = PAGE_SIZE) -> None:
        self.store = store
        self.service = service
        self.category = service.category
        self.page_size = page_size

    def process(self, identity: str, cancel_event: Optional[threading.Event] = None) -> dict[str, int]:
        """Run once for ``identity``. Returns {"pages", "entries", "batches"}.

        Raises SourceFetchError, SinkUploadError, CheckpointIOError or
        RunCancelledError. The checkpoint is written only after the stream
        drains to an empty page.
        """
        run_id = str(uuid.uuid4())
        log_extra = {"category": self.category.value, "identity": identity, "run_id": run_id}
        started = time.monotonic()
        counts = {"pages": 0, "entries": 0, "batches": 0}

        self._check_cancelled(cancel_event)
        checkpoint = self.store.load_checkpoint(self.category, identity)
        cursor = checkpoint.last_cursor if checkpoint else ""
        logger.info("Starting run at cursor %r", cursor, extra=log_extra)

        final_entry: Optional[AuditLogEntry] = None
        while True:
            last_entry = self._process_page(identity, cursor, counts, cancel_event, log_extra)
            if last_entry is None:
                break
            cursor = last_entry.cursor
            final_entry = last_entry

        if final_entry is not None:
            self._check_cancelled(cancel_event)
            logger.info("Updating checkpoint to cursor %r", final_entry.cursor, extra=log_extra)
            self.store.save_checkpoint(self.category, identity, Checkpoint.from_entry(final_entry))
        else:
            logger.info("No new audit logs", extra=log_extra)

        logger.info(
            "Run complete",
            extra={
                **log_extra,
                "pages": counts["pages"],
                "records": counts["entries"],
                "batches": counts["batches"],
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return counts

    def _process_page(
        self,
        identity: str,
        cursor: str,
        counts: dict[str, int],
        cancel_event: Optional[threading.Event],
        log_extra: dict,
    ) -> Optional[AuditLogEntry]:
        """Upload one page. Returns its last entry, or None when the page is empty."""
        self._check_cancelled(cancel_event)
        entries = self.service.get(identity, cursor, self.page_size)
        logger.debug("Fetched %d audit log entries", len(entries), extra=log_extra)
        if not entries:
            return None

        counts["pages"] += 1
        counts["entries"] += len(entries)
        for window in partition_by_day(entries):
            self._check_cancelled(cancel_event)
            uri = self.store.upload_audit_logs(self.category, identity, window)
            counts["batches"] += 1
            logger.info(
                "Uploaded %d audit logs", len(window),
                extra={**log_extra, "s3_uri": uri, "records": len(window)},
            )
        return entries[-1]

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelledError("run cancelled")
