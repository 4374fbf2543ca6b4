"""S3 helpers: gzipped day batches and per-identity checkpoints."""

from __future__ import annotations

import gzip
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from auditlogs.errors import CheckpointIOError, ConfigError, SinkUploadError
from auditlogs.models import AuditLogEntry, Checkpoint, LogCategory

logger = logging.getLogger("auditlogs.storage")

CHECKPOINT_KEY = "checkpoint.json"

ENCRYPTION_NONE = "none"
ENCRYPTION_SSE_S3 = "sse-s3"
ENCRYPTION_SSE_KMS = "sse-kms"
ENCRYPTION_MODES = (ENCRYPTION_NONE, ENCRYPTION_SSE_S3, ENCRYPTION_SSE_KMS)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(frozen=True)
class EncryptionOptions:
    mode: str = ENCRYPTION_SSE_S3
    kms_key_id: Optional[str] = None
    bucket_key_enabled: bool = False

    def __post_init__(self) -> None:
        if self.mode not in ENCRYPTION_MODES:
            raise ConfigError(
                f"unknown encryption mode {self.mode!r}, expected one of {ENCRYPTION_MODES}"
            )

    def put_params(self) -> dict[str, Any]:
        """Extra PutObject arguments for this policy."""
        if self.mode == ENCRYPTION_NONE:
            return {}
        if self.mode == ENCRYPTION_SSE_S3:
            return {"ServerSideEncryption": "AES256"}
        params: dict[str, Any] = {"ServerSideEncryption": "aws:kms"}
        if self.kms_key_id:
            params["SSEKMSKeyId"] = self.kms_key_id
        if self.bucket_key_enabled:
            params["BucketKeyEnabled"] = True
        return params


def batch_key(category: LogCategory, identity: str, timestamp: datetime) -> str:
    """Partitioned object key for a batch whose first entry is at ``timestamp``."""
    ts = timestamp.astimezone(timezone.utc)
    filename = f"audit-logs-{ts.strftime('%Y-%m-%d_%H-%M-%S')}.json.gz"
    return (
        f"{category.prefix(identity)}"
        f"/year={ts.year}/month={ts.month}/day={ts.day}/{filename}"
    )


def checkpoint_key(category: LogCategory, identity: str) -> str:
    return f"{category.prefix(identity)}/{CHECKPOINT_KEY}"


def encode_batch(entries: Sequence[AuditLogEntry]) -> bytes:
    """Serialise entries as one JSON array and gzip it."""
    payload = json.dumps([e.to_api() for e in entries]).encode("utf-8")
    return gzip.compress(payload)


def _is_missing_key(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES


class S3Store:
    """Thin wrapper around a boto3 S3 client bound to one bucket."""

    def __init__(
        self,
        client,
        bucket: str,
        encryption: Optional[EncryptionOptions] = None,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.encryption = encryption or EncryptionOptions()

    def _put(self, key: str, body: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            **self.encryption.put_params(),
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def upload_audit_logs(
        self,
        category: LogCategory,
        identity: str,
        entries: Sequence[AuditLogEntry],
    ) -> str:
        """Upload one window of entries. Returns the s3:// URI of the object."""
        if not entries:
            raise SinkUploadError("refusing to upload an empty batch")

        key = batch_key(category, identity, entries[0].timestamp)
        try:
            self._put(key, encode_batch(entries), "application/gzip")
        except (BotoCoreError, ClientError) as exc:
            raise SinkUploadError(f"error uploading to S3: {exc}") from exc
        return f"s3://{self.bucket}/{key}"

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def load_checkpoint(self, category: LogCategory, identity: str) -> Optional[Checkpoint]:
        """Return the stored checkpoint, or None if none was written yet."""
        key = checkpoint_key(category, identity)
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=key)
            data = resp["Body"].read()
        except ClientError as exc:
            if _is_missing_key(exc):
                logger.info(
                    "No checkpoint found, starting from the beginning",
                    extra={"category": category.value, "identity": identity},
                )
                return None
            raise CheckpointIOError(f"error reading checkpoint from S3: {exc}") from exc
        except BotoCoreError as exc:
            raise CheckpointIOError(f"error reading checkpoint from S3: {exc}") from exc

        try:
            return Checkpoint.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError) as exc:
            raise CheckpointIOError(f"error unmarshaling checkpoint: {exc}") from exc

    def save_checkpoint(self, category: LogCategory, identity: str, checkpoint: Checkpoint) -> None:
        key = checkpoint_key(category, identity)
        body = json.dumps(checkpoint.to_dict(), indent=2).encode("utf-8")
        try:
            self._put(key, body, "application/json")
        except (BotoCoreError, ClientError) as exc:
            raise CheckpointIOError(f"error writing checkpoint to S3: {exc}") from exc
