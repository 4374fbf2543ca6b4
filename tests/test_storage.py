import gzip
import io
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from conftest import DAY, make_entries

from auditlogs.errors import CheckpointIOError, ConfigError, SinkUploadError
from auditlogs.models import AuditLogEntry, Checkpoint, LogCategory
from auditlogs.storage import (
    ENCRYPTION_NONE,
    ENCRYPTION_SSE_KMS,
    EncryptionOptions,
    S3Store,
    batch_key,
    checkpoint_key,
)

KMS_KEY = "arn:aws:kms:us-west-2:123456789012:key/12345678-1234-1234-1234-123456789012"
TEST_TIME = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _put_kwargs(client: MagicMock) -> dict:
    client.put_object.assert_called_once()
    return client.put_object.call_args.kwargs


# ------------------------------------------------------------------
# Keys
# ------------------------------------------------------------------

def test_batch_key_layout() -> None:
    ts = datetime(2024, 1, 5, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert batch_key(LogCategory.WORKSPACE, "tea-1", ts) == (
        "workspace=tea-1/year=2024/month=1/day=5/audit-logs-2024-01-05_03-04-05.json.gz"
    )


def test_checkpoint_key_layout() -> None:
    assert checkpoint_key(LogCategory.ORGANIZATION, "org-1") == "organization=org-1/checkpoint.json"


# ------------------------------------------------------------------
# Uploads
# ------------------------------------------------------------------

def test_upload_audit_logs_for_workspace() -> None:
    client = MagicMock()
    store = S3Store(client, "test-bucket")
    data = make_entries(3, DAY + timedelta(hours=10, minutes=30, seconds=45))

    uri = store.upload_audit_logs(LogCategory.WORKSPACE, "tea-123", data)

    kwargs = _put_kwargs(client)
    assert kwargs["Bucket"] == "test-bucket"
    assert kwargs["Key"] == (
        "workspace=tea-123/year=2024/month=1/day=15/audit-logs-2024-01-15_10-30-45.json.gz"
    )
    assert kwargs["ContentType"] == "application/gzip"
    assert uri == f"s3://test-bucket/{kwargs['Key']}"

    uploaded = json.loads(gzip.decompress(kwargs["Body"]))
    assert uploaded == [e.to_api() for e in data]
    assert uploaded[0]["auditLog"]["timestamp"] == "2024-01-15T10:30:45Z"


def test_upload_keeps_nanosecond_timestamps() -> None:
    client = MagicMock()
    entry = AuditLogEntry.from_api(
        {"cursor": "c-1", "auditLog": {"timestamp": "2024-01-15T10:30:45.123456789Z"}}
    )

    S3Store(client, "test-bucket").upload_audit_logs(LogCategory.WORKSPACE, "tea-1", [entry])

    uploaded = json.loads(gzip.decompress(_put_kwargs(client)["Body"]))
    assert uploaded[0]["auditLog"]["timestamp"] == "2024-01-15T10:30:45.123456789Z"


def test_upload_audit_logs_for_organization() -> None:
    store = S3Store(MagicMock(), "test-bucket")

    uri = store.upload_audit_logs(LogCategory.ORGANIZATION, "org-456", make_entries(3, DAY))

    assert "organization=org-456" in uri


def test_upload_failure_raises_sink_error() -> None:
    client = MagicMock()
    client.put_object.side_effect = _client_error("InternalError", "PutObject")
    store = S3Store(client, "test-bucket")

    with pytest.raises(SinkUploadError, match="error uploading to S3"):
        store.upload_audit_logs(LogCategory.WORKSPACE, "tea-123", make_entries(3, DAY))


def test_upload_rejects_empty_batch() -> None:
    client = MagicMock()
    with pytest.raises(SinkUploadError):
        S3Store(client, "test-bucket").upload_audit_logs(LogCategory.WORKSPACE, "tea-123", [])
    client.put_object.assert_not_called()


@pytest.mark.parametrize(
    "options, expected",
    [
        (EncryptionOptions(), {"ServerSideEncryption": "AES256"}),
        (EncryptionOptions(mode=ENCRYPTION_NONE), {}),
        (EncryptionOptions(mode=ENCRYPTION_SSE_KMS), {"ServerSideEncryption": "aws:kms"}),
        (
            EncryptionOptions(mode=ENCRYPTION_SSE_KMS, kms_key_id=KMS_KEY),
            {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": KMS_KEY},
        ),
        (
            EncryptionOptions(mode=ENCRYPTION_SSE_KMS, bucket_key_enabled=True),
            {"ServerSideEncryption": "aws:kms", "BucketKeyEnabled": True},
        ),
    ],
)
def test_upload_encryption_params(options: EncryptionOptions, expected: dict) -> None:
    client = MagicMock()
    S3Store(client, "test-bucket", options).upload_audit_logs(
        LogCategory.WORKSPACE, "tea-123", make_entries(1, DAY)
    )

    kwargs = _put_kwargs(client)
    sse = {k: v for k, v in kwargs.items() if k in ("ServerSideEncryption", "SSEKMSKeyId", "BucketKeyEnabled")}
    assert sse == expected


def test_unknown_encryption_mode() -> None:
    with pytest.raises(ConfigError):
        EncryptionOptions(mode="rot13")


# ------------------------------------------------------------------
# Checkpoints
# ------------------------------------------------------------------

def test_load_checkpoint() -> None:
    body = json.dumps({"lastCursor": "test-cursor-123", "lastTimestamp": "2024-01-15T10:30:00Z"})
    client = MagicMock()
    client.get_object.return_value = {"Body": io.BytesIO(body.encode())}

    cp = S3Store(client, "test-bucket").load_checkpoint(LogCategory.WORKSPACE, "test-workspace")

    client.get_object.assert_called_once_with(
        Bucket="test-bucket", Key="workspace=test-workspace/checkpoint.json"
    )
    assert cp == Checkpoint(last_cursor="test-cursor-123", last_timestamp=TEST_TIME)


def test_load_checkpoint_missing_returns_none() -> None:
    client = MagicMock()
    client.get_object.side_effect = _client_error("NoSuchKey")

    assert S3Store(client, "test-bucket").load_checkpoint(LogCategory.WORKSPACE, "w") is None


def test_load_checkpoint_s3_error() -> None:
    client = MagicMock()
    client.get_object.side_effect = _client_error("AccessDenied")

    with pytest.raises(CheckpointIOError, match="error reading checkpoint from S3"):
        S3Store(client, "test-bucket").load_checkpoint(LogCategory.WORKSPACE, "w")


def test_load_checkpoint_invalid_json() -> None:
    client = MagicMock()
    client.get_object.return_value = {"Body": io.BytesIO(b"invalid json")}

    with pytest.raises(CheckpointIOError, match="error unmarshaling checkpoint"):
        S3Store(client, "test-bucket").load_checkpoint(LogCategory.WORKSPACE, "w")


def test_save_checkpoint() -> None:
    client = MagicMock()
    cp = Checkpoint(last_cursor="test-cursor-456", last_timestamp=TEST_TIME)

    S3Store(client, "test-bucket").save_checkpoint(LogCategory.WORKSPACE, "test-workspace", cp)

    kwargs = _put_kwargs(client)
    assert kwargs["Key"] == "workspace=test-workspace/checkpoint.json"
    assert kwargs["ContentType"] == "application/json"
    assert kwargs["ServerSideEncryption"] == "AES256"
    saved = json.loads(kwargs["Body"])
    assert saved == {"lastCursor": "test-cursor-456", "lastTimestamp": "2024-01-15T10:30:00Z"}


def test_save_checkpoint_keeps_nanoseconds() -> None:
    client = MagicMock()
    cp = Checkpoint(last_cursor="c", last_timestamp=TEST_TIME, last_timestamp_nanos=5)

    S3Store(client, "test-bucket").save_checkpoint(LogCategory.WORKSPACE, "w", cp)

    saved = json.loads(_put_kwargs(client)["Body"])
    assert saved["lastTimestamp"] == "2024-01-15T10:30:00.000000005Z"


def test_save_checkpoint_uses_kms_options() -> None:
    client = MagicMock()
    options = EncryptionOptions(mode=ENCRYPTION_SSE_KMS, kms_key_id=KMS_KEY, bucket_key_enabled=True)
    cp = Checkpoint(last_cursor="kms-cursor", last_timestamp=TEST_TIME)

    S3Store(client, "test-bucket", options).save_checkpoint(LogCategory.WORKSPACE, "w", cp)

    kwargs = _put_kwargs(client)
    assert kwargs["ServerSideEncryption"] == "aws:kms"
    assert kwargs["SSEKMSKeyId"] == KMS_KEY
    assert kwargs["BucketKeyEnabled"] is True


def test_save_checkpoint_s3_error() -> None:
    client = MagicMock()
    client.put_object.side_effect = _client_error("InternalError", "PutObject")
    cp = Checkpoint(last_cursor="c", last_timestamp=TEST_TIME)

    with pytest.raises(CheckpointIOError, match="error writing checkpoint to S3"):
        S3Store(client, "test-bucket").save_checkpoint(LogCategory.WORKSPACE, "w", cp)
