"""Configuration via environment variables with AWS secret support.

Supports:
  - Environment variables (local dev, optionally from a .env file)
  - AWS Secrets Manager references for the API key (aws-secret://name#key)
  - IAM roles for S3 access (no key material needed in Lambda/ECS)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from auditlogs.errors import ConfigError
from auditlogs.secrets import resolve_secret
from auditlogs.sources.render_api import DEFAULT_BASE_URL
from auditlogs.storage import (
    ENCRYPTION_MODES,
    ENCRYPTION_SSE_KMS,
    ENCRYPTION_SSE_S3,
    EncryptionOptions,
)

_TRUTHY = ("true", "1", "yes")


@dataclass(frozen=True)
class RenderConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 5.0


@dataclass(frozen=True)
class S3Config:
    bucket: str
    region: str = "us-east-1"
    encryption: EncryptionOptions = field(default_factory=EncryptionOptions)


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class HarvestConfig:
    workspace_ids: list[str]
    render: RenderConfig
    s3: S3Config
    organization_id: Optional[str] = None
    max_concurrency: int = 5
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def _required(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value


def _int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def _encryption() -> EncryptionOptions:
    # S3_USE_KMS is the older toggle; S3_ENCRYPTION wins when both are set
    mode = os.environ.get("S3_ENCRYPTION", "").strip().lower()
    if not mode:
        mode = ENCRYPTION_SSE_KMS if _flag("S3_USE_KMS") else ENCRYPTION_SSE_S3
    if mode not in ENCRYPTION_MODES:
        raise ConfigError(f"S3_ENCRYPTION must be one of {ENCRYPTION_MODES}, got {mode!r}")
    return EncryptionOptions(
        mode=mode,
        kms_key_id=os.environ.get("S3_KMS_KEY_ID") or None,
        bucket_key_enabled=_flag("S3_BUCKET_KEY_ENABLED"),
    )


def load_config() -> HarvestConfig:
    """Load configuration from environment variables.

    In AWS, RENDER_API_KEY may be an aws-secret:// reference resolved through
    Secrets Manager. Locally, plain env vars or .env files are used.
    """
    load_dotenv()

    workspaces_raw = _required("WORKSPACE_IDS")
    workspace_ids = [s.strip() for s in workspaces_raw.split(",") if s.strip()]
    if not workspace_ids:
        raise ConfigError("WORKSPACE_IDS must name at least one workspace")

    timeout_raw = os.environ.get("RENDER_API_TIMEOUT", "5")
    try:
        timeout = float(timeout_raw)
    except ValueError:
        raise ConfigError(f"RENDER_API_TIMEOUT must be a number, got {timeout_raw!r}")

    render = RenderConfig(
        api_key=resolve_secret(_required("RENDER_API_KEY")),
        base_url=os.environ.get("RENDER_API_BASE_URL", DEFAULT_BASE_URL),
        timeout_seconds=timeout,
    )

    s3 = S3Config(
        bucket=_required("S3_BUCKET"),
        region=os.environ.get("AWS_REGION", "us-east-1"),
        encryption=_encryption(),
    )

    return HarvestConfig(
        workspace_ids=workspace_ids,
        render=render,
        s3=s3,
        organization_id=os.environ.get("ORGANIZATION_ID", "").strip() or None,
        max_concurrency=_int("HARVEST_MAX_CONCURRENCY", "5"),
        scheduler=SchedulerConfig(
            interval_min=_int("HARVEST_INTERVAL_MIN", "60"),
            misfire_grace_time=_int("SCHEDULER_MISFIRE_GRACE", "300"),
        ),
    )
