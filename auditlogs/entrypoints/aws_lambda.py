"""AWS Lambda handler for audit log harvesting.

Deployed as a Lambda function triggered by an EventBridge schedule.
Each invocation harvests every configured identity, or the ones named in
the event.

Event format:
  {}
  {"workspaces": ["tea-abc123"]}
  {"workspaces": ["tea-abc123"], "organization": "org-xyz"}
"""

from __future__ import annotations

import json
import logging
import os

from auditlogs.config import load_config
from auditlogs.errors import ConfigError
from auditlogs.harvester import build_store, harvest, identity_jobs
from auditlogs.logging_config import configure_logging

logger = logging.getLogger("auditlogs.lambda")


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"),
        os.environ.get("LOG_FORMAT", "json"),
    )
    event = event or {}

    workspaces = event.get("workspaces")
    if workspaces is not None and not isinstance(workspaces, list):
        return {"statusCode": 400, "body": "'workspaces' must be a list"}

    try:
        config = load_config()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return {"statusCode": 500, "body": json.dumps({"error": str(exc)})}

    jobs = identity_jobs(config, workspaces, event.get("organization"))
    logger.info("Lambda invoked for %d identities", len(jobs))

    results = harvest(config, build_store(config), jobs=jobs)

    # Per-identity failures are reported in the body, not as a failed invocation
    return {
        "statusCode": 200,
        "body": json.dumps({"results": [r.to_dict() for r in results]}),
    }
