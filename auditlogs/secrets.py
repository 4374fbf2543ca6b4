"""Secret resolution.

Resolves secrets from AWS Secrets Manager, falling back to the literal
environment value for local development.
"""

from __future__ import annotations

import json
import logging
import os

from botocore.exceptions import BotoCoreError, ClientError

from auditlogs.errors import ConfigError

logger = logging.getLogger("auditlogs.secrets")

# Prefix that indicates a cloud secret reference
_AWS_PREFIX = "aws-secret://"


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value.

    Supported formats:
      - "aws-secret://secret-name"         -> AWS Secrets Manager
      - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
      - anything else                      -> returned as-is (env var / literal)
    """
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    return value


def _resolve_aws_secret(ref: str) -> str:
    """Fetch a secret from AWS Secrets Manager.

    ref format: "secret-name" or "secret-name#json_key"
    """
    import boto3

    parts = ref.split("#", 1)
    secret_name = parts[0]
    json_key = parts[1] if len(parts) > 1 else None

    region = os.environ.get("AWS_REGION", "us-east-1")
    client = boto3.client("secretsmanager", region_name=region)

    logger.info("Resolving secret %s from AWS Secrets Manager", secret_name)
    try:
        resp = client.get_secret_value(SecretId=secret_name)
    except (BotoCoreError, ClientError) as exc:
        raise ConfigError(f"cannot read secret {secret_name}: {exc}") from exc
    secret_string = resp["SecretString"]

    if json_key:
        try:
            data = json.loads(secret_string)
            return str(data[json_key])
        except (ValueError, KeyError) as exc:
            raise ConfigError(f"secret {secret_name} has no JSON key {json_key!r}") from exc
    return secret_string
