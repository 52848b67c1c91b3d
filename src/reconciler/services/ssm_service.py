"""SSM Parameter Store access for platform credentials.

Secrets live under /reconciler/{environment}/{platform}/{name}. The whole
environment subtree is read in one paginated call at startup, so a cold
start costs one round trip regardless of how many secrets are configured.
"""

import logging
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

PARAMETER_ROOT = "/reconciler"


class SSMServiceError(Exception):
    """Raised when parameters cannot be read from SSM."""


def parameter_path(environment: str, platform: str, name: str) -> str:
    """Build the full parameter name for one secret."""
    return f"{PARAMETER_ROOT}/{environment}/{platform}/{name}"


class SSMService:
    """Reads SecureString parameters with decryption and keeps them in memory.

    Usage:
        ssm = SSMService()
        secrets = ssm.get_parameters_under("/reconciler/prod")
        token = secrets.get("/reconciler/prod/square/access_token")
    """

    def __init__(self, client: Any = None) -> None:
        self._client = client or boto3.client("ssm")
        self._cache: dict[str, str] = {}

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Read a single parameter.

        Raises:
            SSMServiceError: If the parameter is missing or unreadable.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        try:
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            raise SSMServiceError(f"Failed to read SSM parameter {name}: {code}") from e
        except BotoCoreError as e:
            raise SSMServiceError(f"Failed to read SSM parameter {name}: {e}") from e

        value = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def get_parameters_under(self, path: str) -> dict[str, str]:
        """Read every parameter below a path, keyed by full parameter name.

        An empty dict means nothing is stored under the path.

        Raises:
            SSMServiceError: If the path cannot be read (permissions, network).
        """
        found: dict[str, str] = {}
        try:
            paginator = self._client.get_paginator("get_parameters_by_path")
            for page in paginator.paginate(
                Path=path, Recursive=True, WithDecryption=True
            ):
                for parameter in page.get("Parameters", []):
                    found[parameter["Name"]] = parameter["Value"]
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM path {path}. "
                    "Check IAM permissions for ssm:GetParametersByPath."
                ) from e
            raise SSMServiceError(f"Failed to read SSM path {path}: {code}") from e
        except BotoCoreError as e:
            raise SSMServiceError(f"Failed to read SSM path {path}: {e}") from e

        logger.info("Loaded %d SSM parameters under %s", len(found), path)
        self._cache.update(found)
        return found

    def clear_cache(self) -> None:
        self._cache.clear()


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()


def reset_ssm_service() -> None:
    """Drop the shared instance and its cache (for testing only)."""
    get_ssm_service.cache_clear()
