"""
Connection secrets from HashiCorp Vault.

The service needs two: the PostgreSQL URL and the Valkey URL, stored as the
`url` field of KV v2 secrets under `autoshop/`. Login is AppRole with
credentials from the environment; anything missing fails at startup.
"""

import logging
import os
from typing import Dict

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "autoshop"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _required_env(*names: str) -> Dict[str, str]:
    values = {name: os.getenv(name) for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValueError(f"{' and '.join(missing)} must be set to reach Vault")
    return values


class VaultClient:
    """AppRole-authenticated reader for secrets under autoshop/."""

    def __init__(self, vault_addr: str | None = None, vault_namespace: str | None = None):
        self.vault_addr = vault_addr or _required_env("VAULT_ADDR")["VAULT_ADDR"]
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        credentials = _required_env("VAULT_ROLE_ID", "VAULT_SECRET_ID")

        options = {"url": self.vault_addr}
        if self.vault_namespace:
            options["namespace"] = self.vault_namespace
        self.client = hvac.Client(**options)

        try:
            login = self.client.auth.approle.login(
                role_id=credentials["VAULT_ROLE_ID"],
                secret_id=credentials["VAULT_SECRET_ID"],
            )
        except Exception as e:
            logger.error("Vault AppRole login failed: %s", e)
            raise PermissionError(f"Vault AppRole authentication failed: {e}") from e

        self.client.token = login["auth"]["client_token"]
        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed: token rejected")
        logger.info("Authenticated to Vault at %s", self.vault_addr)

    def get_secret(self, path: str, field: str) -> str:
        """
        One field of autoshop/<path>.

        Raises:
            PermissionError: Secret missing or not readable by this role
            KeyError: Secret exists but lacks the field
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            secret = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )["data"]["data"]
        except InvalidPath as e:
            raise PermissionError(f"Secret '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error("Vault denied %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}'") from e

        if field not in secret:
            raise KeyError(f"'{full_path}' has no field '{field}'. Available: {', '.join(secret)}")
        return secret[field]


def _cached_secret(path: str, field: str) -> str:
    global _vault_client_instance
    key = f"{path}/{field}"
    if key not in _secret_cache:
        if _vault_client_instance is None:
            _vault_client_instance = VaultClient()
        _secret_cache[key] = _vault_client_instance.get_secret(path, field)
    return _secret_cache[key]


def get_database_url() -> str:
    return _cached_secret("database", "url")


def get_valkey_url() -> str:
    return _cached_secret("valkey", "url")
