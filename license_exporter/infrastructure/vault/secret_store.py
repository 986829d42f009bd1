"""HashiCorp Vault implementation of the secret store port."""
import asyncio
import logging
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import hvac
import requests

from license_exporter.domain.errors import (
    CredentialFormatError, SecretStoreAuthError, SecretStoreReadError, SecretStoreWriteError
)
from license_exporter.domain.models.credential import Credential
from license_exporter.domain.ports.secret_store import SecretStore
from license_exporter.domain.services.credential_policy import CredentialPolicy

logger = logging.getLogger(__name__)

# Boolean spellings accepted for the stored active flag.
_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}

_INTEGER_STRING = re.compile(r"[+-]?[0-9]+")

_VAULT_ERRORS = (hvac.exceptions.VaultError, requests.exceptions.RequestException)


def read_workload_token(path: str) -> str:
    """
    Read the mounted workload identity token.

    Raises:
        SecretStoreAuthError: If the file is missing, unreadable or empty
    """
    try:
        token = Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise SecretStoreAuthError(f"Cannot read workload token {path}: {e}") from e
    if not token:
        raise SecretStoreAuthError(f"Workload token file {path} is empty")
    return token


def _coerce_id(value: Any) -> int:
    """Normalize a stored id held as int, float, Decimal or numeric string."""
    if isinstance(value, bool):
        raise CredentialFormatError("id must be numeric, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise CredentialFormatError(f"id is not an integer: {value}")
        return int(value)
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            raise CredentialFormatError(f"id is not an integer: {value}")
        return int(value)
    if isinstance(value, str):
        if not _INTEGER_STRING.fullmatch(value.strip()):
            raise CredentialFormatError(f"id is not an integer: {value!r}")
        return int(value.strip())
    raise CredentialFormatError(f"id has unexpected type {type(value).__name__}")


def _coerce_active(value: Any) -> bool:
    """Normalize a stored active flag held as bool or string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
        raise CredentialFormatError(f"active is not a boolean string: {value!r}")
    raise CredentialFormatError(f"active has unexpected type {type(value).__name__}")


def parse_credential_record(data: Dict[str, Any]) -> Credential:
    """
    Parse the ``data`` map of a KV v2 secret into a Credential.

    Raises:
        CredentialFormatError: If a field is missing or has an unexpected type
    """
    if not isinstance(data, dict):
        raise CredentialFormatError("secret data is not a map")

    missing = [key for key in ("id", "expires_at", "active", "token") if key not in data]
    if missing:
        raise CredentialFormatError(f"secret is missing fields: {', '.join(missing)}")

    token = data["token"]
    if not isinstance(token, str):
        raise CredentialFormatError(f"token has unexpected type {type(token).__name__}")

    return Credential(
        id=_coerce_id(data["id"]),
        value=token,
        expires_at=CredentialPolicy.parse_expiry_date(data["expires_at"]),
        active=_coerce_active(data["active"])
    )


def credential_to_record(credential: Credential) -> Dict[str, Any]:
    """Serialize a Credential to the stored field layout."""
    return {
        "id": credential.id,
        "expires_at": credential.expires_at.isoformat(),
        "active": credential.active,
        "token": credential.value
    }


class VaultSecretStore(SecretStore):
    """
    Vault KV v2 secret store authenticated with the Kubernetes auth method.

    hvac is synchronous, so every call runs in a worker thread and blocks
    only the awaiting task. Reads are never cached.
    """

    def __init__(
        self,
        url: str,
        mount_point: str = "secret",
        auth_mount: str = "kubernetes",
        auth_role: str = "",
        verify: bool = True,
        timeout: float = 30.0,
        client: Optional[hvac.Client] = None
    ):
        """
        Initialize the store.

        Args:
            url: Vault server address
            mount_point: KV v2 engine mount point
            auth_mount: Kubernetes auth method mount point
            auth_role: Vault role to log in as
            verify: Verify the server TLS certificate
            timeout: Per-request timeout in seconds
            client: Preconfigured hvac client, mainly for tests
        """
        self.mount_point = mount_point
        self.auth_mount = auth_mount
        self.auth_role = auth_role
        self._client = client or hvac.Client(url=url, verify=verify, timeout=timeout)

    async def authenticate(self, workload_token: str) -> str:
        try:
            response = await asyncio.to_thread(
                self._client.auth.kubernetes.login,
                role=self.auth_role,
                jwt=workload_token,
                mount_point=self.auth_mount
            )
        except _VAULT_ERRORS as e:
            raise SecretStoreAuthError(f"Vault login via {self.auth_mount} failed: {e}") from e

        try:
            session_token = response["auth"]["client_token"]
        except (KeyError, TypeError) as e:
            raise SecretStoreAuthError("Vault login response carries no client token") from e

        self._client.token = session_token
        logger.info(f"Authenticated to Vault as role {self.auth_role}")
        return session_token

    async def read(self, path: str) -> Credential:
        try:
            response = await asyncio.to_thread(
                self._client.secrets.kv.v2.read_secret_version,
                path=path,
                mount_point=self.mount_point,
                raise_on_deleted_version=True
            )
        except _VAULT_ERRORS as e:
            raise SecretStoreReadError(f"Reading {self.mount_point}/{path} failed: {e}") from e

        try:
            data = response["data"]["data"]
        except (KeyError, TypeError) as e:
            raise CredentialFormatError(f"{self.mount_point}/{path} has no data envelope") from e

        credential = parse_credential_record(data)
        logger.info(f"Read {credential.describe()} from Vault")
        return credential

    async def write(self, path: str, credential: Credential) -> None:
        try:
            response = await asyncio.to_thread(
                self._client.secrets.kv.v2.create_or_update_secret,
                path=path,
                secret=credential_to_record(credential),
                mount_point=self.mount_point
            )
        except _VAULT_ERRORS as e:
            raise SecretStoreWriteError(f"Writing {self.mount_point}/{path} failed: {e}") from e

        version = None
        if isinstance(response, dict):
            version = response.get("data", {}).get("version")
        logger.info(f"Wrote {credential.describe()} to Vault (version {version})")

    async def is_authenticated(self) -> bool:
        try:
            return await asyncio.to_thread(self._client.is_authenticated)
        except _VAULT_ERRORS as e:
            logger.warning(f"Vault authentication check failed: {e}")
            return False
