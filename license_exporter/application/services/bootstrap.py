"""Startup sequence producing the first authenticated client."""
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from license_exporter.core.client_slot import ClientSlot
from license_exporter.domain.errors import BootstrapError, SecretStoreError
from license_exporter.domain.models.credential import Credential
from license_exporter.domain.ports.secret_store import SecretStore
from license_exporter.domain.ports.upstream_authority import UpstreamAuthority
from license_exporter.domain.services.credential_policy import CredentialPolicy
from license_exporter.infrastructure.vault.secret_store import read_workload_token

logger = logging.getLogger(__name__)

ClientT = TypeVar("ClientT")


@dataclass
class BootstrapResult(Generic[ClientT]):
    """Initial credential and the slot holding the client built from it."""
    credential: Credential
    slot: ClientSlot[ClientT]


class Bootstrap(Generic[ClientT]):
    """
    One-time startup: log in to the secret store, read the token, build the client.

    Every failure here is fatal; the process must not serve without a token.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        authority: UpstreamAuthority[ClientT],
        secret_path: str,
        workload_token_file: str
    ):
        """
        Initialize bootstrap.

        Args:
            secret_store: Store holding the token record
            authority: Platform the token belongs to
            secret_path: Path of the token record
            workload_token_file: Mounted workload identity token
        """
        self.secret_store = secret_store
        self.authority = authority
        self.secret_path = secret_path
        self.workload_token_file = workload_token_file

    async def login(self) -> None:
        """
        Authenticate to the secret store with the workload token.

        Also used by the scheduler to renew the session before a rotation.

        Raises:
            SecretStoreAuthError: If the token file is unreadable or login fails
        """
        workload_token = read_workload_token(self.workload_token_file)
        await self.secret_store.authenticate(workload_token)

    async def run(self) -> BootstrapResult[ClientT]:
        """
        Run the startup sequence.

        Returns:
            Initial credential and client slot

        Raises:
            BootstrapError: If any step fails
        """
        logger.info(f"Bootstrapping credential from {self.secret_path}")
        try:
            await self.login()
            credential = await self.secret_store.read(self.secret_path)
        except SecretStoreError as e:
            raise BootstrapError(f"Cannot load token from secret store: {e}") from e

        if not CredentialPolicy.validate_credential(credential):
            raise BootstrapError(f"Stored {credential.describe()} is not usable")
        if not credential.active:
            logger.warning(f"Stored {credential.describe()} is flagged inactive")

        client = self.authority.new_client(credential.value)
        logger.info(
            f"Loaded {credential.describe()}, "
            f"{credential.expiry_distance()} days until expiry"
        )
        return BootstrapResult(credential=credential, slot=ClientSlot(client))
