"""Secret store port interface."""
from abc import ABC, abstractmethod

from license_exporter.domain.models.credential import Credential


class SecretStore(ABC):
    """Versioned secret storage holding the GitLab token record."""

    @abstractmethod
    async def authenticate(self, workload_token: str) -> str:
        """
        Exchange a workload identity token for a session token.

        Args:
            workload_token: Platform-issued identity token

        Returns:
            Session token now used for subsequent calls

        Raises:
            SecretStoreAuthError: If the backend rejects the login
        """
        pass

    @abstractmethod
    async def read(self, path: str) -> Credential:
        """
        Fetch the latest version of the token record.

        Args:
            path: Secret path

        Returns:
            Parsed credential

        Raises:
            SecretStoreReadError: If the backend call fails
            CredentialFormatError: If a field is missing or mistyped
        """
        pass

    @abstractmethod
    async def write(self, path: str, credential: Credential) -> None:
        """
        Persist a new version of the token record.

        Args:
            path: Secret path
            credential: Record to store

        Raises:
            SecretStoreWriteError: If the backend call fails
        """
        pass

    @abstractmethod
    async def is_authenticated(self) -> bool:
        """Check whether the current session is still accepted."""
        pass
