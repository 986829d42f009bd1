"""Upstream authority port interface."""
from abc import ABC, abstractmethod
from datetime import date
from typing import Generic, TypeVar

from license_exporter.domain.models.credential import Credential

ClientT = TypeVar("ClientT")


class UpstreamAuthority(ABC, Generic[ClientT]):
    """Platform that issues the token and accepts it for API access."""

    @abstractmethod
    def new_client(self, credential_value: str) -> ClientT:
        """
        Build a client bound to one token value.

        The token is not validated here; the first real request does that.
        """
        pass

    @abstractmethod
    async def rotate(self, client: ClientT, credential_id: int, new_expiry: date) -> Credential:
        """
        Rotate a token, revoking the old value upstream.

        Not safe to retry blindly: a retry after an unacknowledged success
        rotates the already-rotated token and orphans the first new value.

        Args:
            client: Client authenticated with the token being rotated
            credential_id: Upstream id of that token
            new_expiry: Expiry date requested for the new token

        Returns:
            The new token

        Raises:
            RotationError: If the upstream call fails
        """
        pass
