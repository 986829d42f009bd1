"""GitLab personal access token management."""
import logging
from datetime import date

from license_exporter.domain.models.credential import Credential
from license_exporter.domain.ports.upstream_authority import UpstreamAuthority
from license_exporter.infrastructure.integrations.gitlab.client import GitLabAPIClient

logger = logging.getLogger(__name__)


class GitLabTokenAuthority(UpstreamAuthority[GitLabAPIClient]):
    """
    Issues GitLab API clients and rotates the token they are bound to.

    Rotation of expiry requires GitLab 16.6 or later.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, verify: bool = True):
        """
        Initialize authority.

        Args:
            base_url: GitLab instance URL
            timeout: Per-request timeout handed to every client
            verify: Verify the server TLS certificate
        """
        self.base_url = base_url
        self.timeout = timeout
        self.verify = verify

    def new_client(self, credential_value: str) -> GitLabAPIClient:
        return GitLabAPIClient(
            self.base_url,
            credential_value,
            timeout=self.timeout,
            verify=self.verify
        )

    async def rotate(self, client: GitLabAPIClient, credential_id: int, new_expiry: date) -> Credential:
        logger.info(f"Rotating GitLab token {credential_id}, new expiry {new_expiry.isoformat()}")
        rotated = await client.rotate_personal_access_token(credential_id, new_expiry)
        logger.info(f"Successfully rotated GitLab token {credential_id} into {rotated.describe()}")
        return rotated
