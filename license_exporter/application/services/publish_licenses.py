"""License publishing application service."""
import logging
from typing import Awaitable, Callable, Dict, Optional

from license_exporter.core.client_slot import ClientSlot
from license_exporter.domain.errors import LicenseFetchError
from license_exporter.infrastructure.integrations.gitlab.client import GitLabAPIClient
from license_exporter.infrastructure.integrations.nexus.client import NexusAPIClient
from license_exporter.infrastructure.integrations.sonar.client import SonarAPIClient
from license_exporter.infrastructure.metrics.license_metrics import LicenseMetrics

logger = logging.getLogger(__name__)


class LicensePublisher:
    """
    Fetches license data from each platform and records it as metrics.

    Responsibilities:
    - Read the current GitLab client from the shared slot on every refresh
    - Keep platforms independent: one failing fetch never affects another
    - Log and count fetch failures instead of raising them
    """

    def __init__(
        self,
        metrics: LicenseMetrics,
        gitlab_slot: ClientSlot[GitLabAPIClient],
        nexus_client: Optional[NexusAPIClient] = None,
        sonar_client: Optional[SonarAPIClient] = None
    ):
        """
        Initialize publisher.

        Args:
            metrics: Metrics sink
            gitlab_slot: Holder of the current GitLab client
            nexus_client: Nexus client, None when Nexus is not polled
            sonar_client: SonarQube client, None when SonarQube is not polled
        """
        self.metrics = metrics
        self.gitlab_slot = gitlab_slot
        self.nexus_client = nexus_client
        self.sonar_client = sonar_client

    def jobs(self) -> Dict[str, Callable[[], Awaitable[bool]]]:
        """
        Get the refresh job of every configured platform.

        Returns:
            Mapping of platform name to a coroutine function
        """
        jobs: Dict[str, Callable[[], Awaitable[bool]]] = {"gitlab": self.publish_gitlab}
        if self.nexus_client is not None:
            jobs["nexus"] = self.publish_nexus
        if self.sonar_client is not None:
            jobs["sonar"] = self.publish_sonar
        return jobs

    async def publish_gitlab(self) -> bool:
        client = self.gitlab_slot.get()
        try:
            license = await client.fetch_license()
        except LicenseFetchError as e:
            return self._fetch_failed(e)
        self.metrics.record_gitlab(license)
        logger.info(f"Updated GitLab license metrics (plan {license.plan}, expires {license.expires_at})")
        return True

    async def publish_nexus(self) -> bool:
        try:
            license = await self.nexus_client.fetch_license()
        except LicenseFetchError as e:
            return self._fetch_failed(e)
        self.metrics.record_nexus(license)
        logger.info(f"Updated Nexus license metrics (expires {license.expiration_date.date()})")
        return True

    async def publish_sonar(self) -> bool:
        try:
            license = await self.sonar_client.fetch_license()
        except LicenseFetchError as e:
            return self._fetch_failed(e)
        self.metrics.record_sonar(license)
        logger.info(f"Updated Sonar license metrics (edition {license.edition}, expires {license.expires_at})")
        return True

    async def publish_all(self) -> Dict[str, bool]:
        """Run every refresh job sequentially, mainly for manual runs."""
        return {name: await job() for name, job in self.jobs().items()}

    def _fetch_failed(self, error: LicenseFetchError) -> bool:
        logger.error(f"Failed to fetch license: {error}")
        self.metrics.record_fetch_failure(error.platform)
        return False
