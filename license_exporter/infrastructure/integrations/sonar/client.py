"""SonarQube license client."""
from datetime import date
from typing import Any, Dict

from license_exporter.domain.errors import LicenseFetchError
from license_exporter.domain.models.license import SonarLicense
from license_exporter.infrastructure.integrations.basic_auth import BasicAuthAPIClient


class SonarAPIClient(BasicAuthAPIClient):
    """Reads the edition license of a SonarQube server."""

    PLATFORM = "sonar"
    LICENSE_PATH = "/api/editions/show_license"

    async def fetch_license(self) -> SonarLicense:
        data = await self._get_json(self.LICENSE_PATH)
        try:
            return self._parse_license(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LicenseFetchError(self.PLATFORM, f"unexpected license payload: {e}") from e

    @staticmethod
    def _parse_license(data: Dict[str, Any]) -> SonarLicense:
        # expiresAt carries no time of day
        expires_at = data.get("expiresAt")
        return SonarLicense(
            expires_at=date.fromisoformat(expires_at) if expires_at else None,
            is_expired=bool(data.get("isExpired", False)),
            edition=data.get("edition", ""),
            is_valid_edition=bool(data.get("isValidEdition", False)),
            max_loc=int(data.get("maxLoc", 0)),
            loc=int(data.get("loc", 0)),
            is_official_distribution=bool(data.get("isOfficialDistribution", False)),
            is_supported=bool(data.get("isSupported", False)),
            remaining_loc_threshold=int(data.get("remainingLocThreshold", 0))
        )
