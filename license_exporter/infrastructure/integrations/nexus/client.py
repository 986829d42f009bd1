"""Nexus Repository license client."""
from datetime import datetime, timezone
from typing import Any, Dict

from license_exporter.domain.errors import LicenseFetchError
from license_exporter.domain.models.license import NexusLicense
from license_exporter.infrastructure.integrations.basic_auth import BasicAuthAPIClient


class NexusAPIClient(BasicAuthAPIClient):
    """Reads the system license of a Nexus Repository instance."""

    PLATFORM = "nexus"
    LICENSE_PATH = "/service/rest/v1/system/license"

    async def fetch_license(self) -> NexusLicense:
        data = await self._get_json(self.LICENSE_PATH)
        try:
            return self._parse_license(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LicenseFetchError(self.PLATFORM, f"unexpected license payload: {e}") from e

    @staticmethod
    def _parse_license(data: Dict[str, Any]) -> NexusLicense:
        """
        Parse Nexus license response.

        ``expirationDate`` is RFC3339; an unparseable value is an error.
        """
        expiration = data["expirationDate"]
        if expiration.endswith("Z"):
            expiration = expiration.replace("Z", "+00:00")
        expiration_date = datetime.fromisoformat(expiration)
        if expiration_date.tzinfo is None:
            expiration_date = expiration_date.replace(tzinfo=timezone.utc)

        return NexusLicense(
            contact_email=data.get("contactEmail", ""),
            contact_company=data.get("contactCompany", ""),
            contact_name=data.get("contactName", ""),
            effective_date=data.get("effectiveDate", ""),
            expiration_date=expiration_date,
            license_type=str(data.get("licenseType", "")),
            licensed_users=str(data.get("licensedUsers", "")),
            features=str(data.get("features", ""))
        )
