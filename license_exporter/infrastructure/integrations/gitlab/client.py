"""GitLab API client - Anti-Corruption Layer."""
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

import httpx

from license_exporter.domain.errors import LicenseFetchError, RotationError
from license_exporter.domain.models.credential import Credential
from license_exporter.domain.models.license import GitLabLicense, Licensee


class GitLabAPIClient:
    """
    GitLab REST client bound to a single personal access token.

    Responsibilities:
    - Hide GitLab API specifics
    - Map responses to domain objects
    - Translate transport failures into domain errors

    Instances are immutable; a rotated token gets a new client.
    """

    API_PREFIX = "/api/v4"

    def __init__(self, base_url: str, token: str, timeout: float = 30.0, verify: bool = True):
        """
        Initialize API client.

        Args:
            base_url: GitLab instance URL
            token: Personal access token
            timeout: Per-request timeout in seconds
            verify: Verify the server TLS certificate
        """
        self.base_url = base_url.rstrip("/") + self.API_PREFIX
        self.timeout = timeout
        self.verify = verify
        self._token = token

    def __repr__(self) -> str:
        return f"GitLabAPIClient(base_url={self.base_url!r})"

    def uses_token(self, token: str) -> bool:
        """Check whether this client is bound to ``token``."""
        return self._token == token

    async def fetch_license(self) -> GitLabLicense:
        """
        Fetch the instance license.

        Returns:
            GitLab license DTO

        Raises:
            LicenseFetchError: If the request fails or the payload is malformed
        """
        try:
            data = await self._request("GET", "/license")
            return self._parse_license(data)
        except httpx.HTTPError as e:
            raise LicenseFetchError("gitlab", f"license request failed: {e}") from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LicenseFetchError("gitlab", f"unexpected license payload: {e}") from e

    async def rotate_personal_access_token(self, token_id: int, expires_at: date) -> Credential:
        """
        Rotate a personal access token, revoking the current value.

        Args:
            token_id: Id of the token to rotate
            expires_at: Requested expiry of the new token

        Returns:
            The new token

        Raises:
            RotationError: If the request fails or the payload is malformed
        """
        try:
            data = await self._request(
                "POST",
                f"/personal_access_tokens/{token_id}/rotate",
                json={"expires_at": expires_at.isoformat()}
            )
            return self._parse_rotated_token(data)
        except httpx.HTTPError as e:
            raise RotationError(f"rotating token {token_id} failed: {e}") from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RotationError(f"unexpected rotation payload for token {token_id}: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Execute a GitLab API request.

        Raises:
            httpx.HTTPError: If the request fails or returns an error status
        """
        async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify) as client:
            response = await client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers={
                    "PRIVATE-TOKEN": self._token,
                    "Accept": "application/json"
                }
            )
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _parse_date(value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        return date.fromisoformat(value[:10])

    @staticmethod
    def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        if value.endswith("Z"):
            value = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @classmethod
    def _parse_license(cls, data: Dict[str, Any]) -> GitLabLicense:
        """
        Parse GitLab license response.

        Args:
            data: Raw license data from API

        Returns:
            GitLabLicense DTO
        """
        licensee = data.get("licensee") or {}
        return GitLabLicense(
            id=data["id"],
            plan=data.get("plan") or "",
            expires_at=cls._parse_date(data.get("expires_at")),
            starts_at=cls._parse_date(data.get("starts_at")),
            created_at=cls._parse_timestamp(data.get("created_at")),
            historical_max=data.get("historical_max") or 0,
            maximum_user_count=data.get("maximum_user_count") or 0,
            licensee=Licensee(
                name=licensee.get("Name", ""),
                email=licensee.get("Email", ""),
                company=licensee.get("Company", "")
            ),
            add_ons=dict(data.get("add_ons") or {}),
            expired=bool(data.get("expired", False)),
            overage=data.get("overage") or 0,
            user_limit=data.get("user_limit") or 0,
            active_users=data.get("active_users") or 0
        )

    @classmethod
    def _parse_rotated_token(cls, data: Dict[str, Any]) -> Credential:
        """
        Parse GitLab token rotation response.

        Args:
            data: Raw personal access token data from API

        Returns:
            Credential for the new token
        """
        expires_at = cls._parse_date(data.get("expires_at"))
        if expires_at is None:
            raise ValueError("rotated token has no expires_at")
        return Credential(
            id=int(data["id"]),
            value=data["token"],
            expires_at=expires_at,
            active=bool(data.get("active", True))
        )
