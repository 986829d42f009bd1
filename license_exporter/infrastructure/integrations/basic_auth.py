"""Shared plumbing for license endpoints behind HTTP basic auth."""
from typing import Any, Dict

import httpx

from license_exporter.domain.errors import LicenseFetchError


class BasicAuthAPIClient:
    """Read-only JSON client for a platform using username/password auth."""

    PLATFORM = ""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        verify: bool = True
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self._auth = (username, password)

    async def _get_json(self, path: str) -> Dict[str, Any]:
        """
        GET a JSON document.

        Raises:
            LicenseFetchError: On transport errors, non-200 status or invalid JSON
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify) as client:
                response = await client.get(
                    f"{self.base_url}{path}",
                    auth=self._auth,
                    headers={"Accept": "application/json"}
                )
                if response.status_code != httpx.codes.OK:
                    raise LicenseFetchError(
                        self.PLATFORM, f"unexpected status code: {response.status_code}"
                    )
                return response.json()
        except httpx.HTTPError as e:
            raise LicenseFetchError(self.PLATFORM, f"license request failed: {e}") from e
        except ValueError as e:
            raise LicenseFetchError(self.PLATFORM, f"license response is not JSON: {e}") from e
