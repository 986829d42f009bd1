"""Tests for the GitLab API client and token authority."""
import json
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
import respx

from license_exporter.domain.errors import LicenseFetchError, RotationError
from license_exporter.infrastructure.integrations.gitlab.client import GitLabAPIClient
from license_exporter.infrastructure.integrations.gitlab.tokens import GitLabTokenAuthority

GITLAB_URL = "https://gitlab.example.com"

LICENSE_PAYLOAD = {
    "id": 2,
    "plan": "ultimate",
    "created_at": "2024-02-27T23:21:58.674Z",
    "starts_at": "2024-01-27",
    "expires_at": "2027-01-27",
    "historical_max": 300,
    "maximum_user_count": 310,
    "expired": False,
    "overage": 10,
    "user_limit": 300,
    "active_users": 280,
    "licensee": {"Name": "Ops Team", "Email": "ops@example.com", "Company": "Example Corp"},
    "add_ons": {}
}

ROTATED_PAYLOAD = {
    "id": 43,
    "name": "license-exporter",
    "revoked": False,
    "created_at": "2026-10-19T12:00:00.000Z",
    "scopes": ["api"],
    "user_id": 7,
    "active": True,
    "expires_at": "2027-01-17",
    "token": "glpat-rotated"
}


class TestGitLabAPIClient:
    """Tests for GitLabAPIClient."""

    @pytest.mark.asyncio
    async def test_fetch_license(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-current")

        async with respx.mock(base_url=GITLAB_URL) as mock:
            route = mock.get("/api/v4/license").mock(return_value=httpx.Response(200, json=LICENSE_PAYLOAD))
            license = await client.fetch_license()

        assert route.calls.last.request.headers["PRIVATE-TOKEN"] == "glpat-current"
        assert license.plan == "ultimate"
        assert license.expires_at == date(2027, 1, 27)
        assert license.starts_at == date(2024, 1, 27)
        assert license.created_at == datetime(2024, 2, 27, 23, 21, 58, 674000, tzinfo=timezone.utc)
        assert license.licensee.company == "Example Corp"
        assert license.remaining_users == 20
        assert license.add_ons == {}

    @pytest.mark.asyncio
    async def test_fetch_license_http_error(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-revoked")

        async with respx.mock(base_url=GITLAB_URL) as mock:
            mock.get("/api/v4/license").mock(return_value=httpx.Response(401, json={"message": "401 Unauthorized"}))
            with pytest.raises(LicenseFetchError) as exc_info:
                await client.fetch_license()

        assert exc_info.value.platform == "gitlab"

    @pytest.mark.asyncio
    async def test_fetch_license_network_error(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-current")

        async with respx.mock(base_url=GITLAB_URL) as mock:
            mock.get("/api/v4/license").mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(LicenseFetchError):
                await client.fetch_license()

    @pytest.mark.asyncio
    async def test_rotate_personal_access_token(self):
        client = GitLabAPIClient(GITLAB_URL + "/", "glpat-current")

        async with respx.mock(base_url=GITLAB_URL) as mock:
            route = mock.post("/api/v4/personal_access_tokens/42/rotate").mock(
                return_value=httpx.Response(200, json=ROTATED_PAYLOAD)
            )
            credential = await client.rotate_personal_access_token(42, date(2027, 1, 17))

        request = route.calls.last.request
        assert request.headers["PRIVATE-TOKEN"] == "glpat-current"
        assert json.loads(request.content) == {"expires_at": "2027-01-17"}
        assert credential.id == 43
        assert credential.value == "glpat-rotated"
        assert credential.expires_at == date(2027, 1, 17)
        assert credential.active is True

    @pytest.mark.asyncio
    async def test_rotate_rejected(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-current")

        async with respx.mock(base_url=GITLAB_URL) as mock:
            mock.post("/api/v4/personal_access_tokens/42/rotate").mock(
                return_value=httpx.Response(400, json={"message": "expires_at is too far"})
            )
            with pytest.raises(RotationError):
                await client.rotate_personal_access_token(42, date(2027, 1, 17))

    @pytest.mark.asyncio
    async def test_rotate_timeout(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-current", timeout=1.0)

        async with respx.mock(base_url=GITLAB_URL) as mock:
            mock.post("/api/v4/personal_access_tokens/42/rotate").mock(
                side_effect=httpx.ReadTimeout("timed out")
            )
            with pytest.raises(RotationError):
                await client.rotate_personal_access_token(42, date(2027, 1, 17))

    @pytest.mark.asyncio
    async def test_rotate_response_without_token(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-current")
        payload = {key: value for key, value in ROTATED_PAYLOAD.items() if key != "token"}

        async with respx.mock(base_url=GITLAB_URL) as mock:
            mock.post("/api/v4/personal_access_tokens/42/rotate").mock(
                return_value=httpx.Response(200, json=payload)
            )
            with pytest.raises(RotationError):
                await client.rotate_personal_access_token(42, date(2027, 1, 17))

    def test_repr_hides_token(self):
        client = GitLabAPIClient(GITLAB_URL, "glpat-secret")
        assert "glpat-secret" not in repr(client)
        assert client.uses_token("glpat-secret")


class TestGitLabTokenAuthority:
    """Tests for GitLabTokenAuthority."""

    def test_new_client_binds_token(self):
        authority = GitLabTokenAuthority(GITLAB_URL, timeout=5.0, verify=False)

        client = authority.new_client("glpat-one")

        assert client.uses_token("glpat-one")
        assert client.timeout == 5.0
        assert client.verify is False
        assert client.base_url == f"{GITLAB_URL}/api/v4"

    @pytest.mark.asyncio
    async def test_rotate_uses_given_client(self):
        authority = GitLabTokenAuthority(GITLAB_URL)
        client = authority.new_client("glpat-current")
        new_expiry = date(2026, 10, 19) + timedelta(days=90)

        async with respx.mock(base_url=GITLAB_URL) as mock:
            route = mock.post("/api/v4/personal_access_tokens/42/rotate").mock(
                return_value=httpx.Response(200, json=ROTATED_PAYLOAD)
            )
            rotated = await authority.rotate(client, 42, new_expiry)

        assert route.calls.last.request.headers["PRIVATE-TOKEN"] == "glpat-current"
        assert rotated.value == "glpat-rotated"
