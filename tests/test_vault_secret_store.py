"""Tests for the Vault secret store adapter."""
import json
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import hvac
import pytest
import requests

from fakes import make_credential
from license_exporter.core.config import Settings
from license_exporter.domain.errors import (
    CredentialFormatError, SecretStoreAuthError, SecretStoreReadError, SecretStoreWriteError
)
from license_exporter.infrastructure.vault.secret_store import (
    VaultSecretStore, credential_to_record, parse_credential_record, read_workload_token
)


def record(**overrides):
    data = {"id": 42, "expires_at": "2027-01-17", "active": True, "token": "glpat-abc"}
    data.update(overrides)
    return data


@pytest.fixture
def hvac_client():
    """hvac client mock backed by a single in-memory KV v2 secret."""
    client = MagicMock()
    stored = {}

    def create_or_update_secret(path, secret, mount_point):
        stored[(mount_point, path)] = dict(secret)
        return {"data": {"version": len(stored)}}

    def read_secret_version(path, mount_point, raise_on_deleted_version):
        if (mount_point, path) not in stored:
            raise hvac.exceptions.InvalidPath(f"no secret at {path}")
        return {"data": {"data": dict(stored[(mount_point, path)]), "metadata": {"version": 1}}}

    client.secrets.kv.v2.create_or_update_secret.side_effect = create_or_update_secret
    client.secrets.kv.v2.read_secret_version.side_effect = read_secret_version
    client.auth.kubernetes.login.return_value = {"auth": {"client_token": "s.session"}}
    client.stored = stored
    return client


@pytest.fixture
def store(hvac_client):
    return VaultSecretStore(
        "https://vault.example.com",
        mount_point="secret",
        auth_mount="kubernetes",
        auth_role="license-exporter",
        client=hvac_client
    )


class TestParseCredentialRecord:
    """Tests for tolerant parsing of the stored record."""

    @pytest.mark.parametrize("raw_id", ["42", 42, 42.0, Decimal("42"), " 42 "])
    def test_id_normalizes_to_int(self, raw_id):
        credential = parse_credential_record(record(id=raw_id))
        assert credential.id == 42
        assert isinstance(credential.id, int)

    def test_id_from_decimal_json_number(self):
        data = json.loads('{"id": 42.0, "expires_at": "2027-01-17", "active": true, "token": "t"}',
                          parse_float=Decimal)
        assert parse_credential_record(data).id == 42

    @pytest.mark.parametrize("raw_id", [
        True, None, [42], {"id": 42}, "forty-two", 42.5, "42.5", "4_2", "42.0", "1e1", "", Decimal("Infinity")
    ])
    def test_unrecognized_id_rejected(self, raw_id):
        with pytest.raises(CredentialFormatError):
            parse_credential_record(record(id=raw_id))

    @pytest.mark.parametrize("raw,expected", [
        (True, True), (False, False), ("true", True), ("1", True), ("T", True),
        ("false", False), ("0", False), ("F", False)
    ])
    def test_active_coercion(self, raw, expected):
        assert parse_credential_record(record(active=raw)).active is expected

    @pytest.mark.parametrize("raw", ["yes", 1, None])
    def test_unrecognized_active_rejected(self, raw):
        with pytest.raises(CredentialFormatError):
            parse_credential_record(record(active=raw))

    @pytest.mark.parametrize("field", ["id", "expires_at", "active", "token"])
    def test_missing_field_rejected(self, field):
        data = record()
        del data[field]
        with pytest.raises(CredentialFormatError, match=field):
            parse_credential_record(data)

    def test_non_string_token_rejected(self):
        with pytest.raises(CredentialFormatError):
            parse_credential_record(record(token=12345))

    def test_unparseable_expiry_rejected(self):
        with pytest.raises(CredentialFormatError):
            parse_credential_record(record(expires_at="next tuesday"))

    def test_parses_expiry_date(self):
        assert parse_credential_record(record()).expires_at == date(2027, 1, 17)


class TestWorkloadToken:
    """Tests for reading the mounted workload token."""

    def test_reads_and_strips(self, tmp_path):
        token_file = tmp_path / "token"
        token_file.write_text("eyJhbGciOi.payload.sig\n")
        assert read_workload_token(str(token_file)) == "eyJhbGciOi.payload.sig"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SecretStoreAuthError):
            read_workload_token(str(tmp_path / "missing"))

    def test_empty_file(self, tmp_path):
        token_file = tmp_path / "token"
        token_file.write_text("")
        with pytest.raises(SecretStoreAuthError):
            read_workload_token(str(token_file))


class TestVaultSecretStore:
    """Tests for VaultSecretStore against a mocked hvac client."""

    @pytest.mark.asyncio
    async def test_authenticate_installs_session_token(self, store, hvac_client):
        session = await store.authenticate("jwt-token")

        assert session == "s.session"
        assert hvac_client.token == "s.session"
        hvac_client.auth.kubernetes.login.assert_called_once_with(
            role="license-exporter", jwt="jwt-token", mount_point="kubernetes"
        )

    @pytest.mark.asyncio
    async def test_authenticate_rejected(self, store, hvac_client):
        hvac_client.auth.kubernetes.login.side_effect = hvac.exceptions.Forbidden("permission denied")

        with pytest.raises(SecretStoreAuthError):
            await store.authenticate("jwt-token")

    @pytest.mark.asyncio
    async def test_authenticate_unreachable(self, store, hvac_client):
        hvac_client.auth.kubernetes.login.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(SecretStoreAuthError):
            await store.authenticate("jwt-token")

    @pytest.mark.asyncio
    async def test_authenticate_without_client_token(self, store, hvac_client):
        hvac_client.auth.kubernetes.login.return_value = {"auth": None}

        with pytest.raises(SecretStoreAuthError):
            await store.authenticate("jwt-token")

    @pytest.mark.asyncio
    async def test_write_then_read_round_trip(self, store, hvac_client):
        credential = make_credential(90, id=7, value="glpat-new")

        await store.write("gitlab/token", credential)
        read_back = await store.read("gitlab/token")

        assert read_back == credential
        assert hvac_client.stored[("secret", "gitlab/token")] == {
            "id": 7,
            "expires_at": credential.expires_at.isoformat(),
            "active": True,
            "token": "glpat-new"
        }

    @pytest.mark.asyncio
    async def test_read_is_never_cached(self, store, hvac_client):
        await store.write("gitlab/token", make_credential(90))
        await store.read("gitlab/token")
        await store.read("gitlab/token")

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 2

    @pytest.mark.asyncio
    async def test_read_string_typed_record(self, store, hvac_client):
        hvac_client.stored[("secret", "gitlab/token")] = record(id="42", active="true")

        credential = await store.read("gitlab/token")

        assert credential.id == 42
        assert credential.active is True

    @pytest.mark.asyncio
    async def test_read_missing_path(self, store):
        with pytest.raises(SecretStoreReadError):
            await store.read("gitlab/absent")

    @pytest.mark.asyncio
    async def test_read_malformed_record(self, store, hvac_client):
        hvac_client.stored[("secret", "gitlab/token")] = record(id=["42"])

        with pytest.raises(CredentialFormatError):
            await store.read("gitlab/token")

    @pytest.mark.asyncio
    async def test_write_failure(self, store, hvac_client):
        hvac_client.secrets.kv.v2.create_or_update_secret.side_effect = hvac.exceptions.VaultDown("sealed")

        with pytest.raises(SecretStoreWriteError):
            await store.write("gitlab/token", make_credential(90))

    @pytest.mark.asyncio
    async def test_is_authenticated_swallows_backend_errors(self, store, hvac_client):
        hvac_client.is_authenticated.side_effect = requests.exceptions.Timeout("slow")

        assert await store.is_authenticated() is False

    def test_record_layout(self):
        credential = make_credential(90, id=9, value="glpat-x")
        assert credential_to_record(credential) == {
            "id": 9,
            "expires_at": credential.expires_at.isoformat(),
            "active": True,
            "token": "glpat-x"
        }

    @pytest.mark.asyncio
    async def test_full_login_path_setting_logs_in_at_mount(self, hvac_client, monkeypatch):
        monkeypatch.setenv("authPath", "auth/kubernetes/login")
        config = Settings(_env_file=None)
        store = VaultSecretStore(
            config.vault_url,
            mount_point=config.vault_mount_point,
            auth_mount=config.vault_auth_mount,
            auth_role=config.vault_auth_role,
            client=hvac_client
        )

        await store.authenticate("jwt-token")

        assert hvac_client.auth.kubernetes.login.call_args.kwargs["mount_point"] == "kubernetes"
