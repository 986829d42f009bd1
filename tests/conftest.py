"""Shared fixtures."""
from datetime import timedelta

import pytest

from fakes import FakeAuthority, InMemorySecretStore
from license_exporter.domain.errors import SecretStoreWriteError
from license_exporter.domain.models.credential import RotationPolicy


@pytest.fixture
def authority():
    return FakeAuthority()


@pytest.fixture
def secret_store():
    return InMemorySecretStore()


@pytest.fixture
def policy():
    return RotationPolicy(
        check_interval=timedelta(hours=6),
        expiry_threshold_days=2,
        new_expiry_offset_days=90
    )


@pytest.fixture
def write_failure():
    return SecretStoreWriteError("vault sealed")
