"""Exception hierarchy for the exporter.

Hierarchy::

    LicenseExporterError
    ├── ConfigurationError
    ├── BootstrapError
    ├── SecretStoreError
    │   ├── SecretStoreAuthError
    │   ├── SecretStoreReadError
    │   ├── SecretStoreWriteError
    │   └── CredentialFormatError
    └── UpstreamError
        ├── RotationError
        └── LicenseFetchError

Errors raised during bootstrap abort startup. The same errors raised during
a scheduler tick are logged and the tick is abandoned.
"""


class LicenseExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(LicenseExporterError):
    """Settings are inconsistent or invalid."""


class BootstrapError(LicenseExporterError):
    """Startup sequence could not produce an authenticated client."""


class SecretStoreError(LicenseExporterError):
    """Secret store interaction failed."""


class SecretStoreAuthError(SecretStoreError):
    """Workload token unreadable or login rejected."""


class SecretStoreReadError(SecretStoreError):
    """Secret could not be fetched."""


class SecretStoreWriteError(SecretStoreError):
    """Secret could not be persisted."""


class CredentialFormatError(SecretStoreError):
    """Stored record is missing a field or has a field of the wrong type."""


class UpstreamError(LicenseExporterError):
    """Call to an upstream platform failed."""


class RotationError(UpstreamError):
    """Token rotation was rejected or did not complete."""


class LicenseFetchError(UpstreamError):
    """License endpoint could not be read or parsed."""

    def __init__(self, platform: str, message: str):
        super().__init__(f"{platform}: {message}")
        self.platform = platform
