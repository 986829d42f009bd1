"""Core configuration module using Pydantic Settings."""
from datetime import timedelta
from typing import Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from license_exporter.domain.models.credential import RotationPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    vault_url: str = Field(
        default="http://127.0.0.1:8200",
        description="Vault server address"
    )
    vault_path: str = Field(
        default="gitlab/token",
        description="KV v2 path of the GitLab token record, relative to the mount or as a full logical path"
    )
    vault_mount_point: str = Field(
        default="secret",
        description="KV v2 secrets engine mount point"
    )
    vault_auth_mount: str = Field(
        default="kubernetes",
        validation_alias=AliasChoices("vault_auth_mount", "authPath"),
        description="Mount point of the Kubernetes auth method, or its full login path"
    )
    vault_auth_role: str = Field(
        default="license-exporter",
        validation_alias=AliasChoices("vault_auth_role", "authRole"),
        description="Vault role bound to the service account"
    )
    workload_token_file: str = Field(
        default="/var/run/secrets/kubernetes.io/serviceaccount/token",
        description="Mounted service account token used to log in to Vault"
    )

    gitlab_url: str = Field(
        default="https://gitlab.com",
        description="GitLab base URL"
    )
    gl_token_expiry_days: int = Field(
        default=90,
        description="Days from now to request as expiry of a rotated token"
    )
    rotation_threshold_days: int = Field(
        default=2,
        description="Rotate when the token expires in this many days or fewer"
    )
    rotation_check_interval_hours: float = Field(
        default=6,
        description="Hours between scheduler ticks"
    )

    nexus_url: Optional[str] = Field(
        default=None,
        description="Nexus base URL, license polling disabled when unset"
    )
    nexus_username: str = Field(default="", description="Nexus username")
    nexus_password: str = Field(default="", description="Nexus password")

    sonar_url: Optional[str] = Field(
        default=None,
        description="SonarQube base URL, license polling disabled when unset"
    )
    sonar_username: str = Field(default="", description="SonarQube username or token")
    sonar_password: str = Field(default="", description="SonarQube password")

    tls_verify: bool = Field(
        default=True,
        description="Verify TLS certificates of Vault and upstream platforms"
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every outbound request"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="Metrics server host"
    )
    api_port: int = Field(
        default=8081,
        description="Metrics server port"
    )

    @field_validator("vault_auth_mount")
    @classmethod
    def normalize_auth_mount(cls, value: str) -> str:
        """Accept a full login path such as ``auth/kubernetes/login``."""
        mount = value.strip("/")
        if mount.startswith("auth/"):
            mount = mount[len("auth/"):]
        if mount.endswith("/login"):
            mount = mount[:-len("/login")]
        return mount

    @model_validator(mode="after")
    def normalize_vault_path(self) -> "Settings":
        """Accept a full KV v2 logical path such as ``secret/data/gitlab/token``."""
        path = self.vault_path.strip("/")
        prefix = f"{self.vault_mount_point.strip('/')}/data/"
        if path.startswith(prefix):
            path = path[len(prefix):]
        self.vault_path = path
        return self

    @property
    def check_interval(self) -> timedelta:
        """Get the scheduler tick period."""
        return timedelta(hours=self.rotation_check_interval_hours)

    def rotation_policy(self) -> RotationPolicy:
        """
        Build the validated rotation policy.

        Raises:
            ConfigurationError: If interval and threshold allow a token to
                expire between two ticks
        """
        return RotationPolicy(
            check_interval=self.check_interval,
            expiry_threshold_days=self.rotation_threshold_days,
            new_expiry_offset_days=self.gl_token_expiry_days
        )


settings = Settings()
