"""Prometheus gauges for license and token state."""
import json
from datetime import datetime
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge

from license_exporter.domain.models.credential import Credential
from license_exporter.domain.models.license import GitLabLicense, NexusLicense, SonarLicense


def _label(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True, default=str)
    # date and datetime
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class LicenseMetrics:
    """
    All exporter metrics, registered on one injected registry.

    Create once at startup and hand to every component that publishes.
    Info gauges carry license attributes as labels with a constant value
    of 1 and are cleared on every update so a changed license does not
    leave its previous label set behind. The token value is never exported.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.gitlab_license = Gauge(
            "gitlab_license",
            "License information from GitLab",
            [
                "plan", "created_at", "starts_at", "expires_at", "historical_max",
                "maximum_user_count", "licensee_name", "licensee_email", "licensee_company", "add_ons",
                "expired", "overage", "user_limit", "active_users", "days_until_expiry", "remaining_users"
            ],
            registry=self.registry
        )
        self.gitlab_days_until_expiry = Gauge(
            "gitlab_license_days_until_expiry",
            "Days until GitLab license expires",
            registry=self.registry
        )

        self.nexus_license = Gauge(
            "nexus_license_info",
            "Nexus license information",
            [
                "contact_email", "contact_company", "contact_name", "effective_date",
                "expiration_date", "license_type", "licensed_users", "features"
            ],
            registry=self.registry
        )
        self.nexus_days_until_expiry = Gauge(
            "nexus_license_days_until_expiry",
            "Days until Nexus license expires",
            registry=self.registry
        )

        self.sonar_license = Gauge(
            "sonar_license_info",
            "SonarQube license information",
            [
                "expires_at", "is_expired", "edition", "is_valid_edition", "max_loc", "loc",
                "is_official_distribution", "is_supported", "remaining_loc_threshold"
            ],
            registry=self.registry
        )
        self.sonar_days_until_expiry = Gauge(
            "sonar_license_days_until_expiry",
            "Days until SonarQube license expires",
            registry=self.registry
        )

        self.token_days_until_expiry = Gauge(
            "gitlab_token_days_until_expiry",
            "Days until the GitLab access token used by the exporter expires",
            registry=self.registry
        )
        self.token_rotations = Counter(
            "gitlab_token_rotations",
            "Successful GitLab token rotations",
            registry=self.registry
        )
        self.token_rotation_failures = Counter(
            "gitlab_token_rotation_failures",
            "Failed GitLab token rotation attempts",
            ["stage"],
            registry=self.registry
        )
        self.license_fetch_failures = Counter(
            "license_fetch_failures",
            "Failed license fetches per platform",
            ["platform"],
            registry=self.registry
        )

    def record_gitlab(self, license: GitLabLicense, now: Optional[datetime] = None) -> None:
        days = license.days_until_expiry(now)
        self.gitlab_license.clear()
        self.gitlab_license.labels(
            plan=license.plan,
            created_at=_label(license.created_at),
            starts_at=_label(license.starts_at),
            expires_at=_label(license.expires_at),
            historical_max=_label(license.historical_max),
            maximum_user_count=_label(license.maximum_user_count),
            licensee_name=license.licensee.name,
            licensee_email=license.licensee.email,
            licensee_company=license.licensee.company,
            add_ons=_label(license.add_ons),
            expired=_label(license.expired),
            overage=_label(license.overage),
            user_limit=_label(license.user_limit),
            active_users=_label(license.active_users),
            days_until_expiry=_label(days),
            remaining_users=_label(license.remaining_users)
        ).set(1)
        self.gitlab_days_until_expiry.set(days)

    def record_nexus(self, license: NexusLicense, now: Optional[datetime] = None) -> None:
        self.nexus_license.clear()
        self.nexus_license.labels(
            contact_email=license.contact_email,
            contact_company=license.contact_company,
            contact_name=license.contact_name,
            effective_date=license.effective_date,
            expiration_date=_label(license.expiration_date),
            license_type=license.license_type,
            licensed_users=license.licensed_users,
            features=license.features
        ).set(1)
        self.nexus_days_until_expiry.set(license.days_until_expiry(now))

    def record_sonar(self, license: SonarLicense, now: Optional[datetime] = None) -> None:
        self.sonar_license.clear()
        self.sonar_license.labels(
            expires_at=_label(license.expires_at),
            is_expired=_label(license.is_expired),
            edition=license.edition,
            is_valid_edition=_label(license.is_valid_edition),
            max_loc=_label(license.max_loc),
            loc=_label(license.loc),
            is_official_distribution=_label(license.is_official_distribution),
            is_supported=_label(license.is_supported),
            remaining_loc_threshold=_label(license.remaining_loc_threshold)
        ).set(1)
        self.sonar_days_until_expiry.set(license.days_until_expiry(now))

    def record_token(self, credential: Credential, now: Optional[datetime] = None) -> None:
        self.token_days_until_expiry.set(credential.expiry_distance(now))

    def record_rotation(self) -> None:
        self.token_rotations.inc()

    def record_rotation_failure(self, stage: str) -> None:
        self.token_rotation_failures.labels(stage=stage).inc()

    def record_fetch_failure(self, platform: str) -> None:
        self.license_fetch_failures.labels(platform=platform).inc()
