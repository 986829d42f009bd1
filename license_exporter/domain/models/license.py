"""License data transfer objects for the polled platforms."""
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional

from license_exporter.domain.models.credential import utcnow


def days_until(moment: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days from ``now`` to ``moment``, rounded toward zero."""
    if moment is None:
        return 0
    now = now or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return math.trunc((moment - now).total_seconds() / 86400)


def midnight_utc(day: Optional[date]) -> Optional[datetime]:
    """Calendar date as midnight UTC."""
    if day is None:
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


@dataclass
class Licensee:
    """GitLab license holder."""
    name: str = ""
    email: str = ""
    company: str = ""


@dataclass
class GitLabLicense:
    """DTO for the GitLab instance license."""
    id: int
    plan: str
    expires_at: Optional[date]
    starts_at: Optional[date] = None
    created_at: Optional[datetime] = None
    historical_max: int = 0
    maximum_user_count: int = 0
    licensee: Licensee = field(default_factory=Licensee)
    add_ons: Dict[str, Any] = field(default_factory=dict)
    expired: bool = False
    overage: int = 0
    user_limit: int = 0
    active_users: int = 0

    @property
    def remaining_users(self) -> int:
        return self.user_limit - self.active_users

    def days_until_expiry(self, now: Optional[datetime] = None) -> int:
        """Days left on the license, zero once expired."""
        return max(days_until(midnight_utc(self.expires_at), now), 0)


@dataclass
class NexusLicense:
    """DTO for the Nexus Repository license."""
    contact_email: str
    contact_company: str
    contact_name: str
    effective_date: str
    expiration_date: datetime
    license_type: str
    licensed_users: str
    features: str

    def days_until_expiry(self, now: Optional[datetime] = None) -> int:
        return days_until(self.expiration_date, now)


@dataclass
class SonarLicense:
    """DTO for the SonarQube edition license."""
    expires_at: Optional[date]
    is_expired: bool
    edition: str
    is_valid_edition: bool
    max_loc: int
    loc: int
    is_official_distribution: bool
    is_supported: bool
    remaining_loc_threshold: int

    def days_until_expiry(self, now: Optional[datetime] = None) -> int:
        return days_until(midnight_utc(self.expires_at), now)
