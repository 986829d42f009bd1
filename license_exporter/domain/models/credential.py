"""Credential value object and rotation policy."""
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from license_exporter.domain.errors import ConfigurationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """
    GitLab personal access token as recorded in the secret store.

    Superseded by a new instance on rotation, never mutated. The token value
    is kept out of repr so the object is safe to log.
    """
    id: int
    value: str = field(repr=False)
    expires_at: date
    active: bool = True

    def expires_at_datetime(self) -> datetime:
        """Expiry date as midnight UTC of that day."""
        return datetime.combine(self.expires_at, time.min, tzinfo=timezone.utc)

    def expiry_distance(self, now: Optional[datetime] = None) -> int:
        """
        Whole days until expiry, rounded down.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Day count, negative once the token has expired
        """
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        hours = (self.expires_at_datetime() - now).total_seconds() / 3600
        return math.floor(hours / 24)

    def describe(self) -> str:
        """Log-safe summary."""
        return f"token {self.id} (expires {self.expires_at.isoformat()})"


@dataclass(frozen=True)
class RotationPolicy:
    """
    When and how far ahead the token is rotated.

    Invariants:
    - a distance of ``expiry_threshold_days`` leaves fewer than
      ``expiry_threshold_days + 1`` days, so ``check_interval`` must be
      shorter than that window or a token could expire between two ticks
    - threshold is non-negative, interval and offset are positive
    """
    check_interval: timedelta = timedelta(hours=6)
    expiry_threshold_days: int = 2
    new_expiry_offset_days: int = 90

    def __post_init__(self):
        """Validate invariants."""
        if self.expiry_threshold_days < 0:
            raise ConfigurationError("expiry_threshold_days cannot be negative")
        if self.check_interval <= timedelta(0):
            raise ConfigurationError("check_interval must be positive")
        if self.new_expiry_offset_days <= 0:
            raise ConfigurationError("new_expiry_offset_days must be positive")
        if self.new_expiry_offset_days <= self.expiry_threshold_days:
            raise ConfigurationError(
                "new_expiry_offset_days must exceed expiry_threshold_days, "
                "otherwise every tick rotates"
            )
        window = timedelta(days=self.expiry_threshold_days + 1)
        if self.check_interval >= window:
            raise ConfigurationError(
                f"check_interval {self.check_interval} is not shorter than the rotation window "
                f"of {window} for a threshold of {self.expiry_threshold_days} days"
            )
