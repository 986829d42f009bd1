"""Credential policy domain service - manages token lifecycle rules."""
from datetime import date, datetime, timedelta
from typing import Optional

from license_exporter.domain.errors import CredentialFormatError
from license_exporter.domain.models.credential import Credential, RotationPolicy, utcnow


class CredentialPolicy:
    """
    Domain service for token expiry and rotation policies.

    This is pure business logic with no infrastructure dependencies.
    """

    EXPIRY_DATE_FORMAT = "%Y-%m-%d"

    @staticmethod
    def should_rotate(
        credential: Credential,
        policy: RotationPolicy,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Determine if the token should be rotated.

        Args:
            credential: Token to check
            policy: Rotation policy holding the threshold
            now: Reference time, defaults to the current UTC time

        Returns:
            True if the token expires within the threshold
        """
        return credential.expiry_distance(now) <= policy.expiry_threshold_days

    @staticmethod
    def calculate_new_expiry(policy: RotationPolicy, today: Optional[date] = None) -> date:
        """
        Calculate the expiry date to request on rotation.

        Args:
            policy: Rotation policy holding the offset
            today: Reference date, defaults to the current UTC date

        Returns:
            Calendar date ``new_expiry_offset_days`` after today
        """
        today = today or utcnow().date()
        return today + timedelta(days=policy.new_expiry_offset_days)

    @classmethod
    def parse_expiry_date(cls, value: object) -> date:
        """
        Parse a stored ``YYYY-MM-DD`` expiry date.

        Raises:
            CredentialFormatError: If the value is not a string in that format
        """
        if not isinstance(value, str):
            raise CredentialFormatError(
                f"expires_at must be a string, got {type(value).__name__}"
            )
        try:
            return datetime.strptime(value.strip(), cls.EXPIRY_DATE_FORMAT).date()
        except ValueError as e:
            raise CredentialFormatError(f"expires_at is not a YYYY-MM-DD date: {value!r}") from e

    @staticmethod
    def validate_credential(credential: Credential) -> bool:
        """
        Validate that the token record is usable.

        Args:
            credential: Token to validate

        Returns:
            True if the record has a positive id and a non-empty value
        """
        if credential.id <= 0:
            return False
        if not credential.value:
            return False
        return True
