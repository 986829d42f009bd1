"""Recurring token check, rotation and license refresh loop."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from license_exporter.application.services.publish_licenses import LicensePublisher
from license_exporter.core.client_slot import ClientSlot
from license_exporter.domain.errors import LicenseExporterError, SecretStoreError
from license_exporter.domain.models.credential import Credential, RotationPolicy, utcnow
from license_exporter.domain.ports.secret_store import SecretStore
from license_exporter.domain.ports.upstream_authority import UpstreamAuthority
from license_exporter.domain.services.credential_policy import CredentialPolicy
from license_exporter.infrastructure.metrics.license_metrics import LicenseMetrics

logger = logging.getLogger(__name__)

ClientT = TypeVar("ClientT")


class SchedulerState(str, Enum):
    """Phase of the current tick."""
    IDLE = "idle"
    CHECKING = "checking"
    ROTATING = "rotating"
    SWAPPING = "swapping"
    PUBLISHING = "publishing"


@dataclass
class TickResult:
    """Outcome of one tick."""
    distance: int
    rotated: bool = False
    error: Optional[str] = None


class RefreshScheduler(Generic[ClientT]):
    """
    Control loop keeping the token fresh and the license metrics current.

    Each tick:
    - checks the held token against the rotation threshold
    - rotates it upstream, persists it and swaps in a new client when due
    - dispatches one license refresh task per platform, after rotation,
      using whichever client is current at that point

    The scheduler is the only writer of the client slot. Rotation failures
    are logged and retried on the next tick; nothing in a tick is fatal.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        authority: UpstreamAuthority[ClientT],
        slot: ClientSlot[ClientT],
        credential: Credential,
        policy: RotationPolicy,
        secret_path: str,
        publisher: LicensePublisher,
        metrics: LicenseMetrics,
        session_login: Optional[Callable[[], Awaitable[None]]] = None
    ):
        """
        Initialize scheduler.

        Args:
            secret_store: Store holding the token record
            authority: Platform issuing the token
            slot: Holder of the current client, created by bootstrap
            credential: Token the client in ``slot`` was built from
            policy: Interval, threshold and new-expiry offset
            secret_path: Path of the token record
            publisher: License refresh jobs
            metrics: Metrics sink
            session_login: Renews the secret store session before a rotation
        """
        self.secret_store = secret_store
        self.authority = authority
        self.slot = slot
        self.policy = policy
        self.secret_path = secret_path
        self.publisher = publisher
        self.metrics = metrics
        self.session_login = session_login

        self._credential = credential
        self._pending_write: Optional[Credential] = None
        self._state = SchedulerState.IDLE
        self._refresh_tasks: Dict[str, asyncio.Task] = {}
        self._stop_event = asyncio.Event()

        self.last_tick_at: Optional[datetime] = None
        self.last_rotation_at: Optional[datetime] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def credential(self) -> Credential:
        """Token the current client was built from."""
        return self._credential

    @property
    def has_pending_write(self) -> bool:
        """True while a rotated token has not yet reached the secret store."""
        return self._pending_write is not None

    async def run(self) -> None:
        """
        Tick immediately, then every ``check_interval`` until ``stop()``.

        A tick that raises unexpectedly is logged and the loop continues.
        """
        interval = self.policy.check_interval.total_seconds()
        logger.info(
            f"Refresh scheduler started: every {self.policy.check_interval}, "
            f"rotating at {self.policy.expiry_threshold_days} days or fewer"
        )
        self._stop_event.clear()
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                self._state = SchedulerState.IDLE
                logger.exception("Scheduler tick failed unexpectedly")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Refresh scheduler stopped")

    async def stop(self) -> None:
        """Stop the loop and cancel refreshes still in flight."""
        self._stop_event.set()
        tasks = [task for task in self._refresh_tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_tasks.clear()

    async def wait_for_refreshes(self) -> None:
        """Wait until every license refresh in flight has finished."""
        tasks = [task for task in self._refresh_tasks.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Run one check/rotate/publish cycle.

        Args:
            now: Reference time for the expiry check, defaults to the current UTC time

        Returns:
            Outcome of the rotation part of the tick
        """
        self.last_tick_at = utcnow()
        try:
            result = await self._check_and_rotate(now)
        finally:
            self._state = SchedulerState.PUBLISHING
            self.metrics.record_token(self._credential, now)
            self.dispatch_refresh()
            self._state = SchedulerState.IDLE
        return result

    def dispatch_refresh(self) -> Dict[str, asyncio.Task]:
        """
        Start one fire-and-forget refresh task per platform.

        A platform whose previous refresh is still running is skipped so a
        hung endpoint does not pile up tasks.

        Returns:
            Tasks started by this call
        """
        started = {}
        for platform, job in self.publisher.jobs().items():
            running = self._refresh_tasks.get(platform)
            if running is not None and not running.done():
                logger.warning(f"Previous {platform} license refresh still running, skipping")
                continue
            task = asyncio.create_task(job(), name=f"license-refresh-{platform}")
            task.add_done_callback(self._refresh_done)
            self._refresh_tasks[platform] = task
            started[platform] = task
        return started

    async def _check_and_rotate(self, now: Optional[datetime]) -> TickResult:
        self._state = SchedulerState.CHECKING
        credential = self._credential
        distance = credential.expiry_distance(now)

        if self._pending_write is not None:
            error = await self._retry_pending_write()
            return TickResult(distance=distance, error=error)

        if not CredentialPolicy.should_rotate(credential, self.policy, now):
            logger.info(f"{credential.describe()} expires in {distance} days, no rotation needed")
            return TickResult(distance=distance)

        logger.info(
            f"{credential.describe()} expires in {distance} days "
            f"(threshold {self.policy.expiry_threshold_days}), rotating"
        )
        self._state = SchedulerState.ROTATING

        # A rotated token that cannot be persisted is lost, so confirm the
        # secret store session first.
        if self.session_login is not None:
            try:
                await self.session_login()
            except SecretStoreError as e:
                return self._rotation_failed("login", distance, e)

        current_client = self.slot.get()
        new_expiry = CredentialPolicy.calculate_new_expiry(
            self.policy, (now or utcnow()).date()
        )
        try:
            rotated = await self.authority.rotate(current_client, credential.id, new_expiry)
        except LicenseExporterError as e:
            return self._rotation_failed("rotate", distance, e)

        # The old token is revoked upstream from here on.
        self.metrics.record_rotation()
        self.last_rotation_at = utcnow()
        canonical, error = await self._persist(rotated)

        self._state = SchedulerState.SWAPPING
        self._install(canonical)
        return TickResult(distance=distance, rotated=True, error=error)

    async def _persist(self, rotated: Credential):
        """
        Write the rotated token and read back the canonical record.

        Returns:
            Credential to install and an error message, if any step failed
        """
        try:
            await self.secret_store.write(self.secret_path, rotated)
        except SecretStoreError as e:
            logger.error(
                f"Rotated {rotated.describe()} could not be written to the secret store, "
                f"will retry next tick: {e}"
            )
            self.metrics.record_rotation_failure("write")
            self._pending_write = rotated
            return rotated, str(e)

        self._pending_write = None
        try:
            stored = await self.secret_store.read(self.secret_path)
        except SecretStoreError as e:
            # Deliberately recoverable here, unlike at bootstrap: the rotation
            # response holds the same record.
            logger.warning(f"Re-reading rotated token failed, using rotation response: {e}")
            self.metrics.record_rotation_failure("reread")
            return rotated, str(e)

        if stored.id != rotated.id or stored.value != rotated.value:
            logger.warning(
                f"Secret store returned {stored.describe()} after writing "
                f"{rotated.describe()}, using rotation response"
            )
            return rotated, "secret store returned a different token"
        return stored, None

    async def _retry_pending_write(self) -> Optional[str]:
        pending = self._pending_write
        logger.info(f"Retrying secret store write of {pending.describe()}")
        if self.session_login is not None:
            try:
                await self.session_login()
            except SecretStoreError as e:
                logger.error(f"Secret store login failed, write of {pending.describe()} still pending: {e}")
                self.metrics.record_rotation_failure("login")
                return str(e)
        canonical, error = await self._persist(pending)
        self._state = SchedulerState.SWAPPING
        self._install(canonical)
        return error

    def _install(self, credential: Credential) -> None:
        if credential == self._credential:
            return
        client = self.authority.new_client(credential.value)
        self.slot.swap(client)
        self._credential = credential
        logger.info(f"Installed client for {credential.describe()}")

    def _rotation_failed(self, stage: str, distance: int, error: Exception) -> TickResult:
        logger.error(
            f"Token rotation failed at {stage}, keeping {self._credential.describe()}: {error}"
        )
        self.metrics.record_rotation_failure(stage)
        return TickResult(distance=distance, error=str(error))

    @staticmethod
    def _refresh_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"License refresh task {task.get_name()} failed: {error!r}",
                exc_info=error
            )
