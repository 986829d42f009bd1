"""FastAPI application entry point."""
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI

from license_exporter.api import health, metrics
from license_exporter.application.services.bootstrap import Bootstrap
from license_exporter.application.services.publish_licenses import LicensePublisher
from license_exporter.application.services.refresh_scheduler import RefreshScheduler
from license_exporter.core.config import Settings, settings
from license_exporter.infrastructure.integrations.gitlab.tokens import GitLabTokenAuthority
from license_exporter.infrastructure.integrations.nexus.client import NexusAPIClient
from license_exporter.infrastructure.integrations.sonar.client import SonarAPIClient
from license_exporter.infrastructure.metrics.license_metrics import LicenseMetrics
from license_exporter.infrastructure.vault.secret_store import VaultSecretStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _nexus_client(app_settings: Settings) -> Optional[NexusAPIClient]:
    if not app_settings.nexus_url:
        return None
    return NexusAPIClient(
        app_settings.nexus_url,
        app_settings.nexus_username,
        app_settings.nexus_password,
        timeout=app_settings.http_timeout_seconds,
        verify=app_settings.tls_verify
    )


def _sonar_client(app_settings: Settings) -> Optional[SonarAPIClient]:
    if not app_settings.sonar_url:
        return None
    return SonarAPIClient(
        app_settings.sonar_url,
        app_settings.sonar_username,
        app_settings.sonar_password,
        timeout=app_settings.http_timeout_seconds,
        verify=app_settings.tls_verify
    )


def create_app(app_settings: Settings = settings) -> FastAPI:
    """
    Build the exporter application.

    The metrics registry is created here, once, and shared by every
    publishing component. Startup bootstraps the GitLab token from Vault and
    refuses to start when that fails.
    """
    app = FastAPI(
        title="License Exporter",
        description="Prometheus exporter for GitLab, Nexus and SonarQube licenses",
        version="0.1.0"
    )
    app.state.metrics = LicenseMetrics()
    app.state.scheduler = None
    app.state.secret_store = None

    app.include_router(metrics.router)
    app.include_router(health.router)

    @app.on_event("startup")
    async def startup_event():
        """Bootstrap the token and start the refresh scheduler."""
        logger.info("Starting License Exporter")
        logger.info(f"GitLab: {app_settings.gitlab_url}, Vault: {app_settings.vault_url}")

        policy = app_settings.rotation_policy()

        secret_store = VaultSecretStore(
            app_settings.vault_url,
            mount_point=app_settings.vault_mount_point,
            auth_mount=app_settings.vault_auth_mount,
            auth_role=app_settings.vault_auth_role,
            verify=app_settings.tls_verify,
            timeout=app_settings.http_timeout_seconds
        )
        authority = GitLabTokenAuthority(
            app_settings.gitlab_url,
            timeout=app_settings.http_timeout_seconds,
            verify=app_settings.tls_verify
        )

        bootstrap = Bootstrap(
            secret_store,
            authority,
            app_settings.vault_path,
            app_settings.workload_token_file
        )
        result = await bootstrap.run()

        publisher = LicensePublisher(
            app.state.metrics,
            result.slot,
            nexus_client=_nexus_client(app_settings),
            sonar_client=_sonar_client(app_settings)
        )
        scheduler = RefreshScheduler(
            secret_store,
            authority,
            result.slot,
            result.credential,
            policy,
            app_settings.vault_path,
            publisher,
            app.state.metrics,
            session_login=bootstrap.login
        )

        app.state.secret_store = secret_store
        app.state.scheduler = scheduler
        app.state.scheduler_task = asyncio.create_task(scheduler.run(), name="refresh-scheduler")
        logger.info(f"Polling licenses for: {', '.join(publisher.jobs())}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the scheduler."""
        logger.info("Shutting down License Exporter")
        scheduler = app.state.scheduler
        if scheduler is not None:
            await scheduler.stop()
            await app.state.scheduler_task

    return app


app = create_app()


def run() -> None:
    """Serve the exporter with uvicorn."""
    import uvicorn
    uvicorn.run(
        "license_exporter.main:app",
        host=settings.api_host,
        port=settings.api_port
    )


if __name__ == "__main__":
    run()
