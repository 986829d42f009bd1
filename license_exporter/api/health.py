"""Health check endpoints."""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns:
        Health status
    """
    return {"status": "healthy"}


@router.get("/credential")
async def credential_health(request: Request):
    """
    Report the state of the GitLab token managed by the scheduler.

    The token value is never included.

    Returns:
        Token id, expiry, scheduler state and last rotation time
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return JSONResponse(status_code=503, content={"status": "starting"})

    credential = scheduler.credential
    distance = credential.expiry_distance()
    return {
        "status": "healthy" if distance >= 0 else "expired",
        "token_id": credential.id,
        "expires_at": credential.expires_at.isoformat(),
        "days_until_expiry": distance,
        "active": credential.active,
        "scheduler_state": scheduler.state.value,
        "pending_write": scheduler.has_pending_write,
        "last_tick_at": scheduler.last_tick_at.isoformat() if scheduler.last_tick_at else None,
        "last_rotation_at": scheduler.last_rotation_at.isoformat() if scheduler.last_rotation_at else None
    }


@router.get("/vault")
async def vault_health(request: Request):
    """
    Check the secret store session.

    Returns:
        Vault health status
    """
    secret_store = getattr(request.app.state, "secret_store", None)
    if secret_store is None:
        return JSONResponse(status_code=503, content={"status": "starting"})

    if await secret_store.is_authenticated():
        return {"status": "healthy", "vault": "authenticated"}
    return {"status": "unhealthy", "vault": "unauthenticated"}
