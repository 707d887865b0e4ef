"""Health check endpoint.

Simple GET endpoint that verifies the server is running and the user
store is reachable.
"""

from fastapi import APIRouter, Depends

from flowapi import __version__
from flowapi.db.engine import get_user_store
from flowapi.db.store import StoreError, UserStore

router = APIRouter()


@router.get("/health")
async def health_check(store: UserStore = Depends(get_user_store)):
    """Check server health and database connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await store.ping()
        checks["database"] = "ok"
    except StoreError as e:
        checks["database"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks}
