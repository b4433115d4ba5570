"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends

from micropatrons.config import get_settings
from micropatrons.dependencies import get_ledger_store
from micropatrons.ledger.store import LedgerStore
from micropatrons.redis_client import get_optional_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    store: LedgerStore = Depends(get_ledger_store),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: checks the ledger store and, when configured, Redis."""
    checks: dict[str, object] = {}

    try:
        await store.ping()
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    redis = get_optional_redis()
    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"

    all_ok = all(v in ("ok", "disabled") for v in checks.values())
    return {"status": "ready" if all_ok else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
