from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.scheduler import SchedulerState
from app.db.mongodb import db

router = APIRouter()


@router.get("/live", summary="Liveness Probe")
async def liveness():
    """
    Liveness probe to check if the application process is running.
    """
    return {"status": "alive"}


@router.get("/ready", summary="Readiness Probe")
async def readiness(request: Request):
    """
    Readiness probe.
    Checks:
    1. MongoDB connectivity (ping)
    2. Recurrence materializer state (reported, only fatal when it should run but does not)
    """
    components = {"database": "unknown", "materializer": "unknown"}
    is_ready = True

    try:
        if db.client:
            await db.client.admin.command("ping")
            components["database"] = "connected"
        else:
            components["database"] = "client_not_initialized"
            is_ready = False
    except Exception as e:
        components["database"] = f"error: {str(e)}"
        is_ready = False

    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        components["materializer"] = "disabled"
    elif scheduler.state != SchedulerState.RUNNING:
        components["materializer"] = "stopped"
        is_ready = False
    else:
        components["materializer"] = {
            "state": scheduler.state.value,
            "ticks": scheduler.ticks,
            "last_tick_at": scheduler.last_tick_at.isoformat() if scheduler.last_tick_at else None,
            "last_report": scheduler.last_report.summary() if scheduler.last_report else None,
            "last_error": scheduler.last_error,
            "consecutive_failures": scheduler.consecutive_failures,
        }

    if is_ready:
        return {"status": "ready", "components": components}

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "components": components},
    )
