# filechat/routers/debug.py
from fastapi import APIRouter, HTTPException, Request

from filechat.core.logbuffer import LogBuffer
from filechat.schemas.debug import LogListResponse

router = APIRouter()


def _enabled_buffer(request: Request) -> LogBuffer:
    buffer = request.app.state.log_buffer
    if not buffer.enabled:
        raise HTTPException(status_code=404, detail="Logging is disabled (set ENABLE_LOGS).")
    return buffer


@router.get("/logs", response_model=LogListResponse)
def get_logs(request: Request):
    """Recent in-app log lines, oldest first."""
    buffer = _enabled_buffer(request)
    return LogListResponse(enabled=True, capacity=buffer.capacity, logs=buffer.get_logs())


@router.delete("/logs", response_model=LogListResponse)
def clear_logs(request: Request):
    buffer = _enabled_buffer(request)
    buffer.clear()
    return LogListResponse(enabled=True, capacity=buffer.capacity, logs=[])
