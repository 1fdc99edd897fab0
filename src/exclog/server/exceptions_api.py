from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from exclog.errors import ClientReportedError
from exclog.telemetry import SeverityLevel, use_exception_logger
from exclog.telemetry.context import LogExceptionFn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exceptions", tags=["exceptions"])


class ClientException(BaseModel):
    message: str = ""
    type: str = ""
    stack: str = ""
    severity_level: Any = Field(default=None, alias="severityLevel")
    properties: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ExceptionIngestRequest(BaseModel):
    events: List[ClientException] = Field(default_factory=list)


def get_log_exception(request: Request) -> LogExceptionFn:
    """Inject the mounted logger's `log_exception`; buffers if none is mounted yet."""
    exc_logger = getattr(request.app.state, "exception_logger", None)
    if exc_logger is None:
        return use_exception_logger()
    return exc_logger.log_exception


@router.get("/capabilities")
async def exceptions_capabilities(request: Request) -> Dict[str, Any]:
    exc_logger = getattr(request.app.state, "exception_logger", None)
    if exc_logger is None:
        return {"enabled": False, "ready": False, "pending": 0}
    return {
        "enabled": True,
        "mode": getattr(request.app.state, "exception_logger_mode", ""),
        "phase": exc_logger.phase.value,
        "ready": exc_logger.is_ready,
        "gate_open": exc_logger.pending.is_open(),
        "pending": len(exc_logger.pending),
    }


@router.post("/events")
async def exceptions_events_ingest(
    req: ExceptionIngestRequest,
    log_exception: LogExceptionFn = Depends(get_log_exception),
) -> Dict[str, Any]:
    accepted = 0
    try:
        for ev in req.events:
            message = (ev.message or "").strip()
            if not message:
                continue
            props: Dict[str, Any] = {**ev.properties, "source": "client"}
            if ev.type:
                props["clientErrorType"] = ev.type
            err = ClientReportedError(message, type_name=ev.type, stack=ev.stack)
            log_exception(err, SeverityLevel.from_any(ev.severity_level), props)
            accepted += 1
    except Exception as e:
        logger.error("[exclog] ingest failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="exception ingest failed")
    return {"accepted": accepted}
