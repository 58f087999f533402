## app/audit_trail/router.py

# Standard library imports
import asyncio
from pathlib import Path
from typing import AsyncIterator

# Third party imports
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse, StreamingResponse

# Local application imports
from app.core.config import Settings
from app.core.dependencies import get_settings
from app.utils.logger import get_logger
from app.utils.security import require_basic_auth

router = APIRouter(prefix="/logs", tags=["Audit Trail"])
logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 1.0


def _existing_log(config: Settings) -> Path:
    log_path = config.log_path
    if not log_path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Log file not found.")
    return log_path


@router.get("")
async def download_audit_log(
    _user: str = Depends(require_basic_auth),
    config: Settings = Depends(get_settings),
):
    """
    Download the audit log file.
    """
    return FileResponse(_existing_log(config), filename="server.log", media_type="text/plain")


async def follow_log(request: Request, log_path: Path, poll_interval: float = POLL_INTERVAL_SECONDS) -> AsyncIterator[str]:
    """
    Yield every existing line as an SSE event, then new lines as they are
    appended, until the client goes away.
    """
    position = 0
    pending = ""
    while True:
        with open(log_path, "r", encoding="utf-8", errors="replace") as f:
            f.seek(0, 2)
            if f.tell() < position:
                # Rotated or truncated
                position = 0
            f.seek(position)
            chunk = f.read()
            position = f.tell()

        pending += chunk
        *lines, pending = pending.split("\n")
        for line in lines:
            if line.strip():
                yield f"data: {line}\n\n"

        if await request.is_disconnected():
            break
        await asyncio.sleep(poll_interval)


@router.get("/stream")
async def stream_audit_log(
    request: Request,
    _user: str = Depends(require_basic_auth),
    config: Settings = Depends(get_settings),
):
    """
    Live Server-Sent Events feed of the audit log.
    """
    log_path = _existing_log(config)
    return StreamingResponse(
        follow_log(request, log_path),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
