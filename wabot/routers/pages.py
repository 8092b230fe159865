import os
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from wabot import config
from wabot.dependencies import get_supervisor
from wabot.schemas import ConnectionStatusOut
from wabot.supervisor import ConnectionSupervisor

router = APIRouter(tags=["Pages"])


@router.get("/", include_in_schema=False)
def landing_page():
    return FileResponse(os.path.join(config.CLIENT_DIR, "index.html"))


@router.get("/scan", include_in_schema=False)
def scan_page():
    return FileResponse(os.path.join(config.CLIENT_DIR, "server.html"))


@router.get("/api/status", response_model=ConnectionStatusOut, tags=["Session"])
def connection_status(supervisor: ConnectionSupervisor = Depends(get_supervisor)):
    return ConnectionStatusOut(
        phase=supervisor.phase.value,
        state=supervisor.state.value,
        has_qr=supervisor.connection.qr is not None,
        reconnect_attempts=supervisor.reconnect_attempts,
    )


@router.post("/api/session/reset", tags=["Session"])
async def reset_session(supervisor: ConnectionSupervisor = Depends(get_supervisor)):
    """Delete the paired device's credentials and show a fresh QR."""
    await supervisor.reset_session()
    return {"status": True, "response": "Session reset, scan the new QR code."}
