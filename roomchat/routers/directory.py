import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..backend import BackendClient
from ..core.exceptions import AuthRequiredError
from ..dependencies import get_auth_context, get_backend, get_gate, require_auth_context
from ..schemas import AuthContext, CreateRoomRequest, DirectoryView
from ..services import RoomDirectory, SessionGate
from ..services.gate import LOGIN

router = APIRouter(tags=["directory"])
logger = logging.getLogger(__name__)


@router.get("/")
async def index(
    context: Optional[AuthContext] = Depends(get_auth_context),
    backend: BackendClient = Depends(get_backend),
    gate: SessionGate = Depends(get_gate),
):
    decision = gate.route("/", context)
    if decision.view == LOGIN:
        return {"view": LOGIN}

    try:
        directory = RoomDirectory(backend, context)
        await directory.refresh()
        return directory.view()

    except HTTPException:
        raise

    except Exception:
        logger.exception("Unexpected error in index")
        raise HTTPException(500, "Unexpected server error")


@router.post("/rooms", response_model=DirectoryView, status_code=201)
async def create_room(
    payload: CreateRoomRequest,
    context: AuthContext = Depends(require_auth_context),
    backend: BackendClient = Depends(get_backend),
):
    try:
        directory = RoomDirectory(backend, context)
        dialog = directory.creation_dialog()
        dialog.name = payload.name
        dialog.type = payload.type
        dialog.category = payload.category or ""
        dialog.max_participants = payload.max_participants

        if not await dialog.submit():
            status = 401 if isinstance(dialog.failure, AuthRequiredError) else 400
            raise HTTPException(status, dialog.error)

        return directory.view()

    except HTTPException:
        raise

    except Exception:
        logger.exception("Unexpected error in create_room")
        raise HTTPException(500, "Unexpected server error")
