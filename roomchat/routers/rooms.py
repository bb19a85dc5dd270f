import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from ..backend import BackendClient
from ..core.exceptions import AuthRequiredError
from ..dependencies import get_auth_context, get_backend, get_gate, require_auth_context
from ..schemas import AuthContext, SendMessageRequest
from ..services import RoomSession, SessionGate

router = APIRouter(tags=["rooms"])
logger = logging.getLogger(__name__)


@router.get("/room/{room_id}")
async def get_room(
    room_id: str,
    context: Optional[AuthContext] = Depends(get_auth_context),
    backend: BackendClient = Depends(get_backend),
    gate: SessionGate = Depends(get_gate),
):
    decision = gate.route(f"/room/{room_id}", context)
    if decision.redirect_to:
        return RedirectResponse(decision.redirect_to)

    try:
        async with RoomSession(backend, context, room_id) as session:
            if session.redirect_to or session.room is None:
                return RedirectResponse(session.redirect_to or "/")
            return session.view()

    except HTTPException:
        raise

    except Exception:
        logger.exception(f"Unexpected error in get_room for room {room_id}")
        raise HTTPException(500, "Unexpected server error")


@router.post("/room/{room_id}/messages", status_code=201)
async def send_message(
    room_id: str,
    payload: SendMessageRequest,
    context: AuthContext = Depends(require_auth_context),
    backend: BackendClient = Depends(get_backend),
):
    if not payload.content.strip():
        raise HTTPException(400, "Message is empty")

    try:
        session = RoomSession(backend, context, room_id)
        if not await session.send(payload.content):
            if isinstance(session.error, AuthRequiredError):
                raise HTTPException(401, str(session.error))
            raise HTTPException(502, "Failed to send message")
        return {"status": "sent"}

    except HTTPException:
        raise

    except Exception:
        logger.exception(f"Unexpected error in send_message for room {room_id}")
        raise HTTPException(500, "Unexpected server error")


@router.delete("/room/{room_id}")
async def delete_room(
    room_id: str,
    confirm: bool = Query(False),
    context: AuthContext = Depends(require_auth_context),
    backend: BackendClient = Depends(get_backend),
):
    session = RoomSession(backend, context, room_id)
    try:
        await session.load()
        if session.room is None:
            raise HTTPException(404, "Room not found")
        if not session.can_delete:
            raise HTTPException(403, "Only the room creator can delete it")
        if not confirm:
            raise HTTPException(400, "Deletion must be confirmed")

        if not await session.delete_room(lambda prompt: confirm):
            raise HTTPException(502, session.alert or "Failed to delete the room")
        return {"status": "deleted", "redirect": session.redirect_to}

    except HTTPException:
        raise

    except Exception:
        logger.exception(f"Unexpected error in delete_room for room {room_id}")
        raise HTTPException(500, "Unexpected server error")

    finally:
        await session.close()
