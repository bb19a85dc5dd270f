import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from ..core.exceptions import AuthRequiredError
from ..services import RoomSession, SessionGate

router = APIRouter()
logger = logging.getLogger(__name__)

UNAUTHENTICATED_CLOSE_CODE = 4401


async def _forward_inserts(websocket: WebSocket, session: RoomSession):
    try:
        async for message in session.stream():
            await websocket.send_json({
                "type": "MESSAGE_INSERT",
                "message": jsonable_encoder(session.message_view(message)),
            })
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(f"Stopped forwarding messages for room {session.room_id}")


@router.websocket("/ws/room/{room_id}")
async def room_socket(websocket: WebSocket, room_id: str, token: Optional[str] = Query(None)):
    backend = websocket.app.state.backend
    context = await SessionGate(backend).resolve(token)

    await websocket.accept()
    if context is None:
        await websocket.close(code=UNAUTHENTICATED_CLOSE_CODE)
        return

    session = RoomSession(backend, context, room_id)
    forwarder = None
    try:
        await session.enter()
        if session.redirect_to or session.room is None:
            await websocket.send_json({"type": "REDIRECT", "to": session.redirect_to or "/"})
            await websocket.close()
            return

        await websocket.send_json({"type": "ROOM_STATE", "room": jsonable_encoder(session.view())})
        forwarder = asyncio.create_task(_forward_inserts(websocket, session))

        while True:
            try:
                raw = await websocket.receive_text()
                data = json.loads(raw)
            except WebSocketDisconnect:
                break
            except json.JSONDecodeError:
                await websocket.send_json({"type": "ERROR", "detail": "Invalid JSON"})
                continue
            except Exception:
                logger.exception(f"Error in websocket loop for room {room_id}")
                break

            msg_type = data.get("type") if isinstance(data, dict) else None

            if msg_type == "SEND_MESSAGE":
                content = data.get("content")
                if not isinstance(content, str):
                    await websocket.send_json({"type": "ERROR", "detail": "Invalid message"})
                    continue
                sent = await session.send(content)
                if not sent and session.error is not None:
                    detail = "Failed to send message"
                    if isinstance(session.error, AuthRequiredError):
                        detail = str(session.error)
                    await websocket.send_json({"type": "ERROR", "detail": detail})

            elif msg_type == "TOGGLE_PARTICIPANTS":
                await websocket.send_json({
                    "type": "PARTICIPANTS",
                    "visible": session.toggle_participants(),
                    "participants": jsonable_encoder(session.participant_views()),
                })

            else:
                logger.warning(f"Unknown message type {msg_type!r} on room {room_id}")

    finally:
        if forwarder is not None:
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
        await session.close()
