import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from ..core.exceptions import AuthRequiredError, BackendError
from ..dependencies import get_gate, require_auth_context
from ..schemas import AuthContext, LoginRequest, SignUpRequest, TokenResponse
from ..services import SessionGate

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/signup", response_model=TokenResponse, status_code=201)
async def sign_up(payload: SignUpRequest, gate: SessionGate = Depends(get_gate)):
    if not payload.email.strip() or not payload.password:
        raise HTTPException(400, "Email and password are required")
    try:
        context = await gate.sign_up(payload.email, payload.password, payload.username)
    except BackendError as exc:
        raise HTTPException(400, str(exc))
    return TokenResponse(access_token=context.access_token, user=context.user)


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, gate: SessionGate = Depends(get_gate)):
    try:
        context = await gate.sign_in(payload.email, payload.password)
    except AuthRequiredError as exc:
        raise HTTPException(401, str(exc))
    except BackendError:
        logger.exception("Backend error during login")
        raise HTTPException(500, "Unexpected server error")
    return TokenResponse(access_token=context.access_token, user=context.user)


@router.post("/logout", status_code=204)
async def logout(
    context: AuthContext = Depends(require_auth_context),
    gate: SessionGate = Depends(get_gate),
):
    try:
        await gate.sign_out(context)
    except BackendError:
        logger.exception("Backend error during logout")
        raise HTTPException(500, "Failed to sign out")
    return Response(status_code=204)
