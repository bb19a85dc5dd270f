from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .backend import BackendClient
from .schemas import AuthContext
from .services import SessionGate

bearer_scheme = HTTPBearer(auto_error=False)


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_gate(backend: BackendClient = Depends(get_backend)) -> SessionGate:
    return SessionGate(backend)


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    gate: SessionGate = Depends(get_gate),
) -> Optional[AuthContext]:
    if credentials is None:
        return None
    return await gate.resolve(credentials.credentials)


async def require_auth_context(
    context: Optional[AuthContext] = Depends(get_auth_context),
) -> AuthContext:
    if context is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return context
