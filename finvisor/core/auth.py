from typing import Optional

from fastapi import Depends, HTTPException, WebSocket, WebSocketException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from finvisor.core.config import settings

security = HTTPBearer()


class CurrentUser(BaseModel):
    """Identity carried by an access token issued by the auth platform."""
    id: str
    email: Optional[str] = None
    token: str


def decode_access_token(token: str) -> CurrentUser:
    """Verify a platform access token and return its user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE
        )
    except JWTError:
        raise credentials_exception

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    return CurrentUser(id=user_id, email=payload.get("email"), token=token)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """Get current user from the bearer token."""
    return decode_access_token(credentials.credentials)


async def get_websocket_user(websocket: WebSocket) -> CurrentUser:
    """Browsers cannot set headers on WebSockets; the token comes in the query string."""
    token = websocket.query_params.get("token", "")
    try:
        return decode_access_token(token)
    except HTTPException as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.detail)
