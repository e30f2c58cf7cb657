import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chore_anchors.logging_config import get_logger

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def require_api_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Reject requests that do not carry the configured bearer token"""
    expected = request.app.state.settings.api_token
    token = credentials.credentials if credentials else ""

    if not token or not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Unauthorized access attempt on %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
