"""
FastAPI Dependencies
Shared dependencies for authentication and database access.

User tokens are issued by the household app's auth service and signed with the
shared secret; this service only verifies them.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from chorecal.core.config import settings
from chorecal.core.exceptions import AuthenticationError
from chorecal.database import get_db
from chorecal.models import User

ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """Claims extracted from a user access token."""

    user_id: UUID
    exp: Optional[datetime] = None


def decode_token(token: str) -> TokenData:
    """Decode and validate a JWT token."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    user_id = payload.get("sub")
    if user_id is None:
        raise JWTError("Token missing subject")

    exp = payload.get("exp")
    try:
        return TokenData(
            user_id=UUID(str(user_id)),
            exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )
    except ValueError as e:
        raise JWTError("Token subject is not a user id") from e


# =============================================================================
# Database Dependency
# =============================================================================

AsyncSessionDep = Annotated[AsyncSession, Depends(get_db)]


# =============================================================================
# Authentication Dependencies
# =============================================================================

async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: AsyncSessionDep,
) -> User:
    """
    Get the current authenticated user from JWT token.

    Raises AuthenticationError (401) if not authenticated.
    """
    if credentials is None:
        raise AuthenticationError()

    try:
        token_data = decode_token(credentials.credentials)
    except JWTError:
        raise AuthenticationError()

    if token_data.exp and token_data.exp < datetime.now(timezone.utc):
        raise AuthenticationError("Token has expired")

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise AuthenticationError()

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
