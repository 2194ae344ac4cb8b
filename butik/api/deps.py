"""
API dependencies

Authentication is a Bearer JWT minted by the auth collaborator. The token
carries the user id in `sub` and the role; the user must still exist.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from butik.core.database import get_db
from butik.core.security import decode_token
from butik.models import User, ADMIN_ROLES

# Optional bearer - lets us answer with our own 401 envelope
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def scope_user_id(self) -> Optional[int]:
        """Owner restriction for queries: None for admins, own id otherwise."""
        return None if self.is_admin else self.id


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise credentials_exception

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type", "access") != "access":
        raise credentials_exception

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User.id, User.role).where(User.id == user_id))
    row = result.first()
    if row is None:
        raise credentials_exception

    # Role in the database wins over the token's claim
    return CurrentUser(id=row.id, role=row.role)


async def get_current_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
