from typing import Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.models import Role, User
from feeledger.auth.schemas import CurrentUser
from feeledger.core.config import settings
from feeledger.core.models import School
from feeledger.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user, their school and their permissions from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    school_id_str = payload.get("school_id")
    if not user_id_str or not school_id_str:
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
        school_id = UUID(school_id_str)
    except ValueError:
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id, User.school_id == school_id))
    user: Optional[User] = result.scalar_one_or_none()
    if not user or user.status != "ACTIVE":
        raise credentials_exception

    school = await db.get(School, school_id)
    if not school or not school.is_active:
        raise credentials_exception

    # Role permissions are school-scoped and looked up by the user's role name
    role_result = await db.execute(select(Role).where(Role.school_id == school_id, Role.name == user.role))
    role = role_result.scalar_one_or_none()

    permissions: Dict[str, Dict[str, bool]] = {}
    if role and role.permissions:
        permissions = role.permissions  # type: ignore[assignment]

    return CurrentUser(
        id=user.id,
        school_id=user.school_id,
        school_code=school.school_code,
        role=user.role,
        permissions=permissions,
    )


def ensure_school_access(current_user: CurrentUser, school_code: Optional[str]) -> None:
    """Reject a request that names a school other than the caller's own."""
    if school_code and school_code.strip().upper() != current_user.school_code.upper():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access to this school is not allowed",
        )
