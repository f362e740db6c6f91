import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.models import User
from feeledger.auth.schemas import LoginRequest, LoginResponse, SchoolInfo, UserInfo
from feeledger.auth.security import create_access_token, verify_password
from feeledger.core.exceptions import ServiceError
from feeledger.core.models import School

logger = logging.getLogger(__name__)


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    school_stmt = select(School).where(func.upper(School.school_code) == payload.school_code.strip().upper())
    school: Optional[School] = (await db.execute(school_stmt)).scalar_one_or_none()
    if not school:
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)
    if not school.is_active:
        raise ServiceError("School is inactive", status.HTTP_403_FORBIDDEN)

    # Email is unique per school, compared case-insensitively
    user_stmt = select(User).where(
        User.school_id == school.id,
        func.lower(User.email) == func.lower(payload.email),
    )
    user: Optional[User] = (await db.execute(user_stmt)).scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s at %s", payload.email, school.school_code)
        raise ServiceError("Invalid credentials", status.HTTP_401_UNAUTHORIZED)

    if user.status != "ACTIVE":
        raise ServiceError("User is inactive", status.HTTP_403_FORBIDDEN)

    issued_at = datetime.now(timezone.utc)
    access_token = create_access_token(
        subject={
            "sub": str(user.id),
            "user_id": str(user.id),
            "school_id": str(school.id),
            "school_code": school.school_code,
            "role": user.role,
            "iat": int(issued_at.timestamp()),
        }
    )

    return LoginResponse(
        access_token=access_token,
        user=UserInfo(id=user.id, name=user.full_name, email=user.email, role=user.role),
        school=SchoolInfo(id=school.id, school_code=school.school_code, school_name=school.school_name),
        issued_at=issued_at,
    )
