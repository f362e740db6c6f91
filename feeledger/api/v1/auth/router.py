from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.schemas import LoginRequest, LoginResponse
from feeledger.auth.services import ServiceError, login_user
from feeledger.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    try:
        return await login_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """OAuth2 password form for the interactive docs. Username is `SCHOOL_CODE:email`."""
    school_code, _, email = form_data.username.partition(":")
    if not email:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail="Username must be SCHOOL_CODE:email")
    payload = LoginRequest(school_code=school_code.strip(), email=email.strip(), password=form_data.password)
    try:
        result = await login_user(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
    }
