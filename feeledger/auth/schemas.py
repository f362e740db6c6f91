from datetime import datetime
from typing import Dict
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    school_code: str = Field(..., min_length=1)
    email: EmailStr
    password: str


class UserInfo(BaseModel):
    id: UUID
    name: str
    email: EmailStr
    role: str


class SchoolInfo(BaseModel):
    id: UUID
    school_code: str
    school_name: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserInfo
    school: SchoolInfo
    issued_at: datetime


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks."""

    id: UUID
    school_id: UUID
    school_code: str
    role: str
    permissions: Dict[str, Dict[str, bool]]
