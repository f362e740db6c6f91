import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class User(Base):
    """Staff login within a school (accountant, teacher, administrator)."""

    __tablename__ = "users"
    __table_args__ = (
        # Email must be unique per school
        UniqueConstraint("school_id", "email", name="uq_user_school_email"),
        {"schema": "auth"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id"), nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    password_hash = Column(Text, nullable=False)
    # SUPER_ADMIN, ADMIN, ACCOUNTANT, TEACHER, STAFF; resolved to auth.roles by name
    role = Column(String(50), nullable=False)
    staff_id = Column(String(50), nullable=True)  # school-issued employee number, display only
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    school = relationship("School")


class Role(Base):
    """School-scoped role with JSON permissions."""

    __tablename__ = "roles"
    __table_args__ = (
        # Role name must be unique within a school
        UniqueConstraint("school_id", "name", name="uq_role_school_name"),
        {"schema": "auth"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id"), nullable=False)
    name = Column(String(100), nullable=False)
    # Example shape:
    # {
    #   "fees": {"create": true, "read": true, "update": false},
    #   "reports": {"read": true}
    # }
    permissions = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
