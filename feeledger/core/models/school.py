import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class School(Base):
    """
    Tenant (school) in the multi-tenant platform.

    - id: Internal primary key. Used for all FKs and internal logic.
    - school_code: External, human-readable identifier (e.g. SCH001), stored upper-case.
      Callers address a school by its code; it is never used as a foreign key.
    """

    __tablename__ = "schools"
    __table_args__ = {"schema": "core"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_code = Column(String(20), unique=True, nullable=False, index=True)
    school_name = Column(String(255), nullable=False)
    school_address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)
    school_phone = Column(String(50), nullable=True)
    school_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    students = relationship("Student", back_populates="school")
