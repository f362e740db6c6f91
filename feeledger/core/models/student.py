import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class Student(Base):
    """Enrolled student. class_name/section are free text as entered by the school office."""

    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("school_id", "admission_no", name="uq_student_school_admission_no"),
        {"schema": "core"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    admission_no = Column(String(50), nullable=False)
    student_name = Column(String(255), nullable=False)
    class_name = Column(String(50), nullable=False)
    section = Column(String(20), nullable=True)
    roll_number = Column(String(20), nullable=True)
    academic_year = Column(String(20), nullable=True)  # e.g. "2026-2027"
    parent_contact = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active, inactive, alumni
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    school = relationship("School", back_populates="students")
