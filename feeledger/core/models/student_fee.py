"""Student fee: one billing period of a fee structure for one student. Never deleted."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import StudentFeeStatus
from feeledger.db.session import Base


class StudentFee(Base):
    """
    Fee record owed by a student for one due month.
    balance = base_amount + adjustment_amount - paid_amount; adjustments are additive deltas.
    """

    __tablename__ = "student_fees"
    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "fee_structure_id",
            "due_month",
            name="uq_student_fee_structure_month",
        ),
        CheckConstraint(
            "status IN ('pending','partial','paid','overdue')",
            name="chk_student_fee_status",
        ),
        {"schema": "fees"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("core.students.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fees.fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
    )
    base_amount = Column(Numeric(12, 2), nullable=False)
    adjustment_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    due_month = Column(Date, nullable=False)  # first day of the billed month
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=StudentFeeStatus.pending.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    fee_structure = relationship("FeeStructure")
