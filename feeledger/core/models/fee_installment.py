"""Fee installment: scheduled obligation kept alongside a student fee for pending/overdue reporting."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import InstallmentStatus
from feeledger.db.session import Base


class FeeInstallment(Base):
    """pending_amount = amount - discount_amount + fine_amount - paid_amount (computed on read)."""

    __tablename__ = "fee_installments"
    __table_args__ = {"schema": "fees"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("core.students.id", ondelete="CASCADE"), nullable=False, index=True)
    student_fee_id = Column(
        Uuid,
        ForeignKey("fees.student_fees.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    installment_number = Column(Integer, nullable=False, default=1)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    fine_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=InstallmentStatus.pending.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    student_fee = relationship("StudentFee", backref="installments")
