"""Payments and their allocations across student fees."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class Payment(Base):
    """Money received from a student. Reversal is a flag, never a delete."""

    __tablename__ = "payments"
    __table_args__ = {"schema": "fees"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("core.students.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_mode = Column(String(30), nullable=False)  # CASH, UPI, CARD, BANK, CHEQUE, ONLINE
    reference_no = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=False, index=True)
    collected_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    remarks = Column(Text, nullable=True)
    is_reversed = Column(Boolean, nullable=False, default=False)
    reversed_at = Column(DateTime(timezone=True), nullable=True)
    reversed_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    reversal_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student = relationship("Student")
    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )
    receipt = relationship("Receipt", back_populates="payment", uselist=False)


class PaymentAllocation(Base):
    """How much of a payment was applied to one student fee."""

    __tablename__ = "payment_allocations"
    __table_args__ = {"schema": "fees"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("fees.payments.id", ondelete="CASCADE"), nullable=False, index=True)
    student_fee_id = Column(
        Uuid,
        ForeignKey("fees.student_fees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    allocated_amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="allocations")
    student_fee = relationship("StudentFee")
