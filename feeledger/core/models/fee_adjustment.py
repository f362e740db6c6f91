"""Fee adjustment request: signed delta applied to a student fee once approved."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from feeledger.core.enums import AdjustmentStatus
from feeledger.db.session import Base


class FeeAdjustment(Base):
    """Negative amount lowers what is owed (discount, waiver); positive raises it (fine)."""

    __tablename__ = "fee_adjustments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','approved','rejected')",
            name="chk_fee_adjustment_status",
        ),
        {"schema": "fees"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_fee_id = Column(
        Uuid,
        ForeignKey("fees.student_fees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    adjustment_type = Column(String(30), nullable=False)  # discount, fine, waiver, correction
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=AdjustmentStatus.pending.value)
    created_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    student_fee = relationship("StudentFee")
