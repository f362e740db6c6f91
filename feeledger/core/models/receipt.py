"""Receipt issued for a payment, with an immutable JSON snapshot of what was printed."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class Receipt(Base):
    __tablename__ = "receipts"
    __table_args__ = {"schema": "fees"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    # <SCHOOL_CODE>/REC/<YEAR>/<SEQ>; sequence restarts every calendar year
    receipt_no = Column(String(60), nullable=False, unique=True)
    student_id = Column(Uuid, ForeignKey("core.students.id", ondelete="CASCADE"), nullable=False)
    payment_id = Column(Uuid, ForeignKey("fees.payments.id", ondelete="CASCADE"), nullable=False, unique=True)
    issued_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    issued_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    receipt_data = Column(JSON, nullable=True)
    is_cancelled = Column(Boolean, nullable=False, default=False)

    payment = relationship("Payment", back_populates="receipt")
