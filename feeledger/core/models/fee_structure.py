"""Fee structure: a named bundle of fee heads for a class/section/academic year."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from feeledger.db.session import Base


class FeeStructure(Base):
    """Billing schedule for a class. Student fees are generated from it once it is active."""

    __tablename__ = "fee_structures"
    __table_args__ = (
        CheckConstraint("start_month BETWEEN 1 AND 12", name="chk_fee_structure_start_month"),
        CheckConstraint("end_month BETWEEN 1 AND 12", name="chk_fee_structure_end_month"),
        CheckConstraint(
            "frequency IN ('monthly','quarterly','yearly')",
            name="chk_fee_structure_frequency",
        ),
        {"schema": "fees"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    class_name = Column(String(50), nullable=False)
    section = Column(String(20), nullable=True)  # null = all sections
    academic_year = Column(String(20), nullable=True)
    start_month = Column(Integer, nullable=False)
    end_month = Column(Integer, nullable=False)
    frequency = Column(String(20), nullable=False)
    payment_due_day = Column(Integer, nullable=True)
    late_fee_type = Column(String(20), nullable=True)  # flat, per_day, percentage
    late_fee_value = Column(Numeric(12, 2), nullable=False, default=0)
    grace_period_days = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, ForeignKey("auth.users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school = relationship("School")
    items = relationship(
        "FeeStructureItem",
        back_populates="fee_structure",
        cascade="all, delete-orphan",
        order_by="FeeStructureItem.created_at",
    )


class FeeStructureItem(Base):
    """One fee head line inside a structure. Sibling amounts sum to the structure's nominal total."""

    __tablename__ = "fee_structure_items"
    __table_args__ = (
        UniqueConstraint("fee_structure_id", "fee_head_id", name="uq_fee_structure_item_head"),
        {"schema": "fees"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fees.fee_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fee_head_id = Column(Uuid, ForeignKey("fees.fee_heads.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    fee_structure = relationship("FeeStructure", back_populates="items")
    fee_head = relationship("FeeHead")
