"""Typed records consumed by the ledger and reporting computations.

ORM rows are validated into these models at the service boundary so that the
arithmetic never sees a missing amount: every numeric field is coerced to
Decimal and None becomes 0.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def to_decimal(val) -> Decimal:
    if val is None or val == "":
        return Decimal("0")
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except InvalidOperation:
        return Decimal("0")


class _AmountModel(BaseModel):
    class Config:
        from_attributes = True


class FeeRecord(_AmountModel):
    """A student fee row (one billed month of one fee structure)."""

    id: UUID
    student_id: Optional[UUID] = None
    fee_structure_id: Optional[UUID] = None
    base_amount: Decimal = Decimal("0")
    adjustment_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    due_date: Optional[date] = None
    due_month: Optional[date] = None
    status: Optional[str] = None

    @field_validator("base_amount", "adjustment_amount", "paid_amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return to_decimal(v)


class FeeStructureLine(_AmountModel):
    """One fee head inside a fee structure, flattened with the head's display fields."""

    fee_structure_id: Optional[UUID] = None
    fee_head_id: Optional[UUID] = None
    amount: Decimal = Decimal("0")
    name: Optional[str] = None
    description: Optional[str] = None
    is_optional: bool = False

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return to_decimal(v)

    @field_validator("is_optional", mode="before")
    @classmethod
    def _optional(cls, v):
        return bool(v)


class AllocationRecord(_AmountModel):
    student_fee_id: UUID
    allocated_amount: Decimal = Decimal("0")

    @field_validator("allocated_amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return to_decimal(v)


class PaymentRecord(_AmountModel):
    """A payment with its allocations. Student display fields are filled in for reports."""

    id: UUID
    student_id: UUID
    amount: Decimal = Decimal("0")
    payment_mode: str = "CASH"
    payment_date: Optional[date] = None
    is_reversed: bool = False
    receipt_no: Optional[str] = None
    allocations: List[AllocationRecord] = Field(default_factory=list)

    student_name: Optional[str] = None
    admission_no: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return to_decimal(v)

    @field_validator("is_reversed", mode="before")
    @classmethod
    def _reversed(cls, v):
        return bool(v)


class InstallmentRecord(_AmountModel):
    id: UUID
    student_id: UUID
    student_fee_id: Optional[UUID] = None
    installment_number: int = 1
    due_date: date
    amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    fine_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    status: Optional[str] = None

    student_name: Optional[str] = None
    admission_no: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    fee_name: Optional[str] = None

    @field_validator("amount", "discount_amount", "fine_amount", "paid_amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return to_decimal(v)


class StudentRecord(_AmountModel):
    id: UUID
    class_name: Optional[str] = None
    section: Optional[str] = None
    academic_year: Optional[str] = None
