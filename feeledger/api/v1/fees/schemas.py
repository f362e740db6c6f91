"""Fees schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from feeledger.core.enums import AdjustmentType, FeeFrequency, LateFeeType, PaymentMode
from feeledger.core.ledger import FeeTotals
from feeledger.core.schemas import PaymentRecord


# --- Fee Heads ---
class FeeHeadCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    is_optional: bool = False

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class FeeHeadUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_optional: Optional[bool] = None
    is_active: Optional[bool] = None


class FeeHeadResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    description: Optional[str] = None
    is_optional: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# --- Fee Structures ---
class FeeStructureItemCreate(BaseModel):
    fee_head_id: UUID
    amount: Decimal = Field(..., ge=0)


class FeeStructureCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., min_length=1, max_length=50)
    section: Optional[str] = None
    academic_year: Optional[str] = None
    start_month: int = Field(..., ge=1, le=12)
    end_month: int = Field(..., ge=1, le=12)
    frequency: FeeFrequency
    payment_due_day: Optional[int] = Field(None, ge=1, le=31)
    late_fee_type: Optional[LateFeeType] = None
    late_fee_value: Decimal = Field(Decimal("0"), ge=0)
    grace_period_days: int = Field(0, ge=0)
    items: List[FeeStructureItemCreate] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_heads(self) -> "FeeStructureCreate":
        head_ids = [item.fee_head_id for item in self.items]
        if len(head_ids) != len(set(head_ids)):
            raise ValueError("Each fee head can appear only once in a structure")
        return self


class FeeStructureItemResponse(BaseModel):
    id: UUID
    fee_head_id: UUID
    fee_head_name: Optional[str] = None
    amount: Decimal


class FeeStructureResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    class_name: str
    section: Optional[str] = None
    academic_year: Optional[str] = None
    start_month: int
    end_month: int
    frequency: str
    payment_due_day: Optional[int] = None
    late_fee_type: Optional[str] = None
    late_fee_value: Decimal
    grace_period_days: int
    is_active: bool
    created_at: datetime
    items: List[FeeStructureItemResponse] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")


class GenerateFeesResponse(BaseModel):
    structure_id: UUID
    students_processed: int
    fees_generated: int
    months_generated: int
    skipped: int
    warning: Optional[str] = None


# --- Student Fees ---
class StudentFeeResponse(BaseModel):
    id: UUID
    student_id: UUID
    fee_structure_id: UUID
    fee_structure_name: Optional[str] = None
    due_month: date
    due_date: date
    base_amount: Decimal
    adjustment_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    late_fee: Decimal
    total_due: Decimal
    status: str
    display_status: str


class StudentSummary(BaseModel):
    id: UUID
    admission_no: str
    student_name: str
    class_name: str
    section: Optional[str] = None
    academic_year: Optional[str] = None

    class Config:
        from_attributes = True


class StudentStatementResponse(BaseModel):
    student: StudentSummary
    fees: List[StudentFeeResponse]
    payments: List[PaymentRecord]
    totals: FeeTotals


# --- Adjustments ---
class AdjustmentCreate(BaseModel):
    student_fee_id: UUID
    amount: Decimal = Field(..., description="Negative lowers the fee (discount, waiver); positive raises it (fine)")
    adjustment_type: AdjustmentType
    reason: str = Field(..., min_length=1)

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("amount must not be zero")
        return v

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason is required")
        return v


class AdjustmentResponse(BaseModel):
    id: UUID
    student_fee_id: UUID
    amount: Decimal
    adjustment_type: str
    reason: str
    status: str
    created_by: Optional[UUID] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Payments ---
class AllocationCreate(BaseModel):
    student_fee_id: UUID
    allocated_amount: Decimal = Field(..., gt=0)


class PaymentCreate(BaseModel):
    student_id: UUID
    amount: Decimal = Field(..., gt=0)
    payment_mode: PaymentMode
    payment_date: Optional[date] = None
    reference_no: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None
    allocations: List[AllocationCreate] = Field(..., min_length=1)

    @field_validator("payment_mode", mode="before")
    @classmethod
    def _upper_mode(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class PaymentReverse(BaseModel):
    reason: str = Field(..., min_length=1)


class AllocationResponse(BaseModel):
    student_fee_id: UUID
    allocated_amount: Decimal


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    amount: Decimal
    payment_mode: str
    reference_no: Optional[str] = None
    payment_date: date
    remarks: Optional[str] = None
    is_reversed: bool
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None
    receipt_no: Optional[str] = None
    allocations: List[AllocationResponse] = Field(default_factory=list)
    created_at: datetime
