"""Assembles receipt documents from ledger records. No markup here; see renderer.py."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.ledger import (
    FeeTotals,
    allocate_proportionally,
    fee_balance,
    fee_status,
    match_payments,
    summarize_fees,
)
from feeledger.core.schemas import FeeRecord, FeeStructureLine, PaymentRecord, to_decimal
from feeledger.receipts.formatting import amount_in_words


class SchoolHeader(BaseModel):
    school_code: Optional[str] = None
    school_name: Optional[str] = None
    school_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    school_phone: Optional[str] = None
    school_email: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def location(self) -> str:
        return ", ".join(part for part in (self.city, self.state, self.zip_code) if part)


class StudentBlock(BaseModel):
    id: Optional[UUID] = None
    student_name: Optional[str] = None
    admission_no: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    roll_number: Optional[str] = None

    class Config:
        from_attributes = True


class HeadLine(BaseModel):
    name: str
    description: Optional[str] = None
    is_optional: bool = False
    amount: Decimal
    allocated: Decimal


class FeeSection(BaseModel):
    fee_id: UUID
    title: str
    due_month: Optional[date] = None
    due_date: Optional[date] = None
    status: str
    base_amount: Decimal
    adjustment_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    heads: List[HeadLine] = Field(default_factory=list)


class PaymentLine(BaseModel):
    receipt_no: Optional[str] = None
    payment_date: Optional[date] = None
    payment_mode: str
    amount: Decimal


class ReceiptDocument(BaseModel):
    school: SchoolHeader
    student: StudentBlock
    receipt_date: date
    generated_at: datetime
    sections: List[FeeSection]
    totals: FeeTotals
    payments: List[PaymentLine] = Field(default_factory=list)


class AllocationLine(BaseModel):
    fee_name: str
    due_month: Optional[date] = None
    allocated_amount: Decimal


class PaymentReceiptDocument(BaseModel):
    school: SchoolHeader
    student: StudentBlock
    receipt_no: Optional[str] = None
    receipt_date: date
    payment_date: Optional[date] = None
    payment_mode: str
    reference_no: Optional[str] = None
    collected_by: Optional[str] = None
    amount: Decimal
    amount_in_words: str
    lines: List[AllocationLine] = Field(default_factory=list)
    generated_at: datetime


def build_head_lines(lines: Sequence[FeeStructureLine], base_amount) -> List[HeadLine]:
    shares = allocate_proportionally(lines, base_amount)
    return [
        HeadLine(
            name=line.name or "Fee Head",
            description=line.description,
            is_optional=line.is_optional,
            amount=to_decimal(line.amount),
            allocated=share,
        )
        for line, share in zip(lines, shares)
    ]


def build_fee_receipt(
    school: SchoolHeader,
    student: StudentBlock,
    fees: Sequence[FeeRecord],
    payments: Sequence[PaymentRecord],
    lines_by_structure: Dict[UUID, List[FeeStructureLine]],
    structure_names: Dict[UUID, str],
    generated_at: datetime,
) -> ReceiptDocument:
    """Receipt covering a set of student fees, with the payments allocated to them."""
    sections = []
    for fee in fees:
        lines = lines_by_structure.get(fee.fee_structure_id, []) if fee.fee_structure_id else []
        sections.append(
            FeeSection(
                fee_id=fee.id,
                title=structure_names.get(fee.fee_structure_id) or "Fee",
                due_month=fee.due_month,
                due_date=fee.due_date,
                status=fee_status(fee),
                base_amount=to_decimal(fee.base_amount),
                adjustment_amount=to_decimal(fee.adjustment_amount),
                paid_amount=to_decimal(fee.paid_amount),
                balance=fee_balance(fee),
                heads=build_head_lines(lines, fee.base_amount),
            )
        )

    relevant = match_payments(payments, [fee.id for fee in fees])
    return ReceiptDocument(
        school=school,
        student=student,
        receipt_date=generated_at.date(),
        generated_at=generated_at,
        sections=sections,
        totals=summarize_fees(fees),
        payments=[
            PaymentLine(
                receipt_no=p.receipt_no,
                payment_date=p.payment_date,
                payment_mode=p.payment_mode or "Cash",
                amount=to_decimal(p.amount),
            )
            for p in relevant
        ],
    )


def build_payment_receipt(
    school: SchoolHeader,
    student: StudentBlock,
    payment: PaymentRecord,
    lines: Sequence[AllocationLine],
    issued_at: Optional[datetime],
    generated_at: datetime,
    reference_no: Optional[str] = None,
    collected_by: Optional[str] = None,
) -> PaymentReceiptDocument:
    """Receipt for a single payment, listing where it was applied."""
    amount = to_decimal(payment.amount)
    receipt_date = issued_at.date() if issued_at else (payment.payment_date or generated_at.date())
    return PaymentReceiptDocument(
        school=school,
        student=student,
        receipt_no=payment.receipt_no,
        receipt_date=receipt_date,
        payment_date=payment.payment_date,
        payment_mode=payment.payment_mode,
        reference_no=reference_no,
        collected_by=collected_by,
        amount=amount,
        amount_in_words=amount_in_words(amount),
        lines=list(lines),
        generated_at=generated_at,
    )
