"""Receipt service: loads ledger rows for a student or a payment and renders the two-copy HTML receipt."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from feeledger.api.v1.fees.service import load_payment_records, load_structure_lines
from feeledger.auth.models import User
from feeledger.core.exceptions import ServiceError
from feeledger.core.ledger import stored_status
from feeledger.core.models import FeeStructure, Payment, School, Student, StudentFee
from feeledger.core.schemas import FeeRecord, PaymentRecord
from feeledger.receipts.builder import (
    AllocationLine,
    SchoolHeader,
    StudentBlock,
    build_fee_receipt,
    build_payment_receipt,
)
from feeledger.receipts.renderer import render_fee_receipt, render_payment_receipt

from .schemas import ReceiptDownloadRequest


async def _school_by_code(db: AsyncSession, school_code: str) -> School:
    school = (
        await db.execute(select(School).where(func.upper(School.school_code) == school_code.strip().upper()))
    ).scalar_one_or_none()
    if not school:
        raise ServiceError("School not found", status.HTTP_404_NOT_FOUND)
    return school


def _current(record: FeeRecord, today: date) -> FeeRecord:
    return record.model_copy(update={"status": stored_status(record, today)})


async def fee_receipt_html(
    db: AsyncSession,
    payload: ReceiptDownloadRequest,
    generated_at: Optional[datetime] = None,
    today: Optional[date] = None,
) -> str:
    today = today or date.today()
    if not payload.school_code or not payload.student_id or not payload.fee_ids:
        raise ServiceError("school_code, student_id and fee_ids are required", status.HTTP_400_BAD_REQUEST)

    school = await _school_by_code(db, payload.school_code)
    student = (
        await db.execute(
            select(Student).where(Student.id == payload.student_id, Student.school_id == school.id)
        )
    ).scalar_one_or_none()
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    fee_ids = set(payload.fee_ids)
    fees = (
        await db.execute(
            select(StudentFee)
            .where(
                StudentFee.id.in_(fee_ids),
                StudentFee.student_id == student.id,
                StudentFee.school_id == school.id,
            )
            .order_by(StudentFee.due_month)
        )
    ).scalars().all()
    if len(fees) != len(fee_ids):
        raise ServiceError("Fee records not found", status.HTTP_404_NOT_FOUND)

    structure_ids = {fee.fee_structure_id for fee in fees}
    names = {
        row.id: row.name
        for row in (
            await db.execute(select(FeeStructure.id, FeeStructure.name).where(FeeStructure.id.in_(structure_ids)))
        ).all()
    }
    lines = await load_structure_lines(db, structure_ids)
    payments = await load_payment_records(db, school.id, student_id=student.id)

    doc = build_fee_receipt(
        school=SchoolHeader.model_validate(school),
        student=StudentBlock.model_validate(student),
        fees=[_current(FeeRecord.model_validate(fee), today) for fee in fees],
        payments=payments,
        lines_by_structure=lines,
        structure_names=names,
        generated_at=generated_at or datetime.now(),
    )
    return render_fee_receipt(doc)


async def payment_receipt_html(
    db: AsyncSession,
    school_code: str,
    payment_id: UUID,
    generated_at: Optional[datetime] = None,
) -> str:
    if not school_code:
        raise ServiceError("school_code is required", status.HTTP_400_BAD_REQUEST)
    school = await _school_by_code(db, school_code)
    payment = (
        await db.execute(
            select(Payment)
            .options(selectinload(Payment.allocations), selectinload(Payment.receipt))
            .where(
                Payment.id == payment_id,
                Payment.school_id == school.id,
                Payment.is_reversed.is_(False),
            )
        )
    ).scalar_one_or_none()
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)

    student = await db.get(Student, payment.student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    allocated = {a.student_fee_id: a.allocated_amount for a in payment.allocations}
    rows = (
        await db.execute(
            select(StudentFee, FeeStructure.name)
            .join(FeeStructure, StudentFee.fee_structure_id == FeeStructure.id)
            .where(StudentFee.id.in_(list(allocated)))
            .order_by(StudentFee.due_month)
        )
    ).all()
    lines = [
        AllocationLine(fee_name=name, due_month=fee.due_month, allocated_amount=allocated[fee.id])
        for fee, name in rows
    ]

    collector = await db.get(User, payment.collected_by) if payment.collected_by else None
    receipt = payment.receipt
    record = PaymentRecord(
        id=payment.id,
        student_id=payment.student_id,
        amount=payment.amount,
        payment_mode=payment.payment_mode,
        payment_date=payment.payment_date,
        is_reversed=payment.is_reversed,
        receipt_no=receipt.receipt_no if receipt else None,
    )
    doc = build_payment_receipt(
        school=SchoolHeader.model_validate(school),
        student=StudentBlock.model_validate(student),
        payment=record,
        lines=lines,
        issued_at=receipt.issued_at if receipt else None,
        generated_at=generated_at or datetime.now(),
        reference_no=payment.reference_no,
        collected_by=collector.full_name if collector else None,
    )
    return render_payment_receipt(doc)
