"""Reports service: loads payments, installments and fees for a school and hands them to the aggregators."""

from datetime import date, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.fees.service import load_payment_records
from feeledger.core.enums import InstallmentStatus
from feeledger.core.models import FeeInstallment, FeeStructure, Student, StudentFee
from feeledger.core.exceptions import ServiceError
from feeledger.core.reporting import (
    ClassWiseRow,
    DailyCollectionReport,
    MonthlyCollectionReport,
    OverdueReport,
    OverdueSummary,
    PendingReport,
    month_bounds,
    summarize_class_wise,
    summarize_daily,
    summarize_monthly,
    summarize_overdue,
    summarize_pending,
)
from feeledger.core.schemas import FeeRecord, InstallmentRecord, PaymentRecord, StudentRecord

OPEN_INSTALLMENT_STATUSES = (
    InstallmentStatus.pending.value,
    InstallmentStatus.partial.value,
    InstallmentStatus.overdue.value,
)


def _same(value: Optional[str], wanted: Optional[str]) -> bool:
    return (value or "").strip().lower() == wanted.strip().lower()


def _in_class(records: List[PaymentRecord], class_name: Optional[str], section: Optional[str]) -> List[PaymentRecord]:
    if class_name:
        records = [r for r in records if _same(r.class_name, class_name)]
    if section:
        records = [r for r in records if _same(r.section, section)]
    return records


async def daily_report(
    db: AsyncSession,
    school_id: UUID,
    day: Optional[date] = None,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
) -> DailyCollectionReport:
    day = day or date.today()
    payments = await load_payment_records(db, school_id, start_date=day, end_date=day, include_reversed=False)
    return summarize_daily(_in_class(payments, class_name, section), day)


async def monthly_report(
    db: AsyncSession,
    school_id: UUID,
    month: Optional[str] = None,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
) -> MonthlyCollectionReport:
    if not month:
        today = date.today()
        month = f"{today.year:04d}-{today.month:02d}"
    try:
        start, end = month_bounds(month)
    except ValueError:
        raise ServiceError("month must be in YYYY-MM format", status.HTTP_400_BAD_REQUEST)
    payments = await load_payment_records(
        db,
        school_id,
        start_date=start,
        end_date=end - timedelta(days=1),
        include_reversed=False,
    )
    return summarize_monthly(_in_class(payments, class_name, section), month)


async def _installment_records(
    db: AsyncSession,
    school_id: UUID,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    due_before: Optional[date] = None,
) -> List[InstallmentRecord]:
    stmt = (
        select(FeeInstallment, Student, FeeStructure.name)
        .join(Student, FeeInstallment.student_id == Student.id)
        .outerjoin(StudentFee, FeeInstallment.student_fee_id == StudentFee.id)
        .outerjoin(FeeStructure, StudentFee.fee_structure_id == FeeStructure.id)
        .where(
            FeeInstallment.school_id == school_id,
            FeeInstallment.status.in_(OPEN_INSTALLMENT_STATUSES),
        )
    )
    if class_name:
        stmt = stmt.where(func.lower(Student.class_name) == class_name.strip().lower())
    if section:
        stmt = stmt.where(func.lower(Student.section) == section.strip().lower())
    if start_date is not None:
        stmt = stmt.where(FeeInstallment.due_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(FeeInstallment.due_date <= end_date)
    if due_before is not None:
        stmt = stmt.where(FeeInstallment.due_date < due_before)
    stmt = stmt.order_by(FeeInstallment.due_date, Student.admission_no)

    records = []
    for inst, student, fee_name in (await db.execute(stmt)).all():
        record = InstallmentRecord.model_validate(inst)
        records.append(
            record.model_copy(
                update={
                    "student_name": student.student_name,
                    "admission_no": student.admission_no,
                    "class_name": student.class_name,
                    "section": student.section,
                    "fee_name": fee_name,
                }
            )
        )
    return records


async def pending_report(
    db: AsyncSession,
    school_id: UUID,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> PendingReport:
    records = await _installment_records(
        db, school_id, class_name=class_name, section=section, start_date=start_date, end_date=end_date
    )
    return summarize_pending(records, today or date.today())


async def overdue_report(
    db: AsyncSession,
    school_id: UUID,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
    today: Optional[date] = None,
) -> OverdueReport:
    today = today or date.today()
    if class_name:
        stmt = select(func.count(Student.id)).where(
            Student.school_id == school_id,
            func.lower(Student.class_name) == class_name.strip().lower(),
        )
        if section:
            stmt = stmt.where(func.lower(Student.section) == section.strip().lower())
        if not (await db.execute(stmt)).scalar():
            return OverdueReport(installments=[], summary=OverdueSummary())
    records = await _installment_records(
        db, school_id, class_name=class_name, section=section, due_before=today
    )
    return summarize_overdue(records, today)


async def class_wise_report(
    db: AsyncSession,
    school_id: UUID,
    academic_year: Optional[str] = None,
    class_name: Optional[str] = None,
) -> List[ClassWiseRow]:
    stmt = select(Student).where(Student.school_id == school_id, func.lower(Student.status) == "active")
    if academic_year:
        stmt = stmt.where(Student.academic_year == academic_year.strip())
    if class_name:
        stmt = stmt.where(func.lower(Student.class_name) == class_name.strip().lower())
    students = [StudentRecord.model_validate(s) for s in (await db.execute(stmt)).scalars().all()]
    if not students:
        return []

    student_ids = [s.id for s in students]
    fees = [
        FeeRecord.model_validate(f)
        for f in (
            await db.execute(
                select(StudentFee).where(StudentFee.school_id == school_id, StudentFee.student_id.in_(student_ids))
            )
        ).scalars().all()
    ]
    payments = await load_payment_records(db, school_id, include_reversed=False)
    return summarize_class_wise(students, fees, payments)
