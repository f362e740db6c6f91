"""Fees service: fee heads, structures, fee generation, student fees, adjustments, payments. Financial writes are audited."""

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from feeledger.core.config import settings
from feeledger.core.enums import AdjustmentStatus, StudentFeeStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.ledger import (
    CENT,
    ZERO,
    fee_balance,
    fee_status,
    installment_pending,
    installment_status,
    late_fee,
    match_payments,
    stored_status,
    summarize_fees,
)
from feeledger.core.models import (
    FeeAdjustment,
    FeeAuditLog,
    FeeHead,
    FeeInstallment,
    FeeStructure,
    FeeStructureItem,
    Payment,
    PaymentAllocation,
    Receipt,
    Student,
    StudentFee,
)
from feeledger.core.schedule import base_year, billing_months, due_date_for
from feeledger.core.schemas import FeeRecord, FeeStructureLine, InstallmentRecord, PaymentRecord, to_decimal

from .schemas import (
    AdjustmentCreate,
    AdjustmentResponse,
    AllocationResponse,
    FeeHeadCreate,
    FeeHeadResponse,
    FeeHeadUpdate,
    FeeStructureCreate,
    FeeStructureItemResponse,
    FeeStructureResponse,
    GenerateFeesResponse,
    PaymentCreate,
    PaymentResponse,
    StudentFeeResponse,
    StudentStatementResponse,
    StudentSummary,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Audit helper ---
async def _log_fee_audit(
    db: AsyncSession,
    school_id: UUID,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    log = FeeAuditLog(
        school_id=school_id,
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)


async def get_student(db: AsyncSession, school_id: UUID, student_id: UUID) -> Student:
    student = (
        await db.execute(select(Student).where(Student.id == student_id, Student.school_id == school_id))
    ).scalar_one_or_none()
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student


# --- Fee Heads ---
async def create_fee_head(
    db: AsyncSession,
    school_id: UUID,
    payload: FeeHeadCreate,
    changed_by: Optional[UUID],
) -> FeeHeadResponse:
    try:
        head = FeeHead(
            school_id=school_id,
            name=payload.name,
            description=payload.description,
            is_optional=payload.is_optional,
            is_active=True,
        )
        db.add(head)
        await db.flush()
        await _log_fee_audit(
            db, school_id, "fee_heads", head.id,
            "CREATE", None,
            {"name": head.name, "is_optional": head.is_optional},
            changed_by,
        )
        await db.commit()
        await db.refresh(head)
        return FeeHeadResponse.model_validate(head)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("A fee head with this name already exists", status.HTTP_409_CONFLICT)


async def list_fee_heads(
    db: AsyncSession,
    school_id: UUID,
    include_inactive: bool = False,
) -> List[FeeHeadResponse]:
    stmt = select(FeeHead).where(FeeHead.school_id == school_id)
    if not include_inactive:
        stmt = stmt.where(FeeHead.is_active.is_(True))
    stmt = stmt.order_by(FeeHead.name)
    result = await db.execute(stmt)
    return [FeeHeadResponse.model_validate(h) for h in result.scalars().all()]


async def update_fee_head(
    db: AsyncSession,
    school_id: UUID,
    fee_head_id: UUID,
    payload: FeeHeadUpdate,
    changed_by: Optional[UUID],
) -> FeeHeadResponse:
    head = await db.get(FeeHead, fee_head_id)
    if not head or head.school_id != school_id:
        raise ServiceError("Fee head not found", status.HTTP_404_NOT_FOUND)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is not None:
        changes["name"] = changes["name"].strip()
    old = {key: getattr(head, key) for key in changes}
    for key, value in changes.items():
        setattr(head, key, value)
    try:
        await _log_fee_audit(db, school_id, "fee_heads", head.id, "UPDATE", old, changes, changed_by)
        await db.commit()
        await db.refresh(head)
        return FeeHeadResponse.model_validate(head)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("A fee head with this name already exists", status.HTTP_409_CONFLICT)


# --- Fee Structures ---
async def _structure_item_rows(
    db: AsyncSession,
    structure_ids: Iterable[UUID],
) -> Dict[UUID, List[Tuple[FeeStructureItem, FeeHead]]]:
    ids = list(structure_ids)
    grouped: Dict[UUID, List[Tuple[FeeStructureItem, FeeHead]]] = defaultdict(list)
    if not ids:
        return grouped
    result = await db.execute(
        select(FeeStructureItem, FeeHead)
        .join(FeeHead, FeeStructureItem.fee_head_id == FeeHead.id)
        .where(FeeStructureItem.fee_structure_id.in_(ids))
        .order_by(FeeStructureItem.created_at)
    )
    for item, head in result.all():
        grouped[item.fee_structure_id].append((item, head))
    return grouped


async def load_structure_lines(
    db: AsyncSession,
    structure_ids: Iterable[UUID],
) -> Dict[UUID, List[FeeStructureLine]]:
    """Fee structure items flattened with their fee head's display fields, grouped by structure."""
    rows = await _structure_item_rows(db, structure_ids)
    return {
        structure_id: [
            FeeStructureLine(
                fee_structure_id=item.fee_structure_id,
                fee_head_id=item.fee_head_id,
                amount=item.amount,
                name=head.name,
                description=head.description,
                is_optional=head.is_optional,
            )
            for item, head in items
        ]
        for structure_id, items in rows.items()
    }


def _structure_to_response(
    structure: FeeStructure,
    rows: List[Tuple[FeeStructureItem, FeeHead]],
) -> FeeStructureResponse:
    items = [
        FeeStructureItemResponse(
            id=item.id,
            fee_head_id=item.fee_head_id,
            fee_head_name=head.name,
            amount=to_decimal(item.amount),
        )
        for item, head in rows
    ]
    return FeeStructureResponse(
        id=structure.id,
        school_id=structure.school_id,
        name=structure.name,
        class_name=structure.class_name,
        section=structure.section,
        academic_year=structure.academic_year,
        start_month=structure.start_month,
        end_month=structure.end_month,
        frequency=structure.frequency,
        payment_due_day=structure.payment_due_day,
        late_fee_type=structure.late_fee_type,
        late_fee_value=to_decimal(structure.late_fee_value),
        grace_period_days=structure.grace_period_days or 0,
        is_active=structure.is_active,
        created_at=structure.created_at,
        items=items,
        total_amount=sum((i.amount for i in items), ZERO),
    )


async def _get_structure(db: AsyncSession, school_id: UUID, structure_id: UUID) -> FeeStructure:
    structure = await db.get(FeeStructure, structure_id)
    if not structure or structure.school_id != school_id:
        raise ServiceError("Fee structure not found", status.HTTP_404_NOT_FOUND)
    return structure


async def create_fee_structure(
    db: AsyncSession,
    school_id: UUID,
    payload: FeeStructureCreate,
    created_by: Optional[UUID],
) -> FeeStructureResponse:
    head_ids = [item.fee_head_id for item in payload.items]
    heads = (
        await db.execute(
            select(FeeHead).where(
                FeeHead.id.in_(head_ids),
                FeeHead.school_id == school_id,
                FeeHead.is_active.is_(True),
            )
        )
    ).scalars().all()
    if len(heads) != len(set(head_ids)):
        raise ServiceError("Invalid or inactive fee head(s)", status.HTTP_400_BAD_REQUEST)

    structure = FeeStructure(
        school_id=school_id,
        name=payload.name.strip(),
        class_name=payload.class_name.strip(),
        section=(payload.section or "").strip() or None,
        academic_year=(payload.academic_year or "").strip() or None,
        start_month=payload.start_month,
        end_month=payload.end_month,
        frequency=payload.frequency.value,
        payment_due_day=payload.payment_due_day,
        late_fee_type=payload.late_fee_type.value if payload.late_fee_type else None,
        late_fee_value=payload.late_fee_value,
        grace_period_days=payload.grace_period_days,
        is_active=False,
        created_by=created_by,
    )
    db.add(structure)
    await db.flush()
    for item in payload.items:
        db.add(FeeStructureItem(fee_structure_id=structure.id, fee_head_id=item.fee_head_id, amount=item.amount))
        # one flush per line keeps created_at in submission order
        await db.flush()
    await _log_fee_audit(
        db, school_id, "fee_structures", structure.id,
        "CREATE", None,
        {
            "name": structure.name,
            "class_name": structure.class_name,
            "frequency": structure.frequency,
            "total_amount": str(sum((i.amount for i in payload.items), ZERO)),
        },
        created_by,
    )
    await db.commit()
    rows = await _structure_item_rows(db, [structure.id])
    return _structure_to_response(structure, rows.get(structure.id, []))


async def list_fee_structures(
    db: AsyncSession,
    school_id: UUID,
    class_name: Optional[str] = None,
    academic_year: Optional[str] = None,
    active_only: bool = False,
) -> List[FeeStructureResponse]:
    stmt = select(FeeStructure).where(FeeStructure.school_id == school_id)
    if class_name:
        stmt = stmt.where(func.lower(FeeStructure.class_name) == class_name.strip().lower())
    if academic_year:
        stmt = stmt.where(FeeStructure.academic_year == academic_year.strip())
    if active_only:
        stmt = stmt.where(FeeStructure.is_active.is_(True))
    stmt = stmt.order_by(FeeStructure.class_name, FeeStructure.name)
    structures = (await db.execute(stmt)).scalars().all()
    rows = await _structure_item_rows(db, [s.id for s in structures])
    return [_structure_to_response(s, rows.get(s.id, [])) for s in structures]


async def get_fee_structure(db: AsyncSession, school_id: UUID, structure_id: UUID) -> FeeStructureResponse:
    structure = await _get_structure(db, school_id, structure_id)
    rows = await _structure_item_rows(db, [structure.id])
    return _structure_to_response(structure, rows.get(structure.id, []))


async def set_fee_structure_active(
    db: AsyncSession,
    school_id: UUID,
    structure_id: UUID,
    is_active: bool,
    changed_by: Optional[UUID],
) -> FeeStructureResponse:
    structure = await _get_structure(db, school_id, structure_id)
    old_active = structure.is_active
    structure.is_active = is_active
    await _log_fee_audit(
        db, school_id, "fee_structures", structure.id,
        "UPDATE", {"is_active": old_active}, {"is_active": is_active},
        changed_by,
    )
    await db.commit()
    rows = await _structure_item_rows(db, [structure.id])
    return _structure_to_response(structure, rows.get(structure.id, []))


async def _matching_students(db: AsyncSession, structure: FeeStructure, with_year: bool) -> List[Student]:
    stmt = select(Student).where(
        Student.school_id == structure.school_id,
        func.lower(Student.class_name) == structure.class_name.strip().lower(),
        func.lower(Student.status) == "active",
    )
    if structure.section:
        stmt = stmt.where(func.lower(Student.section) == structure.section.strip().lower())
    if with_year and structure.academic_year:
        stmt = stmt.where(Student.academic_year == structure.academic_year)
    stmt = stmt.order_by(Student.admission_no)
    return list((await db.execute(stmt)).scalars().all())


async def generate_fees(
    db: AsyncSession,
    school_id: UUID,
    structure_id: UUID,
    changed_by: Optional[UUID],
    today: Optional[date] = None,
) -> GenerateFeesResponse:
    """Create one student fee (and its installment) per matching student per billed month."""
    today = today or date.today()
    structure = await _get_structure(db, school_id, structure_id)
    if not structure.is_active:
        raise ServiceError("Fee structure must be active to generate fees", status.HTTP_400_BAD_REQUEST)

    rows = (await _structure_item_rows(db, [structure.id])).get(structure.id, [])
    if not rows:
        raise ServiceError("Fee structure has no fee heads", status.HTTP_400_BAD_REQUEST)
    base_amount = sum((to_decimal(item.amount) for item, _ in rows), ZERO)

    warning = None
    students = await _matching_students(db, structure, with_year=True)
    if not students and structure.academic_year:
        students = await _matching_students(db, structure, with_year=False)
        if students:
            warning = (
                f'Academic year filter "{structure.academic_year}" matched no students and was ignored. '
                "Fees generated for all matching students."
            )

    months = billing_months(
        structure.start_month,
        structure.end_month,
        structure.frequency,
        base_year(structure.academic_year, today),
    )
    if not students:
        return GenerateFeesResponse(
            structure_id=structure.id,
            students_processed=0,
            fees_generated=0,
            months_generated=len(months),
            skipped=0,
        )

    existing = {
        (row.student_id, row.due_month)
        for row in (
            await db.execute(
                select(StudentFee.student_id, StudentFee.due_month).where(
                    StudentFee.fee_structure_id == structure.id
                )
            )
        ).all()
    }

    created: List[StudentFee] = []
    skipped = 0
    for student in students:
        for month in months:
            if (student.id, month) in existing:
                skipped += 1
                continue
            fee = StudentFee(
                school_id=school_id,
                student_id=student.id,
                fee_structure_id=structure.id,
                base_amount=base_amount,
                adjustment_amount=ZERO,
                paid_amount=ZERO,
                due_month=month,
                due_date=due_date_for(month, structure.payment_due_day, settings.default_due_day),
                status=StudentFeeStatus.pending.value,
            )
            db.add(fee)
            created.append(fee)

    try:
        await db.flush()
        for fee in created:
            db.add(
                FeeInstallment(
                    school_id=school_id,
                    student_id=fee.student_id,
                    student_fee_id=fee.id,
                    installment_number=1,
                    due_date=fee.due_date,
                    amount=fee.base_amount,
                )
            )
        await _log_fee_audit(
            db, school_id, "fee_structures", structure.id,
            "GENERATE", None,
            {
                "students_processed": len(students),
                "fees_generated": len(created),
                "months_generated": len(months),
                "base_amount": str(base_amount),
            },
            changed_by,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError(
            "Fees were generated concurrently for this structure, please retry",
            status.HTTP_409_CONFLICT,
        )

    logger.info(
        "Generated %d fees for structure %s (%d students, %d months, %d skipped)",
        len(created), structure.id, len(students), len(months), skipped,
    )
    return GenerateFeesResponse(
        structure_id=structure.id,
        students_processed=len(students),
        fees_generated=len(created),
        months_generated=len(months),
        skipped=skipped,
        warning=warning,
    )


# --- Student Fees ---
def _student_fee_response(fee: StudentFee, structure: FeeStructure, today: date) -> StudentFeeResponse:
    record = FeeRecord.model_validate(fee)
    current_status = stored_status(record, today)
    balance = fee_balance(record)
    charge = ZERO
    if balance > ZERO:
        charge = late_fee(
            record,
            structure.late_fee_type,
            structure.late_fee_value,
            structure.grace_period_days,
            today,
        )
    return StudentFeeResponse(
        id=fee.id,
        student_id=fee.student_id,
        fee_structure_id=fee.fee_structure_id,
        fee_structure_name=structure.name,
        due_month=fee.due_month,
        due_date=fee.due_date,
        base_amount=record.base_amount,
        adjustment_amount=record.adjustment_amount,
        paid_amount=record.paid_amount,
        balance_due=balance,
        late_fee=charge,
        total_due=balance + charge if balance > ZERO else balance,
        status=current_status,
        display_status=fee_status(record.model_copy(update={"status": current_status})),
    )


async def _student_fee_rows(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
) -> List[Tuple[StudentFee, FeeStructure]]:
    result = await db.execute(
        select(StudentFee, FeeStructure)
        .join(FeeStructure, StudentFee.fee_structure_id == FeeStructure.id)
        .where(StudentFee.school_id == school_id, StudentFee.student_id == student_id)
        .order_by(StudentFee.due_month, FeeStructure.name)
    )
    return list(result.all())


async def list_student_fees(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    today: Optional[date] = None,
) -> List[StudentFeeResponse]:
    today = today or date.today()
    await get_student(db, school_id, student_id)
    rows = await _student_fee_rows(db, school_id, student_id)
    return [_student_fee_response(fee, structure, today) for fee, structure in rows]


async def load_payment_records(
    db: AsyncSession,
    school_id: UUID,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    include_reversed: bool = True,
) -> List[PaymentRecord]:
    """Payments with allocations, receipt number and student display fields, oldest first."""
    stmt = (
        select(Payment, Student)
        .join(Student, Payment.student_id == Student.id)
        .options(selectinload(Payment.allocations), selectinload(Payment.receipt))
        .where(Payment.school_id == school_id)
    )
    if student_id is not None:
        stmt = stmt.where(Payment.student_id == student_id)
    if start_date is not None:
        stmt = stmt.where(Payment.payment_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Payment.payment_date <= end_date)
    if not include_reversed:
        stmt = stmt.where(Payment.is_reversed.is_(False))
    stmt = stmt.order_by(Payment.payment_date, Payment.created_at)

    records = []
    for payment, student in (await db.execute(stmt)).all():
        records.append(
            PaymentRecord(
                id=payment.id,
                student_id=payment.student_id,
                amount=payment.amount,
                payment_mode=payment.payment_mode,
                payment_date=payment.payment_date,
                is_reversed=payment.is_reversed,
                receipt_no=payment.receipt.receipt_no if payment.receipt else None,
                allocations=[
                    {"student_fee_id": a.student_fee_id, "allocated_amount": a.allocated_amount}
                    for a in payment.allocations
                ],
                student_name=student.student_name,
                admission_no=student.admission_no,
                class_name=student.class_name,
                section=student.section,
            )
        )
    return records


async def get_student_statement(
    db: AsyncSession,
    school_id: UUID,
    student_id: UUID,
    today: Optional[date] = None,
) -> StudentStatementResponse:
    today = today or date.today()
    student = await get_student(db, school_id, student_id)
    rows = await _student_fee_rows(db, school_id, student_id)
    payments = await load_payment_records(db, school_id, student_id=student_id)
    return StudentStatementResponse(
        student=StudentSummary.model_validate(student),
        fees=[_student_fee_response(fee, structure, today) for fee, structure in rows],
        payments=match_payments(payments, [fee.id for fee, _ in rows]),
        totals=summarize_fees(FeeRecord.model_validate(fee) for fee, _ in rows),
    )


# --- Installments ---
def _apply_to_installments(installments: List[FeeInstallment], amount: Decimal, today: date) -> None:
    """Spread a payment (positive) or a reversal (negative) over a fee's installments."""
    if not installments or amount == ZERO:
        return
    ordered = sorted(installments, key=lambda inst: inst.installment_number)
    if amount < ZERO:
        ordered.reverse()
    remaining = amount
    for index, inst in enumerate(ordered):
        last = index == len(ordered) - 1
        if amount > ZERO:
            room = max(ZERO, installment_pending(InstallmentRecord.model_validate(inst)))
            portion = remaining if last else min(room, remaining)
        else:
            portion = remaining if last else max(-to_decimal(inst.paid_amount), remaining)
        inst.paid_amount = to_decimal(inst.paid_amount) + portion
        inst.status = installment_status(InstallmentRecord.model_validate(inst), today)
        remaining -= portion
        if remaining == ZERO:
            break


async def _installments_by_fee(
    db: AsyncSession,
    fee_ids: Iterable[UUID],
) -> Dict[UUID, List[FeeInstallment]]:
    ids = list(fee_ids)
    grouped: Dict[UUID, List[FeeInstallment]] = defaultdict(list)
    if not ids:
        return grouped
    result = await db.execute(select(FeeInstallment).where(FeeInstallment.student_fee_id.in_(ids)))
    for inst in result.scalars().all():
        grouped[inst.student_fee_id].append(inst)
    return grouped


# --- Adjustments ---
async def create_adjustment(
    db: AsyncSession,
    school_id: UUID,
    payload: AdjustmentCreate,
    created_by: Optional[UUID],
) -> AdjustmentResponse:
    fee = await db.get(StudentFee, payload.student_fee_id)
    if not fee or fee.school_id != school_id:
        raise ServiceError("Student fee not found", status.HTTP_404_NOT_FOUND)
    adjustment = FeeAdjustment(
        school_id=school_id,
        student_fee_id=fee.id,
        amount=payload.amount,
        adjustment_type=payload.adjustment_type.value,
        reason=payload.reason,
        status=AdjustmentStatus.pending.value,
        created_by=created_by,
    )
    db.add(adjustment)
    await db.flush()
    await _log_fee_audit(
        db, school_id, "fee_adjustments", adjustment.id,
        "CREATE", None,
        {
            "student_fee_id": str(fee.id),
            "amount": str(payload.amount),
            "adjustment_type": adjustment.adjustment_type,
        },
        created_by,
    )
    await db.commit()
    await db.refresh(adjustment)
    return AdjustmentResponse.model_validate(adjustment)


async def list_adjustments(
    db: AsyncSession,
    school_id: UUID,
    status_filter: Optional[str] = None,
    student_fee_id: Optional[UUID] = None,
) -> List[AdjustmentResponse]:
    stmt = select(FeeAdjustment).where(FeeAdjustment.school_id == school_id)
    if status_filter:
        stmt = stmt.where(FeeAdjustment.status == status_filter.strip().lower())
    if student_fee_id is not None:
        stmt = stmt.where(FeeAdjustment.student_fee_id == student_fee_id)
    stmt = stmt.order_by(FeeAdjustment.created_at.desc())
    result = await db.execute(stmt)
    return [AdjustmentResponse.model_validate(a) for a in result.scalars().all()]


async def review_adjustment(
    db: AsyncSession,
    school_id: UUID,
    adjustment_id: UUID,
    approve: bool,
    reviewed_by: Optional[UUID],
    today: Optional[date] = None,
) -> AdjustmentResponse:
    """Approve (apply the delta to the fee) or reject a pending adjustment."""
    today = today or date.today()
    adjustment = await db.get(FeeAdjustment, adjustment_id)
    if not adjustment or adjustment.school_id != school_id:
        raise ServiceError("Adjustment not found", status.HTTP_404_NOT_FOUND)
    if adjustment.status != AdjustmentStatus.pending.value:
        raise ServiceError("Only pending adjustments can be reviewed", status.HTTP_400_BAD_REQUEST)

    if approve:
        fee = await db.get(StudentFee, adjustment.student_fee_id)
        delta = to_decimal(adjustment.amount)
        old = {"adjustment_amount": str(fee.adjustment_amount), "status": fee.status}
        fee.adjustment_amount = to_decimal(fee.adjustment_amount) + delta
        fee.status = stored_status(FeeRecord.model_validate(fee), today)
        for inst in (await _installments_by_fee(db, [fee.id])).get(fee.id, [])[:1]:
            if delta < ZERO:
                inst.discount_amount = to_decimal(inst.discount_amount) - delta
            else:
                inst.fine_amount = to_decimal(inst.fine_amount) + delta
            inst.status = installment_status(InstallmentRecord.model_validate(inst), today)
        await _log_fee_audit(
            db, school_id, "student_fees", fee.id,
            "UPDATE", old,
            {"adjustment_amount": str(fee.adjustment_amount), "status": fee.status},
            reviewed_by,
        )

    adjustment.status = AdjustmentStatus.approved.value if approve else AdjustmentStatus.rejected.value
    adjustment.reviewed_by = reviewed_by
    adjustment.reviewed_at = _utcnow()
    await _log_fee_audit(
        db, school_id, "fee_adjustments", adjustment.id,
        "APPROVE" if approve else "REJECT",
        {"status": AdjustmentStatus.pending.value},
        {"status": adjustment.status},
        reviewed_by,
    )
    await db.commit()
    logger.info("Adjustment %s %s", adjustment.id, adjustment.status)
    return AdjustmentResponse.model_validate(adjustment)


# --- Payments ---
async def _next_receipt_no(db: AsyncSession, school_id: UUID, school_code: str, year: int) -> str:
    prefix = f"{school_code.strip().upper()}/REC/{year}/"
    count = (
        await db.execute(
            select(func.count(Receipt.id)).where(
                Receipt.school_id == school_id,
                Receipt.receipt_no.like(f"{prefix}%"),
            )
        )
    ).scalar() or 0
    return f"{prefix}{count + 1:05d}"


def _payment_to_response(payment: Payment, receipt_no: Optional[str] = None) -> PaymentResponse:
    if receipt_no is None and payment.receipt is not None:
        receipt_no = payment.receipt.receipt_no
    return PaymentResponse(
        id=payment.id,
        student_id=payment.student_id,
        amount=to_decimal(payment.amount),
        payment_mode=payment.payment_mode,
        reference_no=payment.reference_no,
        payment_date=payment.payment_date,
        remarks=payment.remarks,
        is_reversed=payment.is_reversed,
        reversed_at=payment.reversed_at,
        reversal_reason=payment.reversal_reason,
        receipt_no=receipt_no,
        allocations=[
            AllocationResponse(student_fee_id=a.student_fee_id, allocated_amount=to_decimal(a.allocated_amount))
            for a in payment.allocations
        ],
        created_at=payment.created_at,
    )


async def collect_payment(
    db: AsyncSession,
    school_id: UUID,
    school_code: str,
    payload: PaymentCreate,
    collected_by: Optional[UUID],
    today: Optional[date] = None,
) -> PaymentResponse:
    """Record a payment, apply it to the allocated fees and issue its receipt in one transaction."""
    today = today or date.today()
    student = await get_student(db, school_id, payload.student_id)

    allocated_total = sum((a.allocated_amount for a in payload.allocations), ZERO)
    if abs(allocated_total - payload.amount) > CENT:
        raise ServiceError("Allocated amounts must add up to the payment amount", status.HTTP_400_BAD_REQUEST)
    fee_ids = [a.student_fee_id for a in payload.allocations]
    if len(fee_ids) != len(set(fee_ids)):
        raise ServiceError("Each fee can be allocated only once per payment", status.HTTP_400_BAD_REQUEST)

    fees = {
        fee.id: fee
        for fee in (
            await db.execute(
                select(StudentFee).where(
                    StudentFee.id.in_(fee_ids),
                    StudentFee.school_id == school_id,
                    StudentFee.student_id == student.id,
                )
            )
        ).scalars().all()
    }
    if len(fees) != len(fee_ids):
        raise ServiceError("One or more fees do not belong to this student", status.HTTP_400_BAD_REQUEST)
    for alloc in payload.allocations:
        balance = fee_balance(FeeRecord.model_validate(fees[alloc.student_fee_id]))
        if alloc.allocated_amount > balance + CENT:
            raise ServiceError(
                f"Allocation of {alloc.allocated_amount} exceeds the balance due ({balance}) "
                f"for fee {alloc.student_fee_id}",
                status.HTTP_400_BAD_REQUEST,
            )

    installments = await _installments_by_fee(db, fee_ids)
    payment_date = payload.payment_date or today
    try:
        payment = Payment(
            school_id=school_id,
            student_id=student.id,
            amount=payload.amount,
            payment_mode=payload.payment_mode.value,
            reference_no=(payload.reference_no or "").strip() or None,
            payment_date=payment_date,
            collected_by=collected_by,
            remarks=payload.remarks,
            is_reversed=False,
        )
        db.add(payment)
        await db.flush()

        allocations = []
        for alloc in payload.allocations:
            allocation = PaymentAllocation(
                payment_id=payment.id,
                student_fee_id=alloc.student_fee_id,
                allocated_amount=alloc.allocated_amount,
            )
            db.add(allocation)
            allocations.append(allocation)

            fee = fees[alloc.student_fee_id]
            old = {"paid_amount": str(fee.paid_amount), "status": fee.status}
            fee.paid_amount = to_decimal(fee.paid_amount) + alloc.allocated_amount
            fee.status = stored_status(FeeRecord.model_validate(fee), today)
            _apply_to_installments(installments.get(fee.id, []), alloc.allocated_amount, today)
            await _log_fee_audit(
                db, school_id, "student_fees", fee.id,
                "UPDATE", old,
                {"paid_amount": str(fee.paid_amount), "status": fee.status},
                collected_by,
            )

        receipt_no = await _next_receipt_no(db, school_id, school_code, payment_date.year)
        db.add(
            Receipt(
                school_id=school_id,
                receipt_no=receipt_no,
                student_id=student.id,
                payment_id=payment.id,
                issued_by=collected_by,
                issued_at=_utcnow(),
                receipt_data={
                    "receipt_no": receipt_no,
                    "student": {
                        "id": str(student.id),
                        "student_name": student.student_name,
                        "admission_no": student.admission_no,
                        "class_name": student.class_name,
                        "section": student.section,
                    },
                    "amount": str(payload.amount),
                    "payment_mode": payment.payment_mode,
                    "payment_date": payment_date.isoformat(),
                    "reference_no": payment.reference_no,
                    "allocations": [
                        {"student_fee_id": str(a.student_fee_id), "allocated_amount": str(a.allocated_amount)}
                        for a in payload.allocations
                    ],
                },
                is_cancelled=False,
            )
        )
        await _log_fee_audit(
            db, school_id, "payments", payment.id,
            "CREATE", None,
            {
                "amount": str(payload.amount),
                "payment_mode": payment.payment_mode,
                "receipt_no": receipt_no,
                "allocations": {str(a.student_fee_id): str(a.allocated_amount) for a in payload.allocations},
            },
            collected_by,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Could not record the payment, please retry", status.HTTP_409_CONFLICT)

    logger.info(
        "Payment %s of %s collected for student %s, receipt %s",
        payment.id, payload.amount, student.id, receipt_no,
    )
    return PaymentResponse(
        id=payment.id,
        student_id=payment.student_id,
        amount=payload.amount,
        payment_mode=payment.payment_mode,
        reference_no=payment.reference_no,
        payment_date=payment_date,
        remarks=payment.remarks,
        is_reversed=False,
        receipt_no=receipt_no,
        allocations=[
            AllocationResponse(student_fee_id=a.student_fee_id, allocated_amount=to_decimal(a.allocated_amount))
            for a in allocations
        ],
        created_at=payment.created_at,
    )


async def list_payments(
    db: AsyncSession,
    school_id: UUID,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    include_reversed: bool = False,
) -> List[PaymentResponse]:
    stmt = (
        select(Payment)
        .options(selectinload(Payment.allocations), selectinload(Payment.receipt))
        .where(Payment.school_id == school_id)
    )
    if student_id is not None:
        stmt = stmt.where(Payment.student_id == student_id)
    if start_date is not None:
        stmt = stmt.where(Payment.payment_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Payment.payment_date <= end_date)
    if not include_reversed:
        stmt = stmt.where(Payment.is_reversed.is_(False))
    stmt = stmt.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
    result = await db.execute(stmt)
    return [_payment_to_response(p) for p in result.scalars().all()]


async def reverse_payment(
    db: AsyncSession,
    school_id: UUID,
    payment_id: UUID,
    reason: str,
    reversed_by: Optional[UUID],
    today: Optional[date] = None,
) -> PaymentResponse:
    """Flag a payment reversed, take its allocations back off the fees and cancel its receipt."""
    today = today or date.today()
    payment = (
        await db.execute(
            select(Payment)
            .options(selectinload(Payment.allocations), selectinload(Payment.receipt))
            .where(Payment.id == payment_id, Payment.school_id == school_id)
        )
    ).scalar_one_or_none()
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    if payment.is_reversed:
        raise ServiceError("Payment is already reversed", status.HTTP_400_BAD_REQUEST)

    fee_ids = [a.student_fee_id for a in payment.allocations]
    fees = {
        fee.id: fee
        for fee in (await db.execute(select(StudentFee).where(StudentFee.id.in_(fee_ids)))).scalars().all()
    }
    installments = await _installments_by_fee(db, fee_ids)
    for alloc in payment.allocations:
        fee = fees.get(alloc.student_fee_id)
        if fee is None:
            continue
        amount = to_decimal(alloc.allocated_amount)
        old = {"paid_amount": str(fee.paid_amount), "status": fee.status}
        fee.paid_amount = to_decimal(fee.paid_amount) - amount
        fee.status = stored_status(FeeRecord.model_validate(fee), today)
        _apply_to_installments(installments.get(fee.id, []), -amount, today)
        await _log_fee_audit(
            db, school_id, "student_fees", fee.id,
            "UPDATE", old,
            {"paid_amount": str(fee.paid_amount), "status": fee.status},
            reversed_by,
        )

    payment.is_reversed = True
    payment.reversed_at = _utcnow()
    payment.reversed_by = reversed_by
    payment.reversal_reason = reason.strip()
    if payment.receipt is not None:
        payment.receipt.is_cancelled = True
    await _log_fee_audit(
        db, school_id, "payments", payment.id,
        "REVERSE",
        {"is_reversed": False},
        {"is_reversed": True, "reason": payment.reversal_reason},
        reversed_by,
    )
    await db.commit()
    logger.info("Payment %s reversed: %s", payment.id, payment.reversal_reason)
    return _payment_to_response(payment)
