"""Collection and dues reports. Pure group-by-and-sum over already loaded records."""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.ledger import ZERO, days_overdue, fee_balance, installment_pending
from feeledger.core.schemas import FeeRecord, InstallmentRecord, PaymentRecord, StudentRecord, to_decimal


class CollectionSummary(BaseModel):
    total_collected: Decimal = ZERO
    transaction_count: int = 0
    students_count: int = 0


class DailyCollectionReport(BaseModel):
    date: date
    summary: CollectionSummary
    collections: List[PaymentRecord] = Field(default_factory=list)


class DayTotal(BaseModel):
    date: date
    total_collected: Decimal = ZERO
    transaction_count: int = 0


class ClassCollectionTotal(BaseModel):
    class_name: str
    section: Optional[str] = None
    total_collected: Decimal = ZERO
    transaction_count: int = 0
    students_count: int = 0


class MonthlyCollectionReport(BaseModel):
    month: str  # YYYY-MM
    total_collected: Decimal = ZERO
    total_transactions: int = 0
    summary: CollectionSummary
    daily_breakdown: List[DayTotal] = Field(default_factory=list)
    class_breakdown: List[ClassCollectionTotal] = Field(default_factory=list)


class InstallmentRow(InstallmentRecord):
    pending_amount: Decimal = ZERO
    days_overdue: int = 0
    is_overdue: bool = False


class PendingSummary(BaseModel):
    total_pending: Decimal = ZERO
    total_count: int = 0
    students_count: int = 0


class PendingReport(BaseModel):
    installments: List[InstallmentRow] = Field(default_factory=list)
    summary: PendingSummary


class OverdueSummary(BaseModel):
    total_overdue: Decimal = ZERO
    total_count: int = 0
    students_count: int = 0
    average_days_overdue: int = 0


class OverdueReport(BaseModel):
    installments: List[InstallmentRow] = Field(default_factory=list)
    summary: OverdueSummary


class ClassWiseRow(BaseModel):
    class_name: str
    section: Optional[str] = None
    academic_year: Optional[str] = None
    total_students: int = 0
    expected: Decimal = ZERO
    collected: Decimal = ZERO
    pending: Decimal = ZERO


def _collection_summary(payments: List[PaymentRecord]) -> CollectionSummary:
    return CollectionSummary(
        total_collected=sum((to_decimal(p.amount) for p in payments), ZERO),
        transaction_count=len(payments),
        students_count=len({p.student_id for p in payments}),
    )


def _own_class(p: PaymentRecord) -> Tuple[str, Optional[str]]:
    return p.class_name or "Unassigned", p.section


def month_bounds(month: str) -> Tuple[date, date]:
    """'2026-10' -> (2026-10-01, 2026-11-01). Raises ValueError on a malformed month."""
    year_str, _, month_str = month.partition("-")
    start = date(int(year_str), int(month_str), 1)
    if start.month == 12:
        end = date(start.year + 1, 1, 1)
    else:
        end = date(start.year, start.month + 1, 1)
    return start, end


def summarize_daily(payments: Iterable[PaymentRecord], day: date) -> DailyCollectionReport:
    collections = [p for p in payments if not p.is_reversed and p.payment_date == day]
    return DailyCollectionReport(
        date=day,
        summary=_collection_summary(collections),
        collections=collections,
    )


def summarize_monthly(
    payments: Iterable[PaymentRecord],
    month: str,
    class_of: Optional[Callable[[PaymentRecord], Tuple[str, Optional[str]]]] = None,
) -> MonthlyCollectionReport:
    """
    Collections for a calendar month with per-day and per-class breakdowns.

    class_of maps a payment to (class_name, section); by default the payment's own
    student display fields are used.
    """
    start, end = month_bounds(month)
    in_month = [
        p
        for p in payments
        if not p.is_reversed and p.payment_date is not None and start <= p.payment_date < end
    ]
    summary = _collection_summary(in_month)

    by_day: Dict[date, DayTotal] = {}
    for p in sorted(in_month, key=lambda p: p.payment_date):
        row = by_day.setdefault(p.payment_date, DayTotal(date=p.payment_date))
        row.total_collected += to_decimal(p.amount)
        row.transaction_count += 1

    if class_of is None:
        class_of = _own_class

    by_class: Dict[Tuple[str, Optional[str]], ClassCollectionTotal] = {}
    students_by_class: Dict[Tuple[str, Optional[str]], set] = {}
    for p in in_month:
        key = class_of(p)
        row = by_class.setdefault(key, ClassCollectionTotal(class_name=key[0], section=key[1]))
        row.total_collected += to_decimal(p.amount)
        row.transaction_count += 1
        students_by_class.setdefault(key, set()).add(p.student_id)
    for key, row in by_class.items():
        row.students_count = len(students_by_class[key])

    return MonthlyCollectionReport(
        month=f"{start.year:04d}-{start.month:02d}",
        total_collected=summary.total_collected,
        total_transactions=summary.transaction_count,
        summary=summary,
        daily_breakdown=list(by_day.values()),
        class_breakdown=sorted(by_class.values(), key=lambda r: (r.class_name, r.section or "")),
    )


def _installment_row(inst: InstallmentRecord, today: date) -> InstallmentRow:
    overdue_days = days_overdue(inst.due_date, today)
    return InstallmentRow(
        **inst.model_dump(),
        pending_amount=installment_pending(inst),
        days_overdue=overdue_days,
        is_overdue=overdue_days > 0,
    )


def summarize_pending(installments: Iterable[InstallmentRecord], today: date) -> PendingReport:
    rows = [_installment_row(inst, today) for inst in installments]
    rows = [row for row in rows if row.pending_amount > ZERO]
    return PendingReport(
        installments=rows,
        summary=PendingSummary(
            total_pending=sum((row.pending_amount for row in rows), ZERO),
            total_count=len(rows),
            students_count=len({row.student_id for row in rows}),
        ),
    )


def summarize_overdue(installments: Iterable[InstallmentRecord], today: date) -> OverdueReport:
    rows = [
        _installment_row(inst, today)
        for inst in installments
        if inst.due_date < today
    ]
    rows = [row for row in rows if row.pending_amount > ZERO]
    average = 0
    if rows:
        total_days = sum(row.days_overdue for row in rows)
        average = int((Decimal(total_days) / len(rows)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return OverdueReport(
        installments=rows,
        summary=OverdueSummary(
            total_overdue=sum((row.pending_amount for row in rows), ZERO),
            total_count=len(rows),
            students_count=len({row.student_id for row in rows}),
            average_days_overdue=average,
        ),
    )


def summarize_class_wise(
    students: Iterable[StudentRecord],
    fees: Iterable[FeeRecord],
    payments: Iterable[PaymentRecord],
) -> List[ClassWiseRow]:
    """Expected, collected and pending amounts per class/section/academic year."""
    expected: Dict[UUID, Decimal] = {}
    pending: Dict[UUID, Decimal] = {}
    for fee in fees:
        if fee.student_id is None:
            continue
        amount = to_decimal(fee.base_amount) + to_decimal(fee.adjustment_amount)
        expected[fee.student_id] = expected.get(fee.student_id, ZERO) + amount
        balance = fee_balance(fee)
        if balance > ZERO:
            pending[fee.student_id] = pending.get(fee.student_id, ZERO) + balance

    collected: Dict[UUID, Decimal] = {}
    for p in payments:
        if p.is_reversed:
            continue
        collected[p.student_id] = collected.get(p.student_id, ZERO) + to_decimal(p.amount)

    rows: Dict[Tuple[str, str, str], ClassWiseRow] = {}
    for st in students:
        key = (st.class_name or "", st.section or "", st.academic_year or "")
        row = rows.get(key)
        if row is None:
            row = rows[key] = ClassWiseRow(
                class_name=st.class_name or "",
                section=st.section,
                academic_year=st.academic_year,
            )
        row.total_students += 1
        row.expected += expected.get(st.id, ZERO)
        row.collected += collected.get(st.id, ZERO)
        row.pending += pending.get(st.id, ZERO)

    return [rows[key] for key in sorted(rows)]
