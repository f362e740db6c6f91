"""Fee ledger arithmetic: balances, status, receipt totals, per-head split and payment matching.

Everything here is pure. Callers load rows, validate them into the records from
``feeledger.core.schemas`` and pass them in; nothing is written back.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel

from feeledger.core.enums import InstallmentStatus, LateFeeType, StudentFeeStatus
from feeledger.core.schemas import FeeRecord, FeeStructureLine, InstallmentRecord, PaymentRecord, to_decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")

PAID = "Paid"
OVERDUE = "Overdue"
PENDING = "Pending"


class FeeTotals(BaseModel):
    total_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_due: Decimal = ZERO


def quantize(val) -> Decimal:
    return to_decimal(val).quantize(CENT, rounding=ROUND_HALF_UP)


# --- Amount aggregator ---
def fee_balance(fee: FeeRecord) -> Decimal:
    """base + adjustment - paid. Negative when the student has overpaid."""
    return to_decimal(fee.base_amount) + to_decimal(fee.adjustment_amount) - to_decimal(fee.paid_amount)


def fee_status(fee: FeeRecord) -> str:
    """Display status: Paid when nothing is owed, else Overdue if flagged so, else Pending."""
    if fee_balance(fee) <= ZERO:
        return PAID
    if (fee.status or "").strip().lower() == StudentFeeStatus.overdue.value:
        return OVERDUE
    return PENDING


def stored_status(fee: FeeRecord, today: Optional[date] = None) -> str:
    """Value persisted in student_fees.status after a payment, reversal or adjustment."""
    if fee_balance(fee) <= ZERO:
        return StudentFeeStatus.paid.value
    if today is not None and fee.due_date is not None and fee.due_date < today:
        return StudentFeeStatus.overdue.value
    if to_decimal(fee.paid_amount) > ZERO:
        return StudentFeeStatus.partial.value
    return StudentFeeStatus.pending.value


def summarize_fees(fees: Iterable[FeeRecord]) -> FeeTotals:
    total_amount = ZERO
    total_paid = ZERO
    for fee in fees:
        total_amount += to_decimal(fee.base_amount) + to_decimal(fee.adjustment_amount)
        total_paid += to_decimal(fee.paid_amount)
    return FeeTotals(
        total_amount=total_amount,
        total_paid=total_paid,
        total_due=total_amount - total_paid,
    )


def late_fee(
    fee: FeeRecord,
    late_fee_type: Optional[str],
    late_fee_value,
    grace_period_days: Optional[int],
    today: date,
) -> Decimal:
    """Late charge accrued once today is past due_date + grace period. Never negative."""
    if not late_fee_type or fee.due_date is None:
        return ZERO
    effective_due = fee.due_date.toordinal() + int(grace_period_days or 0)
    days_late = today.toordinal() - effective_due
    if days_late <= 0:
        return ZERO
    value = to_decimal(late_fee_value)
    if late_fee_type == LateFeeType.flat.value:
        charge = value
    elif late_fee_type == LateFeeType.per_day.value:
        charge = value * days_late
    elif late_fee_type == LateFeeType.percentage.value:
        charge = to_decimal(fee.base_amount) * value / Decimal("100") * days_late
    else:
        return ZERO
    return max(ZERO, quantize(charge))


# --- Proportional allocator ---
def allocate_proportionally(items: Sequence[FeeStructureLine], base_amount) -> List[Decimal]:
    """
    Split base_amount across fee heads in proportion to their configured amounts.

    Display-only estimate; there is no per-head payment ledger. Shares are rounded
    to paise and the rounding residue goes to the last non-zero head so the shares
    add up to base_amount exactly. All shares are 0 when the heads sum to 0.
    """
    amounts = [to_decimal(item.amount) for item in items]
    total = sum(amounts, ZERO)
    if total == ZERO:
        return [ZERO for _ in amounts]

    base = to_decimal(base_amount)
    shares = [quantize(amount / total * base) for amount in amounts]

    residue = quantize(base) - sum(shares, ZERO)
    if residue:
        last = max(i for i, amount in enumerate(amounts) if amount != ZERO)
        shares[last] += residue
    return shares


# --- Payment matcher ---
def match_payments(payments: Iterable[PaymentRecord], fee_ids: Iterable[UUID]) -> List[PaymentRecord]:
    """Non-reversed payments with at least one allocation against fee_ids, in input order."""
    targets = {str(fid) for fid in fee_ids}
    return [
        payment
        for payment in payments
        if not payment.is_reversed
        and any(str(alloc.student_fee_id) in targets for alloc in payment.allocations)
    ]


# --- Installments ---
def installment_pending(inst: InstallmentRecord) -> Decimal:
    return (
        to_decimal(inst.amount)
        - to_decimal(inst.discount_amount)
        + to_decimal(inst.fine_amount)
        - to_decimal(inst.paid_amount)
    )


def days_overdue(due_date: date, today: date) -> int:
    """Whole days past due; 0 when not yet due."""
    return max(0, (today - due_date).days)


def installment_status(inst: InstallmentRecord, today: Optional[date] = None) -> str:
    if installment_pending(inst) <= ZERO:
        return InstallmentStatus.paid.value
    if today is not None and inst.due_date < today:
        return InstallmentStatus.overdue.value
    if to_decimal(inst.paid_amount) > ZERO:
        return InstallmentStatus.partial.value
    return InstallmentStatus.pending.value
