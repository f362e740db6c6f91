from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from feeledger.core.reporting import (
    month_bounds,
    summarize_class_wise,
    summarize_daily,
    summarize_monthly,
    summarize_overdue,
    summarize_pending,
)
from feeledger.core.schemas import FeeRecord, InstallmentRecord, PaymentRecord, StudentRecord

TODAY = date(2026, 10, 17)


def _payment(student_id, amount, day, reversed_=False, class_name="5", section="A") -> PaymentRecord:
    return PaymentRecord(
        id=uuid4(),
        student_id=student_id,
        amount=amount,
        payment_date=day,
        is_reversed=reversed_,
        class_name=class_name,
        section=section,
    )


def _installment(student_id, due_in_days, amount, paid=0, discount=0, fine=0) -> InstallmentRecord:
    return InstallmentRecord(
        id=uuid4(),
        student_id=student_id,
        due_date=TODAY + timedelta(days=due_in_days),
        amount=amount,
        paid_amount=paid,
        discount_amount=discount,
        fine_amount=fine,
    )


def test_empty_inputs_give_zeroed_reports() -> None:
    daily = summarize_daily([], TODAY)
    assert daily.summary.total_collected == Decimal("0")
    assert daily.summary.transaction_count == 0
    assert daily.collections == []

    monthly = summarize_monthly([], "2026-10")
    assert monthly.total_collected == Decimal("0")
    assert monthly.total_transactions == 0
    assert monthly.daily_breakdown == []

    pending = summarize_pending([], TODAY)
    assert pending.summary.total_pending == Decimal("0")
    assert pending.summary.students_count == 0

    overdue = summarize_overdue([], TODAY)
    assert overdue.summary.total_overdue == Decimal("0")
    assert overdue.summary.average_days_overdue == 0

    assert summarize_class_wise([], [], []) == []


def test_daily_excludes_reversed_and_other_days() -> None:
    s1, s2 = uuid4(), uuid4()
    report = summarize_daily(
        [
            _payment(s1, 1000, TODAY),
            _payment(s2, 500, TODAY),
            _payment(s1, 2000, TODAY, reversed_=True),
            _payment(s1, 300, TODAY - timedelta(days=1)),
        ],
        TODAY,
    )
    assert report.summary.total_collected == Decimal("1500")
    assert report.summary.transaction_count == 2
    assert report.summary.students_count == 2


def test_monthly_breakdowns() -> None:
    s1, s2, s3 = uuid4(), uuid4(), uuid4()
    report = summarize_monthly(
        [
            _payment(s1, 1000, date(2026, 3, 5)),
            _payment(s2, 500, date(2026, 3, 5)),
            _payment(s3, 750, date(2026, 3, 20), class_name="6", section="B"),
            _payment(s1, 9999, date(2026, 4, 1)),
            _payment(s2, 100, date(2026, 3, 9), reversed_=True),
        ],
        "2026-03",
    )
    assert report.month == "2026-03"
    assert report.total_collected == Decimal("2250")
    assert report.total_transactions == 3
    assert report.summary.students_count == 3
    assert [(d.date, d.total_collected) for d in report.daily_breakdown] == [
        (date(2026, 3, 5), Decimal("1500")),
        (date(2026, 3, 20), Decimal("750")),
    ]
    assert [(c.class_name, c.section, c.students_count) for c in report.class_breakdown] == [
        ("5", "A", 2),
        ("6", "B", 1),
    ]


def test_month_bounds_wraps_december() -> None:
    assert month_bounds("2026-12") == (date(2026, 12, 1), date(2027, 1, 1))
    with pytest.raises(ValueError):
        month_bounds("2026-13")


def test_pending_keeps_positive_balances() -> None:
    s1, s2 = uuid4(), uuid4()
    report = summarize_pending(
        [
            _installment(s1, -10, 1000),
            _installment(s2, 30, 2000, paid=400, discount=200, fine=100),
            _installment(s2, 5, 500, paid=500),
        ],
        TODAY,
    )
    assert report.summary.total_pending == Decimal("2500")
    assert report.summary.total_count == 2
    assert report.summary.students_count == 2
    first = report.installments[0]
    assert first.pending_amount == Decimal("1000")
    assert first.days_overdue == 10
    assert first.is_overdue is True
    assert report.installments[1].is_overdue is False


def test_overdue_average_days() -> None:
    s1, s2 = uuid4(), uuid4()
    report = summarize_overdue(
        [
            _installment(s1, -10, 1000),
            _installment(s2, -21, 2000, paid=500),
            _installment(s2, -3, 700, paid=700),
            _installment(s1, 4, 900),
        ],
        TODAY,
    )
    assert report.summary.total_overdue == Decimal("2500")
    assert report.summary.total_count == 2
    assert report.summary.students_count == 2
    # (10 + 21) / 2 = 15.5 rounds half up
    assert report.summary.average_days_overdue == 16
    assert [row.days_overdue for row in report.installments] == [10, 21]


def test_class_wise_rows() -> None:
    s1, s2, s3 = uuid4(), uuid4(), uuid4()
    students = [
        StudentRecord(id=s1, class_name="5", section="A", academic_year="2026-2027"),
        StudentRecord(id=s2, class_name="5", section="A", academic_year="2026-2027"),
        StudentRecord(id=s3, class_name="6", section="B", academic_year="2026-2027"),
    ]
    fees = [
        FeeRecord(id=uuid4(), student_id=s1, base_amount=4500, paid_amount=1000),
        FeeRecord(id=uuid4(), student_id=s2, base_amount=4500, adjustment_amount=-500, paid_amount=500),
        FeeRecord(id=uuid4(), student_id=s3, base_amount=3000),
    ]
    payments = [
        _payment(s1, 1000, TODAY),
        _payment(s2, 500, TODAY),
        _payment(s3, 750, TODAY),
        _payment(s3, 400, TODAY, reversed_=True),
    ]
    rows = summarize_class_wise(students, fees, payments)
    assert [(r.class_name, r.section, r.total_students) for r in rows] == [("5", "A", 2), ("6", "B", 1)]
    assert rows[0].expected == Decimal("8500")
    assert rows[0].collected == Decimal("1500")
    assert rows[0].pending == Decimal("7000")
    assert rows[1].collected == Decimal("750")
    assert rows[1].pending == Decimal("3000")
