from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from feeledger.core.schemas import FeeRecord, FeeStructureLine, PaymentRecord
from feeledger.receipts.builder import (
    AllocationLine,
    SchoolHeader,
    StudentBlock,
    build_fee_receipt,
    build_payment_receipt,
)
from feeledger.receipts.renderer import render_fee_receipt, render_payment_receipt

GENERATED = datetime(2026, 10, 17, 14, 5, 0)
SCHOOL = SchoolHeader(
    school_name="Green Valley School",
    school_address="12 MG Road",
    city="Pune",
    state="Maharashtra",
    zip_code="411001",
)
STUDENT = StudentBlock(student_name="Aarav Sharma", admission_no="GV-101", class_name="5", section="A")


def _document():
    structure_id = uuid4()
    paid = FeeRecord(
        id=uuid4(),
        fee_structure_id=structure_id,
        base_amount=4500,
        paid_amount=4500,
        due_month=date(2026, 4, 1),
        due_date=date(2026, 4, 10),
        status="paid",
    )
    partial = FeeRecord(
        id=uuid4(),
        fee_structure_id=structure_id,
        base_amount=4500,
        adjustment_amount=-500,
        paid_amount=1500,
        due_month=date(2026, 5, 1),
        due_date=date(2026, 5, 10),
        status="overdue",
    )
    payments = [
        PaymentRecord(
            id=uuid4(),
            student_id=uuid4(),
            amount=6000,
            payment_date=date(2026, 5, 2),
            receipt_no="GVS001/REC/2026/00001",
            allocations=[{"student_fee_id": paid.id, "allocated_amount": 4500}],
        ),
        PaymentRecord(
            id=uuid4(),
            student_id=uuid4(),
            amount=800,
            is_reversed=True,
            receipt_no="GVS001/REC/2026/00002",
            allocations=[{"student_fee_id": partial.id, "allocated_amount": 800}],
        ),
    ]
    lines = {
        structure_id: [
            FeeStructureLine(amount=3000, name="Tuition"),
            FeeStructureLine(amount=1500, name="Transport", is_optional=True),
        ]
    }
    return build_fee_receipt(
        SCHOOL, STUDENT, [paid, partial], payments, lines, {structure_id: "Term Fees"}, GENERATED
    )


def test_builder_totals_and_matching() -> None:
    doc = _document()
    assert doc.totals.total_amount == Decimal("8500")
    assert doc.totals.total_paid == Decimal("6000")
    assert doc.totals.total_due == Decimal("2500")
    assert [s.status for s in doc.sections] == ["Paid", "Overdue"]
    assert [p.receipt_no for p in doc.payments] == ["GVS001/REC/2026/00001"]
    assert [h.allocated for h in doc.sections[0].heads] == [Decimal("3000.00"), Decimal("1500.00")]


def test_fee_receipt_has_two_identical_copies() -> None:
    html = render_fee_receipt(_document())
    assert html.count('class="page-container"') == 2
    assert html.count("SCHOOL COPY") == 1
    assert html.count("STUDENT COPY") == 1
    assert html.count("Aarav Sharma") >= 2
    assert html.count("Total Due:") == 2
    assert "₹8,500.00" in html
    assert "-₹500" in html
    assert "Transport (Optional)" in html
    assert "Pune, Maharashtra, 411001" in html
    assert "This is a computer-generated receipt. No signature required." in html
    assert "GVS001/REC/2026/00002" not in html


def test_school_name_is_escaped() -> None:
    doc = _document()
    doc.school.school_name = "<b>Green & Valley</b>"
    html = render_fee_receipt(doc)
    assert "&lt;b&gt;Green &amp; Valley&lt;/b&gt;" in html


def test_payment_receipt() -> None:
    payment = PaymentRecord(
        id=uuid4(),
        student_id=uuid4(),
        amount=Decimal("52000"),
        payment_mode="UPI",
        payment_date=date(2026, 10, 16),
        receipt_no="GVS001/REC/2026/00042",
    )
    doc = build_payment_receipt(
        SCHOOL,
        STUDENT,
        payment,
        [AllocationLine(fee_name="Term Fees", due_month=date(2026, 10, 1), allocated_amount=Decimal("52000"))],
        issued_at=None,
        generated_at=GENERATED,
        reference_no="UPI-7781",
    )
    assert doc.receipt_date == date(2026, 10, 16)
    html = render_payment_receipt(doc)
    assert html.count('class="page-container"') == 2
    assert "Rupees Fifty Two Thousand Only" in html
    assert "₹52,000.00" in html
    assert "16 October 2026" in html
    assert "Oct 2026" in html
    assert "UPI-7781" in html


def test_uneven_allocation_shows_two_decimals() -> None:
    structure_id = uuid4()
    fee = FeeRecord(
        id=uuid4(),
        fee_structure_id=structure_id,
        base_amount=333,
        due_month=date(2026, 6, 1),
        due_date=date(2026, 6, 10),
    )
    lines = {structure_id: [FeeStructureLine(amount=1, name="Library"), FeeStructureLine(amount=1, name="Sports")]}
    html = render_fee_receipt(build_fee_receipt(SCHOOL, STUDENT, [fee], [], lines, {}, GENERATED))
    assert html.count("Allocated: ₹166.50") == 4
    assert "₹166.5<" not in html
