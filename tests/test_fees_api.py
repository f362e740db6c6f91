from decimal import Decimal
from typing import Dict, List
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from feeledger.core.models import FeeAuditLog, FeeInstallment, Receipt


async def _create_heads(client: AsyncClient, headers: Dict[str, str]) -> Dict[str, str]:
    tuition = await client.post("/api/v1/fees/fee-heads", json={"name": "Tuition"}, headers=headers)
    transport = await client.post(
        "/api/v1/fees/fee-heads",
        json={"name": "Transport", "description": "Bus route 4", "is_optional": True},
        headers=headers,
    )
    assert tuition.status_code == 201
    assert transport.status_code == 201
    return {"tuition": tuition.json()["id"], "transport": transport.json()["id"]}


async def _create_structure(client: AsyncClient, headers: Dict[str, str], heads: Dict[str, str], **overrides) -> Dict:
    payload = {
        "name": "Class 5 Monthly Fees",
        "class_name": "5",
        "section": "A",
        "academic_year": "2030-2031",
        "start_month": 4,
        "end_month": 6,
        "frequency": "monthly",
        "payment_due_day": 10,
        "items": [
            {"fee_head_id": heads["tuition"], "amount": "3000"},
            {"fee_head_id": heads["transport"], "amount": "1500"},
        ],
    }
    payload.update(overrides)
    response = await client.post("/api/v1/fees/fee-structures", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _generated_fees(client: AsyncClient, headers: Dict[str, str], students) -> List[Dict]:
    heads = await _create_heads(client, headers)
    structure = await _create_structure(client, headers, heads)
    await client.post(f"/api/v1/fees/fee-structures/{structure['id']}/activate", headers=headers)
    await client.post(f"/api/v1/fees/fee-structures/{structure['id']}/generate-fees", headers=headers)
    response = await client.get(f"/api/v1/fees/students/{students['aarav'].id}/fees", headers=headers)
    return response.json()


@pytest.mark.asyncio
async def test_fee_heads_crud(client: AsyncClient, auth_headers) -> None:
    heads = await _create_heads(client, auth_headers)

    duplicate = await client.post("/api/v1/fees/fee-heads", json={"name": "Tuition"}, headers=auth_headers)
    assert duplicate.status_code == 409

    response = await client.patch(
        f"/api/v1/fees/fee-heads/{heads['transport']}",
        json={"is_active": False},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    active = await client.get("/api/v1/fees/fee-heads", headers=auth_headers)
    assert [h["name"] for h in active.json()] == ["Tuition"]
    everything = await client.get("/api/v1/fees/fee-heads?include_inactive=true", headers=auth_headers)
    assert [h["name"] for h in everything.json()] == ["Transport", "Tuition"]


@pytest.mark.asyncio
async def test_fee_structure_validation(client: AsyncClient, auth_headers) -> None:
    heads = await _create_heads(client, auth_headers)
    base = {
        "name": "Bad",
        "class_name": "5",
        "start_month": 13,
        "end_month": 3,
        "frequency": "monthly",
        "items": [{"fee_head_id": heads["tuition"], "amount": "100"}],
    }
    assert (await client.post("/api/v1/fees/fee-structures", json=base, headers=auth_headers)).status_code == 422

    no_items = dict(base, start_month=4, items=[])
    assert (await client.post("/api/v1/fees/fee-structures", json=no_items, headers=auth_headers)).status_code == 422

    bad_frequency = dict(base, start_month=4, frequency="weekly")
    response = await client.post("/api/v1/fees/fee-structures", json=bad_frequency, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_and_generate_fees(client: AsyncClient, auth_headers, students) -> None:
    heads = await _create_heads(client, auth_headers)
    structure = await _create_structure(client, auth_headers, heads)
    assert structure["is_active"] is False
    assert Decimal(structure["total_amount"]) == Decimal("4500")
    assert [i["fee_head_name"] for i in structure["items"]] == ["Tuition", "Transport"]

    generate_url = f"/api/v1/fees/fee-structures/{structure['id']}/generate-fees"
    inactive = await client.post(generate_url, headers=auth_headers)
    assert inactive.status_code == 400
    assert inactive.json()["detail"] == "Fee structure must be active to generate fees"

    activated = await client.post(f"/api/v1/fees/fee-structures/{structure['id']}/activate", headers=auth_headers)
    assert activated.json()["is_active"] is True

    response = await client.post(generate_url, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    # Aarav (section "A") and Diya (section "a") match; Kabir is in class 6
    assert data["students_processed"] == 2
    assert data["months_generated"] == 3
    assert data["fees_generated"] == 6
    assert data["skipped"] == 0

    again = (await client.post(generate_url, headers=auth_headers)).json()
    assert again["fees_generated"] == 0
    assert again["skipped"] == 6

    fees = (await client.get(f"/api/v1/fees/students/{students['aarav'].id}/fees", headers=auth_headers)).json()
    assert [f["due_date"] for f in fees] == ["2030-04-10", "2030-05-10", "2030-06-10"]
    assert all(Decimal(f["base_amount"]) == Decimal("4500") for f in fees)
    assert all(f["status"] == "pending" and f["display_status"] == "Pending" for f in fees)
    assert all(Decimal(f["total_due"]) == Decimal("4500") for f in fees)


@pytest.mark.asyncio
async def test_generation_wraps_year_and_clamps_due_day(client: AsyncClient, auth_headers, students) -> None:
    heads = await _create_heads(client, auth_headers)
    structure = await _create_structure(
        client,
        auth_headers,
        heads,
        section=None,
        start_month=11,
        end_month=2,
        frequency="quarterly",
        payment_due_day=31,
    )
    await client.post(f"/api/v1/fees/fee-structures/{structure['id']}/activate", headers=auth_headers)
    data = (
        await client.post(f"/api/v1/fees/fee-structures/{structure['id']}/generate-fees", headers=auth_headers)
    ).json()
    assert data["months_generated"] == 2

    fees = (await client.get(f"/api/v1/fees/students/{students['diya'].id}/fees", headers=auth_headers)).json()
    assert [(f["due_month"], f["due_date"]) for f in fees] == [
        ("2030-11-01", "2030-11-30"),
        ("2031-02-01", "2031-02-28"),
    ]


@pytest.mark.asyncio
async def test_collect_payment_and_reverse(client: AsyncClient, auth_headers, students, session_factory) -> None:
    april, may, june = await _generated_fees(client, auth_headers, students)
    student_id = str(students["aarav"].id)

    response = await client.post(
        "/api/v1/fees/payments",
        json={
            "student_id": student_id,
            "amount": "6000",
            "payment_mode": "cash",
            "allocations": [
                {"student_fee_id": april["id"], "allocated_amount": "4500"},
                {"student_fee_id": may["id"], "allocated_amount": "1500"},
            ],
        },
        headers=auth_headers,
    )
    assert response.status_code == 201, response.text
    first = response.json()
    assert first["payment_mode"] == "CASH"
    assert first["receipt_no"].startswith("GVS001/REC/")
    assert first["receipt_no"].endswith("/00001")
    assert len(first["allocations"]) == 2

    fees = (await client.get(f"/api/v1/fees/students/{student_id}/fees", headers=auth_headers)).json()
    assert (fees[0]["status"], fees[0]["display_status"], Decimal(fees[0]["balance_due"])) == ("paid", "Paid", 0)
    assert (fees[1]["status"], Decimal(fees[1]["balance_due"])) == ("partial", Decimal("3000"))

    second = (
        await client.post(
            "/api/v1/fees/payments",
            json={
                "student_id": student_id,
                "amount": "1000",
                "payment_mode": "UPI",
                "reference_no": "UPI-1234",
                "allocations": [{"student_fee_id": june["id"], "allocated_amount": "1000"}],
            },
            headers=auth_headers,
        )
    ).json()
    assert second["receipt_no"].endswith("/00002")

    reversed_ = await client.post(
        f"/api/v1/fees/payments/{first['id']}/reverse",
        json={"reason": "Cheque bounced"},
        headers=auth_headers,
    )
    assert reversed_.status_code == 200
    assert reversed_.json()["is_reversed"] is True

    again = await client.post(
        f"/api/v1/fees/payments/{first['id']}/reverse",
        json={"reason": "Cheque bounced"},
        headers=auth_headers,
    )
    assert again.status_code == 400

    fees = (await client.get(f"/api/v1/fees/students/{student_id}/fees", headers=auth_headers)).json()
    assert [Decimal(f["paid_amount"]) for f in fees] == [0, 0, Decimal("1000")]
    assert [f["status"] for f in fees] == ["pending", "pending", "partial"]

    listed = (await client.get("/api/v1/fees/payments", headers=auth_headers)).json()
    assert [p["id"] for p in listed] == [second["id"]]
    with_reversed = (await client.get("/api/v1/fees/payments?include_reversed=true", headers=auth_headers)).json()
    assert len(with_reversed) == 2

    async with session_factory() as session:
        receipt = (await session.execute(select(Receipt).where(Receipt.payment_id == UUID(first["id"])))).scalar_one()
        assert receipt.is_cancelled is True
        assert receipt.receipt_data["amount"] == "6000"
        installment = (
            await session.execute(select(FeeInstallment).where(FeeInstallment.student_fee_id == UUID(june["id"])))
        ).scalar_one()
        assert Decimal(installment.paid_amount) == Decimal("1000")
        assert installment.status == "partial"
        actions = (await session.execute(select(FeeAuditLog.action_type))).scalars().all()
        assert "REVERSE" in actions


@pytest.mark.asyncio
async def test_payment_validation(client: AsyncClient, auth_headers, students) -> None:
    april, may, _ = await _generated_fees(client, auth_headers, students)
    student_id = str(students["aarav"].id)

    mismatch = await client.post(
        "/api/v1/fees/payments",
        json={
            "student_id": student_id,
            "amount": "100",
            "payment_mode": "CASH",
            "allocations": [{"student_fee_id": april["id"], "allocated_amount": "200"}],
        },
        headers=auth_headers,
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["detail"] == "Allocated amounts must add up to the payment amount"

    too_much = await client.post(
        "/api/v1/fees/payments",
        json={
            "student_id": student_id,
            "amount": "5000",
            "payment_mode": "CASH",
            "allocations": [{"student_fee_id": may["id"], "allocated_amount": "5000"}],
        },
        headers=auth_headers,
    )
    assert too_much.status_code == 400

    other_student = await client.post(
        "/api/v1/fees/payments",
        json={
            "student_id": str(students["kabir"].id),
            "amount": "100",
            "payment_mode": "CASH",
            "allocations": [{"student_fee_id": april["id"], "allocated_amount": "100"}],
        },
        headers=auth_headers,
    )
    assert other_student.status_code == 400
    assert other_student.json()["detail"] == "One or more fees do not belong to this student"

    zero = await client.post(
        "/api/v1/fees/payments",
        json={"student_id": student_id, "amount": "0", "payment_mode": "CASH", "allocations": []},
        headers=auth_headers,
    )
    assert zero.status_code == 422


@pytest.mark.asyncio
async def test_adjustment_review(client: AsyncClient, auth_headers, students) -> None:
    _, _, june = await _generated_fees(client, auth_headers, students)

    missing_reason = await client.post(
        "/api/v1/fees/adjustments",
        json={"student_fee_id": june["id"], "amount": "-500", "adjustment_type": "discount", "reason": "  "},
        headers=auth_headers,
    )
    assert missing_reason.status_code == 422

    created = await client.post(
        "/api/v1/fees/adjustments",
        json={
            "student_fee_id": june["id"],
            "amount": "-500",
            "adjustment_type": "discount",
            "reason": "Sibling discount",
        },
        headers=auth_headers,
    )
    assert created.status_code == 201
    adjustment = created.json()
    assert adjustment["status"] == "pending"

    pending = (await client.get("/api/v1/fees/adjustments?status=pending", headers=auth_headers)).json()
    assert [a["id"] for a in pending] == [adjustment["id"]]

    approved = await client.post(f"/api/v1/fees/adjustments/{adjustment['id']}/approve", headers=auth_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    again = await client.post(f"/api/v1/fees/adjustments/{adjustment['id']}/reject", headers=auth_headers)
    assert again.status_code == 400

    fees = (await client.get(f"/api/v1/fees/students/{students['aarav'].id}/fees", headers=auth_headers)).json()
    assert Decimal(fees[2]["adjustment_amount"]) == Decimal("-500")
    assert Decimal(fees[2]["balance_due"]) == Decimal("4000")


@pytest.mark.asyncio
async def test_student_statement(client: AsyncClient, auth_headers, students) -> None:
    april, _, _ = await _generated_fees(client, auth_headers, students)
    student_id = str(students["aarav"].id)
    await client.post(
        "/api/v1/fees/payments",
        json={
            "student_id": student_id,
            "amount": "4500",
            "payment_mode": "CARD",
            "allocations": [{"student_fee_id": april["id"], "allocated_amount": "4500"}],
        },
        headers=auth_headers,
    )
    statement = (await client.get(f"/api/v1/fees/students/{student_id}/statement", headers=auth_headers)).json()
    assert statement["student"]["admission_no"] == "GV-101"
    assert len(statement["fees"]) == 3
    assert len(statement["payments"]) == 1
    assert Decimal(statement["totals"]["total_amount"]) == Decimal("13500")
    assert Decimal(statement["totals"]["total_paid"]) == Decimal("4500")
    assert Decimal(statement["totals"]["total_due"]) == Decimal("9000")

    missing = await client.get(
        "/api/v1/fees/students/00000000-0000-0000-0000-000000000000/statement", headers=auth_headers
    )
    assert missing.status_code == 404
