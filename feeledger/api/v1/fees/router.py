"""Fees router: fee heads, structures, fee generation, student fees, adjustments, payments."""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.rbac import check_permission
from feeledger.auth.schemas import CurrentUser
from feeledger.core.exceptions import ServiceError
from feeledger.db.session import get_db

from .schemas import (
    AdjustmentCreate,
    AdjustmentResponse,
    FeeHeadCreate,
    FeeHeadResponse,
    FeeHeadUpdate,
    FeeStructureCreate,
    FeeStructureResponse,
    GenerateFeesResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentReverse,
    StudentFeeResponse,
    StudentStatementResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fees"])


# --- Fee Heads ---
@router.post("/fee-heads", response_model=FeeHeadResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_head(
    payload: FeeHeadCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "create")),
) -> FeeHeadResponse:
    try:
        return await service.create_fee_head(db, current_user.school_id, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/fee-heads", response_model=List[FeeHeadResponse])
async def list_fee_heads(
    include_inactive: bool = Query(False, description="Include deactivated fee heads"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[FeeHeadResponse]:
    return await service.list_fee_heads(db, current_user.school_id, include_inactive=include_inactive)


@router.patch("/fee-heads/{fee_head_id}", response_model=FeeHeadResponse)
async def update_fee_head(
    fee_head_id: UUID,
    payload: FeeHeadUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> FeeHeadResponse:
    try:
        return await service.update_fee_head(db, current_user.school_id, fee_head_id, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Fee Structures ---
@router.post("/fee-structures", response_model=FeeStructureResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_structure(
    payload: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "create")),
) -> FeeStructureResponse:
    try:
        return await service.create_fee_structure(db, current_user.school_id, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/fee-structures", response_model=List[FeeStructureResponse])
async def list_fee_structures(
    class_name: Optional[str] = Query(None),
    academic_year: Optional[str] = Query(None),
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[FeeStructureResponse]:
    return await service.list_fee_structures(
        db,
        current_user.school_id,
        class_name=class_name,
        academic_year=academic_year,
        active_only=active_only,
    )


@router.get("/fee-structures/{structure_id}", response_model=FeeStructureResponse)
async def get_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> FeeStructureResponse:
    try:
        return await service.get_fee_structure(db, current_user.school_id, structure_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/fee-structures/{structure_id}/activate", response_model=FeeStructureResponse)
async def activate_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> FeeStructureResponse:
    try:
        return await service.set_fee_structure_active(db, current_user.school_id, structure_id, True, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/fee-structures/{structure_id}/deactivate", response_model=FeeStructureResponse)
async def deactivate_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> FeeStructureResponse:
    try:
        return await service.set_fee_structure_active(db, current_user.school_id, structure_id, False, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/fee-structures/{structure_id}/generate-fees", response_model=GenerateFeesResponse)
async def generate_fees(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "create")),
) -> GenerateFeesResponse:
    try:
        return await service.generate_fees(db, current_user.school_id, structure_id, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Student Fees ---
@router.get("/students/{student_id}/fees", response_model=List[StudentFeeResponse])
async def list_student_fees(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[StudentFeeResponse]:
    try:
        return await service.list_student_fees(db, current_user.school_id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/students/{student_id}/statement", response_model=StudentStatementResponse)
async def get_student_statement(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> StudentStatementResponse:
    try:
        return await service.get_student_statement(db, current_user.school_id, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Adjustments ---
@router.post("/adjustments", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "create")),
) -> AdjustmentResponse:
    try:
        return await service.create_adjustment(db, current_user.school_id, payload, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/adjustments", response_model=List[AdjustmentResponse])
async def list_adjustments(
    status_filter: Optional[str] = Query(None, alias="status", description="pending, approved or rejected"),
    student_fee_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[AdjustmentResponse]:
    return await service.list_adjustments(
        db,
        current_user.school_id,
        status_filter=status_filter,
        student_fee_id=student_fee_id,
    )


@router.post("/adjustments/{adjustment_id}/approve", response_model=AdjustmentResponse)
async def approve_adjustment(
    adjustment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> AdjustmentResponse:
    try:
        return await service.review_adjustment(db, current_user.school_id, adjustment_id, True, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/adjustments/{adjustment_id}/reject", response_model=AdjustmentResponse)
async def reject_adjustment(
    adjustment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> AdjustmentResponse:
    try:
        return await service.review_adjustment(db, current_user.school_id, adjustment_id, False, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# --- Payments ---
@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def collect_payment(
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "create")),
) -> PaymentResponse:
    try:
        return await service.collect_payment(
            db,
            current_user.school_id,
            current_user.school_code,
            payload,
            collected_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(
    student_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    include_reversed: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[PaymentResponse]:
    return await service.list_payments(
        db,
        current_user.school_id,
        student_id=student_id,
        start_date=start_date,
        end_date=end_date,
        include_reversed=include_reversed,
    )


@router.post("/payments/{payment_id}/reverse", response_model=PaymentResponse)
async def reverse_payment(
    payment_id: UUID,
    payload: PaymentReverse,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "update")),
) -> PaymentResponse:
    try:
        return await service.reverse_payment(db, current_user.school_id, payment_id, payload.reason, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
