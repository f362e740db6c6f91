"""Fee reports: daily and monthly collections, pending and overdue dues, class-wise totals. Read-only."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.rbac import check_permission
from feeledger.auth.schemas import CurrentUser
from feeledger.core.exceptions import ServiceError
from feeledger.core.reporting import (
    ClassWiseRow,
    DailyCollectionReport,
    MonthlyCollectionReport,
    OverdueReport,
    PendingReport,
)
from feeledger.db.session import get_db

from . import service

router = APIRouter(prefix="/api/v1/fees/reports", tags=["reports"])


@router.get("/daily", response_model=DailyCollectionReport)
async def daily_collection(
    day: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD, defaults to today"),
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> DailyCollectionReport:
    return await service.daily_report(db, current_user.school_id, day, class_name=class_name, section=section)


@router.get("/monthly", response_model=MonthlyCollectionReport)
async def monthly_collection(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> MonthlyCollectionReport:
    try:
        return await service.monthly_report(
            db, current_user.school_id, month, class_name=class_name, section=section
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/pending", response_model=PendingReport)
async def pending_dues(
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> PendingReport:
    return await service.pending_report(
        db,
        current_user.school_id,
        class_name=class_name,
        section=section,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/overdue", response_model=OverdueReport)
async def overdue_dues(
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> OverdueReport:
    return await service.overdue_report(db, current_user.school_id, class_name=class_name, section=section)


@router.get("/class-wise", response_model=List[ClassWiseRow])
async def class_wise(
    academic_year: Optional[str] = Query(None),
    class_name: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> List[ClassWiseRow]:
    return await service.class_wise_report(
        db, current_user.school_id, academic_year=academic_year, class_name=class_name
    )
