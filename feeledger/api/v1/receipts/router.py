"""Receipt downloads (HTML, two copies per page set)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import ensure_school_access
from feeledger.auth.rbac import check_permission
from feeledger.auth.schemas import CurrentUser
from feeledger.core.exceptions import ServiceError
from feeledger.db.session import get_db

from .schemas import ReceiptDownloadRequest
from . import service

router = APIRouter(prefix="/api/v1/fees/receipts", tags=["receipts"])


@router.post("/download", response_class=HTMLResponse)
async def download_fee_receipt(
    payload: ReceiptDownloadRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> HTMLResponse:
    ensure_school_access(current_user, payload.school_code)
    try:
        html = await service.fee_receipt_html(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return HTMLResponse(
        content=html,
        headers={"Content-Disposition": f'inline; filename="fee-receipt-{payload.student_id}.html"'},
    )


@router.get("/{payment_id}/download", response_class=HTMLResponse)
async def download_payment_receipt(
    payment_id: UUID,
    school_code: str = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(check_permission("fees", "read")),
) -> HTMLResponse:
    ensure_school_access(current_user, school_code)
    try:
        html = await service.payment_receipt_html(db, school_code, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return HTMLResponse(
        content=html,
        headers={"Content-Disposition": f'inline; filename="receipt-{payment_id}.html"'},
    )
