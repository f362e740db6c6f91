from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ReceiptDownloadRequest(BaseModel):
    """Identifiers are checked by the service so that a missing one is a 400, not a 422."""

    school_code: Optional[str] = None
    student_id: Optional[UUID] = None
    fee_ids: List[UUID] = Field(default_factory=list)
