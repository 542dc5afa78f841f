"""
Case management endpoints
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_user, require_lawyer
from app.db.database import get_db
from app.db.models import CaseStatus, User
from app.db.schemas import (
    CaseListResponse,
    CaseResponse,
    CaseStatusUpdate,
    CaseUpdate,
    LawyerStatsResponse,
)
from app.services.case_service import case_service

router = APIRouter()

# ============================================================================
# List & Stats
# ============================================================================

@router.get("/", response_model=CaseListResponse)
def get_cases(
    status: Optional[CaseStatus] = Query(None, description="Filter by status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Cases for the authenticated user: a lawyer sees the cases they own,
    a client the cases opened on their behalf.
    """
    cases = case_service.list_cases(db, current_user, status)
    return CaseListResponse(
        cases=[CaseResponse.model_validate(c) for c in cases],
        total=len(cases),
    )


@router.get("/stats", response_model=LawyerStatsResponse)
def get_case_stats(
    period_days: Optional[int] = Query(None, ge=1, le=3650, description="Only count cases created in this window"),
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    stats = case_service.lawyer_stats(db, current_user, period_days)
    return LawyerStatsResponse(**stats, period_days=period_days)


@router.get("/{case_id}", response_model=CaseResponse)
def get_case(
    case_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return case_service.get_case(db, current_user, case_id)

# ============================================================================
# Updates (lawyer only)
# ============================================================================

@router.patch("/{case_id}/status", response_model=CaseResponse)
def update_case_status(
    case_id: UUID,
    payload: CaseStatusUpdate,
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    """Move a case forward; backward or skipped transitions return 409"""
    return case_service.update_case_status(db, current_user, case_id, payload.status)


@router.patch("/{case_id}", response_model=CaseResponse)
def update_case(
    case_id: UUID,
    payload: CaseUpdate,
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    return case_service.update_case_details(
        db, current_user, case_id, payload.title, payload.description
    )
