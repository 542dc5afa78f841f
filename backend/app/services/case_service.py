# app/services/case_service.py
"""
Case management for lawyers.

Cases are only ever created by accepting a case request (see
conversation_service). Afterwards the owning lawyer moves them forward:

    pending -> active -> won | lost -> closed

A case always ends on an outcome before it is closed; there is no
shortcut from active straight to closed.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.logger import logger
from app.db.models import Case, CaseStatus, Conversation, ConversationStatus, Message, User, UserRole
from app.utils.exceptions import CaseNotFoundError, ConflictError, ForbiddenError
from app.utils.helpers import utcnow
from app.utils.validators import require_text

ALLOWED_TRANSITIONS: Dict[CaseStatus, frozenset] = {
    CaseStatus.pending: frozenset({CaseStatus.active}),
    CaseStatus.active: frozenset({CaseStatus.won, CaseStatus.lost}),
    CaseStatus.won: frozenset({CaseStatus.closed}),
    CaseStatus.lost: frozenset({CaseStatus.closed}),
    CaseStatus.closed: frozenset(),
}


def can_transition(current: CaseStatus, new: CaseStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


class CaseService:

    def get_case(self, db: Session, user: User, case_id: UUID) -> Case:
        """Case visible to either participant"""
        case = db.query(Case).filter(Case.id == case_id).first()
        if case is None:
            raise CaseNotFoundError(str(case_id))
        if user.id not in (case.lawyer_id, case.client_id):
            raise ForbiddenError()
        return case

    def _owned_case(self, db: Session, lawyer: User, case_id: UUID) -> Case:
        case = db.query(Case).filter(Case.id == case_id).with_for_update().first()
        if case is None:
            raise CaseNotFoundError(str(case_id))
        if case.lawyer_id != lawyer.id:
            raise ForbiddenError("Only the case's lawyer can modify it")
        return case

    def list_cases(
        self,
        db: Session,
        user: User,
        status: Optional[CaseStatus] = None,
    ) -> List[Case]:
        query = db.query(Case)
        if user.role == UserRole.lawyer:
            query = query.filter(Case.lawyer_id == user.id)
        else:
            query = query.filter(Case.client_id == user.id)
        if status is not None:
            query = query.filter(Case.status == status)
        return query.order_by(Case.created_at.desc()).all()

    def update_case_status(self, db: Session, lawyer: User, case_id: UUID, new_status: CaseStatus) -> Case:
        try:
            case = self._owned_case(db, lawyer, case_id)
            current = case.status
            if not can_transition(current, new_status):
                logger.warning(
                    "Case %s status change %s -> %s refused",
                    case.id, current.value, new_status.value,
                )
                raise ConflictError(
                    f"Cannot move case from {current.value} to {new_status.value}"
                )
            now = utcnow()
            case.status = new_status
            case.updated_at = now
            if new_status == CaseStatus.closed:
                case.closed_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(case)
        logger.info("Case %s status %s -> %s by lawyer %s", case.id, current.value, new_status.value, lawyer.id)
        return case

    def update_case_details(
        self,
        db: Session,
        lawyer: User,
        case_id: UUID,
        title: Optional[str],
        description: Optional[str],
    ) -> Case:
        clean_title = require_text(title, "title")
        clean_description = require_text(description, "description")
        try:
            case = self._owned_case(db, lawyer, case_id)
            case.title = clean_title
            case.description = clean_description
            case.updated_at = utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(case)
        return case

    def lawyer_stats(self, db: Session, lawyer: User, period_days: Optional[int] = None) -> Dict[str, int]:
        """
        Dashboard counters. ``period_days`` restricts the case counts to
        cases created in that window; message counters cover all of the
        lawyer's conversations.
        """
        case_query = db.query(Case.status, func.count(Case.id)).filter(Case.lawyer_id == lawyer.id)
        client_query = db.query(func.count(func.distinct(Case.client_id))).filter(Case.lawyer_id == lawyer.id)
        if period_days:
            cutoff = utcnow() - timedelta(days=period_days)
            case_query = case_query.filter(Case.created_at >= cutoff)
            client_query = client_query.filter(Case.created_at >= cutoff)

        by_status = {status: 0 for status in CaseStatus}
        for status, count in case_query.group_by(Case.status).all():
            by_status[CaseStatus(status)] = count

        lawyer_conversations = select(Conversation.id).where(Conversation.lawyer_id == lawyer.id)
        total_messages = (
            db.query(func.count(Message.id))
            .filter(Message.conversation_id.in_(lawyer_conversations))
            .scalar()
        ) or 0
        unread_messages = (
            db.query(func.count(Message.id))
            .filter(
                Message.conversation_id.in_(lawyer_conversations),
                Message.sender_id != lawyer.id,
                Message.read == False,
            )
            .scalar()
        ) or 0
        pending_requests = (
            db.query(func.count(Conversation.id))
            .filter(
                Conversation.lawyer_id == lawyer.id,
                Conversation.status == ConversationStatus.pending,
            )
            .scalar()
        ) or 0

        return {
            "total_cases": sum(by_status.values()),
            "pending_cases": by_status[CaseStatus.pending],
            "active_cases": by_status[CaseStatus.active],
            "won_cases": by_status[CaseStatus.won],
            "lost_cases": by_status[CaseStatus.lost],
            "closed_cases": by_status[CaseStatus.closed],
            "total_clients": client_query.scalar() or 0,
            "pending_requests": pending_requests,
            "total_messages": total_messages,
            "unread_messages": unread_messages,
        }


case_service = CaseService()
