"""
Conversation endpoints: inbox, thread reads and case-request decisions
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status as http_status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_user, require_lawyer
from app.db.database import get_db
from app.db.models import ConversationStatus, User
from app.db.schemas import (
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationResponse,
    DecideRequestBody,
    DecideResponse,
    MarkReadResponse,
    MessageResponse,
)
from app.services.conversation_service import conversation_service
from app.services.idempotency_service import (
    get_idempotent_response,
    request_fingerprint,
    store_idempotent_response,
)

router = APIRouter()

DECIDE_ENDPOINT = "POST /api/v1/conversations/decide"

# ============================================================================
# Reads
# ============================================================================

@router.get("/", response_model=ConversationListResponse)
def list_conversations(
    status: Optional[ConversationStatus] = Query(None, description="Filter by status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Conversations of the current user, most recent activity first"""
    conversations = conversation_service.list_conversations(db, current_user, status)
    return ConversationListResponse(
        conversations=[ConversationResponse.model_validate(c) for c in conversations],
        total=len(conversations),
    )


@router.get("/{conversation_id}", response_model=ConversationDetailResponse)
def get_conversation(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    conversation = conversation_service.get_conversation(db, current_user, conversation_id)
    detail = ConversationDetailResponse.model_validate(conversation)
    detail.unread_count = conversation_service.unread_count(db, current_user, conversation.id)
    return detail


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
def list_messages(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return conversation_service.list_messages(db, current_user, conversation_id)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
def mark_read(
    conversation_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    marked = conversation_service.mark_read(db, current_user, conversation_id)
    return MarkReadResponse(conversation_id=conversation_id, marked_read=marked)

# ============================================================================
# Case request decision
# ============================================================================

@router.post("/decide", response_model=DecideResponse)
def decide_request(
    payload: DecideRequestBody,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    """
    Accept or reject a pending case request.

    - accept: requires title and description; creates a pending case and
      activates the conversation
    - reject: archives the conversation

    A retry with the same Idempotency-Key gets the original decision back
    instead of a 409.
    """
    fingerprint = request_fingerprint(payload.model_dump(mode="json"))
    cached = get_idempotent_response(db, idempotency_key, current_user.id, DECIDE_ENDPOINT, fingerprint)
    if cached:
        status_code, body = cached
        return JSONResponse(body, status_code=status_code)

    conversation, case = conversation_service.decide_request(
        db,
        current_user,
        payload.conversation_id,
        payload.accepted,
        title=payload.title,
        description=payload.description,
    )
    result = DecideResponse(
        conversation_id=conversation.id,
        status=conversation.status,
        case_id=case.id if case is not None else None,
    )
    store_idempotent_response(
        db,
        idempotency_key,
        current_user.id,
        DECIDE_ENDPOINT,
        fingerprint,
        http_status.HTTP_200_OK,
        jsonable_encoder(result),
    )
    return result
