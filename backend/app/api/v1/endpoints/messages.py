"""
Chat message endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_user
from app.db.database import get_db
from app.db.models import User
from app.db.schemas import MessageResponse, SendMessageRequest, SendMessageResponse
from app.services.conversation_service import conversation_service
from app.services.idempotency_service import (
    get_idempotent_response,
    request_fingerprint,
    store_idempotent_response,
)

router = APIRouter()

SEND_ENDPOINT = "POST /api/v1/messages/send"


@router.post("/send", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    payload: SendMessageRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Send a message. A client's first message to a lawyer (``lawyer_id``)
    opens a pending case request; later messages use ``conversation_id``.

    Retries carrying the same Idempotency-Key return the original response.
    """
    fingerprint = request_fingerprint(payload.model_dump(mode="json"))
    cached = get_idempotent_response(db, idempotency_key, current_user.id, SEND_ENDPOINT, fingerprint)
    if cached:
        status_code, body = cached
        return JSONResponse(body, status_code=status_code)

    conversation, message = conversation_service.send_message(
        db,
        current_user,
        conversation_id=payload.conversation_id,
        lawyer_id=payload.lawyer_id,
        text=payload.text,
        attachments=payload.attachments,
    )

    result = SendMessageResponse(
        conversation_id=conversation.id,
        message=MessageResponse.model_validate(message),
    )
    store_idempotent_response(
        db,
        idempotency_key,
        current_user.id,
        SEND_ENDPOINT,
        fingerprint,
        status.HTTP_201_CREATED,
        jsonable_encoder(result),
    )
    return result
