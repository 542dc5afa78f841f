# app/services/conversation_service.py
"""
Conversation / case-request workflow.

    pending --accept(lawyer)--> active    (creates Case)
    pending --reject(lawyer)--> archived

A client's first message to a lawyer opens a pending conversation whose
first message is the case request. Only the lawyer can move it out of
pending, and nothing ever moves back into pending.

db.commit() happens here: every public mutating method is one transaction.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.logger import logger
from app.db.models import (
    Case,
    CaseStatus,
    Conversation,
    ConversationStatus,
    Message,
    User,
    UserRole,
)
from app.utils.exceptions import (
    ConflictError,
    ConversationNotFoundError,
    ForbiddenError,
    UserNotFoundError,
    ValidationFailedError,
)
from app.utils.helpers import utcnow
from app.utils.validators import require_text, validate_attachments, validate_message_content

ACCEPTED_MESSAGE = "I have accepted your case request. Let's discuss the details."
REJECTED_MESSAGE = "I'm unable to take on this case at the moment. Thank you for reaching out."


def is_participant(conversation: Conversation, user: User) -> bool:
    return user.id in (conversation.client_id, conversation.lawyer_id)


class ConversationService:

    # ------------------------------------------------------------------
    # SendMessage
    # ------------------------------------------------------------------

    def send_message(
        self,
        db: Session,
        sender: User,
        *,
        conversation_id: Optional[UUID] = None,
        lawyer_id: Optional[UUID] = None,
        text: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Tuple[Conversation, Message]:
        """
        Post a message into an existing conversation, or (client first
        contact) into the conversation with ``lawyer_id``, creating it as
        pending when none exists yet.
        """
        clean_attachments = validate_attachments(attachments)
        clean_text = validate_message_content(text, clean_attachments)
        if conversation_id is None and lawyer_id is None:
            raise ValidationFailedError("Either conversation_id or lawyer_id is required")

        try:
            if conversation_id is not None:
                conversation = self._locked_for_participant(db, sender, conversation_id)
            else:
                conversation = self._get_or_create_for_client(db, sender, lawyer_id)

            self._check_admission(conversation, sender)

            # Row lock above serialises senders, so the count is stable
            existing = (
                db.query(func.count(Message.id))
                .filter(Message.conversation_id == conversation.id)
                .scalar()
            )
            now = utcnow()
            message = Message(
                conversation_id=conversation.id,
                sender_id=sender.id,
                text=clean_text,
                attachments=clean_attachments,
                is_case_request=(existing == 0),
                delivered=True,
                read=False,
                created_at=now,
            )
            db.add(message)
            conversation.last_message_at = now
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(message)
        db.refresh(conversation)
        logger.info(
            "Message %s sent by %s in conversation %s (case_request=%s, attachments=%d)",
            message.id, sender.id, conversation.id, message.is_case_request, len(clean_attachments),
        )
        return conversation, message

    def _locked_for_participant(self, db: Session, user: User, conversation_id: UUID) -> Conversation:
        conversation = (
            db.query(Conversation)
            .filter(Conversation.id == conversation_id)
            .with_for_update()
            .first()
        )
        if conversation is None:
            raise ConversationNotFoundError(str(conversation_id))
        if not is_participant(conversation, user):
            raise ForbiddenError("You are not a participant in this conversation")
        return conversation

    def _get_or_create_for_client(self, db: Session, client: User, lawyer_id: UUID) -> Conversation:
        if client.role != UserRole.client:
            raise ForbiddenError("Only clients can open a case request with a lawyer")

        lawyer = (
            db.query(User)
            .filter(User.id == lawyer_id, User.role == UserRole.lawyer, User.is_active == True)
            .first()
        )
        if lawyer is None:
            raise UserNotFoundError(str(lawyer_id), "Lawyer")

        conversation = self._find_pair(db, client.id, lawyer.id)
        if conversation is not None:
            return conversation

        conversation = Conversation(
            client_id=client.id,
            lawyer_id=lawyer.id,
            status=ConversationStatus.pending,
            last_message_at=utcnow(),
        )
        db.add(conversation)
        try:
            db.flush()
        except IntegrityError:
            # Lost the race on uq_conversations_client_lawyer; nothing else
            # was written yet, so roll back and join the winner's row.
            db.rollback()
            conversation = self._find_pair(db, client.id, lawyer_id)
            if conversation is None:
                raise
            logger.info(
                "Concurrent first contact client=%s lawyer=%s joined conversation %s",
                client.id, lawyer_id, conversation.id,
            )
            return conversation

        logger.info(
            "Case request conversation %s opened by client %s with lawyer %s",
            conversation.id, client.id, lawyer.id,
        )
        return conversation

    def _find_pair(self, db: Session, client_id: UUID, lawyer_id: UUID) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .filter(Conversation.client_id == client_id, Conversation.lawyer_id == lawyer_id)
            .with_for_update()
            .first()
        )

    def _check_admission(self, conversation: Conversation, sender: User) -> None:
        if conversation.status == ConversationStatus.archived:
            logger.warning("Rejected message into archived conversation %s from %s", conversation.id, sender.id)
            raise ConflictError("Conversation is archived and no longer accepts messages")
        if conversation.status == ConversationStatus.pending and sender.id == conversation.lawyer_id:
            raise ConflictError("Accept or reject the case request before replying")

    # ------------------------------------------------------------------
    # DecideRequest
    # ------------------------------------------------------------------

    def decide_request(
        self,
        db: Session,
        lawyer: User,
        conversation_id: UUID,
        accepted: bool,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Tuple[Conversation, Optional[Case]]:
        """
        Accept (create Case, conversation -> active) or reject
        (conversation -> archived) a pending case request, atomically.
        """
        conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if conversation is None:
            raise ConversationNotFoundError(str(conversation_id))
        if conversation.lawyer_id != lawyer.id:
            raise ForbiddenError("Only the conversation's lawyer can decide this request")
        if conversation.status != ConversationStatus.pending:
            logger.warning(
                "Decision on conversation %s refused: status is %s",
                conversation.id, conversation.status.value,
            )
            raise ConflictError(f"Case request already decided (status: {conversation.status.value})")

        if accepted:
            clean_title = require_text(title, "title")
            clean_description = require_text(description, "description")

        new_status = ConversationStatus.active if accepted else ConversationStatus.archived
        case = None
        try:
            now = utcnow()
            result = db.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation.id,
                    Conversation.status == ConversationStatus.pending,
                )
                .values(status=new_status, updated_at=now, last_message_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Another decision committed between our read and this update
                raise ConflictError("Case request already decided")

            if accepted:
                case = Case(
                    lawyer_id=conversation.lawyer_id,
                    client_id=conversation.client_id,
                    title=clean_title,
                    description=clean_description,
                    status=CaseStatus.pending,
                    attachments=[],
                    created_at=now,
                    updated_at=now,
                    accepted_at=now,
                )
                db.add(case)
                db.flush()
                db.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation.id)
                    .values(case_id=case.id)
                    .execution_options(synchronize_session=False)
                )

            db.add(Message(
                conversation_id=conversation.id,
                sender_id=lawyer.id,
                text=ACCEPTED_MESSAGE if accepted else REJECTED_MESSAGE,
                attachments=[],
                is_case_request=False,
                delivered=True,
                read=False,
                created_at=now,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(conversation)
        if case is not None:
            db.refresh(case)
            logger.info(
                "Lawyer %s accepted conversation %s; case %s created",
                lawyer.id, conversation.id, case.id,
            )
        else:
            logger.info("Lawyer %s rejected conversation %s", lawyer.id, conversation.id)
        return conversation, case

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_conversations(
        self,
        db: Session,
        user: User,
        status: Optional[ConversationStatus] = None,
    ) -> List[Conversation]:
        query = db.query(Conversation)
        if user.role == UserRole.lawyer:
            query = query.filter(Conversation.lawyer_id == user.id)
        else:
            query = query.filter(Conversation.client_id == user.id)
        if status is not None:
            query = query.filter(Conversation.status == status)
        return query.order_by(Conversation.last_message_at.desc()).all()

    def get_conversation(self, db: Session, user: User, conversation_id: UUID) -> Conversation:
        conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if conversation is None:
            raise ConversationNotFoundError(str(conversation_id))
        if not is_participant(conversation, user):
            raise ForbiddenError("You are not a participant in this conversation")
        return conversation

    def list_messages(self, db: Session, user: User, conversation_id: UUID) -> List[Message]:
        conversation = self.get_conversation(db, user, conversation_id)
        return (
            db.query(Message)
            .filter(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.asc())
            .all()
        )

    def unread_count(self, db: Session, user: User, conversation_id: UUID) -> int:
        return (
            db.query(func.count(Message.id))
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id != user.id,
                Message.read == False,
            )
            .scalar()
        ) or 0

    def mark_read(self, db: Session, user: User, conversation_id: UUID) -> int:
        """Mark every message from the other party as read"""
        conversation = self.get_conversation(db, user, conversation_id)
        try:
            updated = (
                db.query(Message)
                .filter(
                    Message.conversation_id == conversation.id,
                    Message.sender_id != user.id,
                    Message.read == False,
                )
                .update({Message.read: True}, synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return int(updated or 0)


conversation_service = ConversationService()
