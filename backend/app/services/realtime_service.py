"""
Realtime feed for the chat dashboards.

Polls for rows written since the subscriber's last check. Delivery is
best effort: a client that misses an event re-fetches the conversation.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.db.models import Conversation, Message
from app.utils.helpers import utcnow

EventKey = Tuple[str, ...]


def _participant_filter(user_id: UUID):
    return or_(Conversation.client_id == user_id, Conversation.lawyer_id == user_id)


def _updates_since(db: Session, user_id: UUID, since: datetime) -> List[Tuple[EventKey, datetime, Dict[str, str]]]:
    """(dedup key, row timestamp, event) for every change newer than ``since``"""
    updates = []

    user_conversations = select(Conversation.id).where(_participant_filter(user_id))
    new_messages = (
        db.query(Message)
        .filter(Message.conversation_id.in_(user_conversations), Message.created_at > since)
        .order_by(Message.created_at.asc())
        .all()
    )
    for message in new_messages:
        updates.append((
            ("message", str(message.id)),
            message.created_at,
            {
                "event": "message_created",
                "data": json.dumps({
                    "message_id": str(message.id),
                    "conversation_id": str(message.conversation_id),
                    "sender_id": str(message.sender_id),
                    "is_case_request": message.is_case_request,
                    "created_at": message.created_at.isoformat(),
                }),
            },
        ))

    changed = (
        db.query(Conversation)
        .filter(_participant_filter(user_id), Conversation.updated_at > since)
        .order_by(Conversation.updated_at.asc())
        .all()
    )
    for conversation in changed:
        updates.append((
            ("conversation", str(conversation.id), conversation.updated_at.isoformat()),
            conversation.updated_at,
            {
                "event": "conversation_updated",
                "data": json.dumps({
                    "conversation_id": str(conversation.id),
                    "status": conversation.status.value,
                    "case_id": str(conversation.case_id) if conversation.case_id else None,
                    "updated_at": conversation.updated_at.isoformat(),
                }),
            },
        ))

    return updates


def collect_updates(db: Session, user_id: UUID, since: datetime) -> List[Dict[str, str]]:
    """
    Events for ``user_id`` newer than ``since``, shaped for EventSourceResponse:
    ``message_created`` per new message, ``conversation_updated`` per status change.
    """
    return [event for _, _, event in _updates_since(db, user_id, since)]


class UpdateFeed:
    """
    Per-subscriber cursor over ``_updates_since``.

    Rows are stamped before their transaction commits, so a row can become
    visible after a poll has already moved past its timestamp. Each poll
    therefore looks back ``overlap`` before the previous check and drops
    events it has already sent.
    """

    def __init__(self, user_id: UUID, overlap: timedelta, start: Optional[datetime] = None):
        self.user_id = user_id
        self.overlap = overlap
        self.last_check = start or utcnow()
        self._sent: Dict[EventKey, datetime] = {}

    def poll(self, db: Session) -> List[Dict[str, str]]:
        checked_at = utcnow()
        events = []
        for key, stamp, event in _updates_since(db, self.user_id, self.last_check - self.overlap):
            if key in self._sent:
                continue
            self._sent[key] = stamp
            events.append(event)

        self.last_check = checked_at
        # Anything older than the next window can't come back
        horizon = checked_at - self.overlap
        self._sent = {key: stamp for key, stamp in self._sent.items() if stamp > horizon}
        return events
