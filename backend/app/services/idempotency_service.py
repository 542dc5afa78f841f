"""
Idempotency for the chat write endpoints.

``POST /messages/send`` and ``POST /conversations/decide`` accept an
``Idempotency-Key`` header. The first successful response for a
(user, key) pair is stored with the endpoint and a fingerprint of the
request body; a retry with the same key gets that response back instead
of a second message or a 409 from an already-decided request.

Reusing a key for a different endpoint or body is refused with 409.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models import IdempotencyRecord
from app.utils.exceptions import ConflictError
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def request_fingerprint(payload: Dict[str, Any]) -> str:
    """Stable SHA-256 of a JSON-able request body"""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _live_record(db: Session, key: str, user_id: UUID) -> Optional[IdempotencyRecord]:
    return (
        db.query(IdempotencyRecord)
        .filter(
            IdempotencyRecord.idempotency_key == key,
            IdempotencyRecord.user_id == user_id,
            IdempotencyRecord.expires_at > utcnow(),
        )
        .first()
    )


def get_idempotent_response(
    db: Session,
    key: Optional[str],
    user_id: UUID,
    endpoint: str,
    fingerprint: str,
) -> Optional[Tuple[int, Dict[str, Any]]]:
    """
    (status_code, body) stored for this key, or None when the request
    has not been seen. Raises ConflictError if the key was used for a
    different request.
    """
    if not key:
        return None

    record = _live_record(db, key, user_id)
    if record is None:
        return None

    if record.endpoint != endpoint or record.request_hash != fingerprint:
        logger.warning(
            "idempotency_key_mismatch key=%s user=%s stored_endpoint=%s endpoint=%s",
            key, user_id, record.endpoint, endpoint,
        )
        raise ConflictError("Idempotency-Key was already used for a different request")

    logger.info("idempotency_replay key=%s user=%s endpoint=%s", key, user_id, endpoint)
    return record.status_code, record.response_body


def store_idempotent_response(
    db: Session,
    key: Optional[str],
    user_id: UUID,
    endpoint: str,
    fingerprint: str,
    status_code: int,
    response_body: Dict[str, Any],
) -> None:
    """
    Remember a successful response. When two tabs race with the same key
    the first writer wins and the second insert is dropped.
    """
    if not key:
        return

    now = utcnow()
    db.add(IdempotencyRecord(
        idempotency_key=key,
        user_id=user_id,
        endpoint=endpoint,
        request_hash=fingerprint,
        status_code=status_code,
        response_body=response_body,
        created_at=now,
        expires_at=now + timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS),
    ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug("idempotency_duplicate_ignored key=%s user=%s", key, user_id)


def delete_expired_idempotency_records(db: Session) -> int:
    """Hourly sweep from main._idempotency_cleanup_loop"""
    deleted = (
        db.query(IdempotencyRecord)
        .filter(IdempotencyRecord.expires_at < utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
