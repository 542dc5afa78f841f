"""
Server-Sent Events for real-time chat updates
"""
import asyncio
import json
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from app.api.v1.deps import get_current_user
from app.core.config import settings
from app.core.logger import logger
from app.db.database import SessionLocal
from app.db.models import User
from app.services.realtime_service import UpdateFeed
from app.utils.helpers import utcnow

router = APIRouter()


@router.get("/updates")
async def subscribe_to_updates(
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """
    Subscribe to real-time updates via Server-Sent Events

    Events:
    - message_created: New message in one of the user's conversations
    - conversation_updated: Case request accepted or rejected
    - ping: Keepalive
    """
    user_id = current_user.id

    async def event_generator():
        feed = UpdateFeed(user_id, overlap=timedelta(seconds=settings.REALTIME_POLL_SECONDS))
        retry_count = 0
        max_retries = 3

        while retry_count < max_retries:
            if await request.is_disconnected():
                logger.info("SSE client %s disconnected", user_id)
                break

            db = SessionLocal()
            try:
                events = feed.poll(db)
                retry_count = 0
            except Exception:
                logger.exception("SSE poll failed for user %s", user_id)
                retry_count += 1
                events = [{
                    "event": "error",
                    "data": json.dumps({
                        "message": "Temporary error, retrying...",
                        "retry": retry_count,
                    }),
                }]
            finally:
                db.close()

            for event in events:
                yield event

            yield {
                "event": "ping",
                "data": json.dumps({"timestamp": utcnow().isoformat()}),
            }

            await asyncio.sleep(settings.REALTIME_POLL_SECONDS)

        logger.info("SSE stream ended for user %s", user_id)

    return EventSourceResponse(event_generator())
