# backend/app/api/v1/endpoints/upload.py

"""
Upload Endpoints

Issues S3 pre-signed POST policies for chat attachments. The browser
uploads straight to S3 and then sends the returned attachment descriptor
with its message.
"""

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_current_user
from app.core.config import settings
from app.core.logger import logger
from app.db.database import get_db
from app.db.models import ConversationStatus, User
from app.db.schemas import AttachmentDescriptor, AttachmentPresignRequest, AttachmentPresignResponse
from app.services.conversation_service import conversation_service
from app.services.s3_service import S3Service, get_s3_service
from app.utils.exceptions import ConflictError, UploadFailedError
from app.utils.validators import validate_attachment_size

router = APIRouter()


@router.post("/attachments/presign", response_model=AttachmentPresignResponse)
def presign_attachment(
    request: AttachmentPresignRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    s3: S3Service = Depends(get_s3_service),
):
    """
    Get a pre-signed POST for one attachment (max 10MB).

    The key is scoped to sender and recipient of the conversation.
    Archived conversations get 409, like a message would.
    """
    conversation = conversation_service.get_conversation(db, current_user, request.conversation_id)
    if conversation.status == ConversationStatus.archived:
        raise ConflictError("Conversation is archived and no longer accepts attachments")
    validate_attachment_size(request.file_size)

    recipient_id = (
        conversation.lawyer_id if current_user.id == conversation.client_id else conversation.client_id
    )
    s3_key = s3.build_attachment_key(str(current_user.id), str(recipient_id), request.filename)

    try:
        presigned = s3.generate_presigned_post(
            s3_key,
            request.content_type,
            settings.ATTACHMENT_MAX_BYTES,
            expires_in=settings.ATTACHMENT_PRESIGN_EXPIRES_SECONDS,
        )
    except ClientError as e:
        logger.error(f"Presign failed for {s3_key}: {str(e)}")
        raise UploadFailedError("Could not generate upload URL")

    logger.info(
        f"Attachment presign issued: user={current_user.id} conversation={conversation.id} "
        f"size={request.file_size} key={s3_key}"
    )
    return AttachmentPresignResponse(
        upload_url=presigned["url"],
        fields=presigned["fields"],
        s3_key=s3_key,
        expires_in=settings.ATTACHMENT_PRESIGN_EXPIRES_SECONDS,
        max_bytes=settings.ATTACHMENT_MAX_BYTES,
        attachment=AttachmentDescriptor(
            name=request.filename,
            url=s3.public_url(s3_key),
            type=request.content_type,
        ),
    )
