"""
Pydantic validation schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID

from app.db.models import CaseStatus, ConversationStatus, UserRole

# ============================================================================
# User Schemas
# ============================================================================

class UserOut(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    role: UserRole

    class Config:
        from_attributes = True

# ============================================================================
# Message Schemas
# ============================================================================

class AttachmentDescriptor(BaseModel):
    name: str
    url: str
    type: str


class SendMessageRequest(BaseModel):
    """Either lawyer_id (first contact) or conversation_id must be set"""
    lawyer_id: Optional[UUID] = None
    conversation_id: Optional[UUID] = None
    text: Optional[str] = ""
    # Validated by the service so bad descriptors map to 400, not 422
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    # Accepted for client compatibility; the server decides the flag
    is_case_request: Optional[bool] = None

    class Config:
        json_schema_extra = {
            "example": {
                "lawyer_id": "5f0c9a3e-8d7b-4c2e-9a61-0b1d2e3f4a5b",
                "text": "Need help with a lease dispute",
                "attachments": [],
            }
        }


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    text: str
    attachments: List[AttachmentDescriptor] = []
    is_case_request: bool
    delivered: bool
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SendMessageResponse(BaseModel):
    conversation_id: UUID
    message: MessageResponse


class MarkReadResponse(BaseModel):
    conversation_id: UUID
    marked_read: int

# ============================================================================
# Conversation Schemas
# ============================================================================

class ConversationResponse(BaseModel):
    id: UUID
    client_id: UUID
    lawyer_id: UUID
    case_id: Optional[UUID] = None
    status: ConversationStatus
    last_message_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationDetailResponse(ConversationResponse):
    client: UserOut
    lawyer: UserOut
    unread_count: int = 0


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]
    total: int


class DecideRequestBody(BaseModel):
    conversation_id: UUID
    accepted: bool
    title: Optional[str] = None
    description: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "conversation_id": "0d6f1f0e-3c1b-4f4e-8f55-6b8f3f3e2a10",
                "accepted": True,
                "title": "Lease Dispute",
                "description": "Landlord withholding deposit",
            }
        }


class DecideResponse(BaseModel):
    conversation_id: UUID
    status: ConversationStatus
    case_id: Optional[UUID] = None

# ============================================================================
# Case Schemas
# ============================================================================

class CaseResponse(BaseModel):
    id: UUID
    lawyer_id: UUID
    client_id: UUID
    title: str
    description: Optional[str] = None
    status: CaseStatus
    attachments: List[Dict[str, Any]] = []
    created_at: datetime
    updated_at: datetime
    accepted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CaseListResponse(BaseModel):
    cases: List[CaseResponse]
    total: int


class CaseStatusUpdate(BaseModel):
    status: CaseStatus


class CaseUpdate(BaseModel):
    title: str
    description: str


class LawyerStatsResponse(BaseModel):
    total_cases: int
    pending_cases: int
    active_cases: int
    won_cases: int
    lost_cases: int
    closed_cases: int
    total_clients: int
    pending_requests: int
    total_messages: int
    unread_messages: int
    period_days: Optional[int] = None

# ============================================================================
# Upload Schemas
# ============================================================================

class AttachmentPresignRequest(BaseModel):
    """Request a presigned POST for a chat attachment"""
    conversation_id: UUID
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(default="application/octet-stream")
    file_size: int = Field(..., description="File size in bytes")


class AttachmentPresignResponse(BaseModel):
    upload_url: str = Field(..., description="S3 endpoint for the multipart/form-data POST")
    fields: Dict[str, str] = Field(..., description="Form fields to send before the file")
    s3_key: str
    expires_in: int
    max_bytes: int
    attachment: AttachmentDescriptor
