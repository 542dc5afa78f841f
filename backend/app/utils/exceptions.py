"""
Custom exception classes
"""
from fastapi import HTTPException


class ValidationFailedError(HTTPException):
    """Raised when a request is well-formed JSON but breaks a business rule"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=400,
            detail=reason
        )


class ForbiddenError(HTTPException):
    """Raised when user doesn't own or participate in the resource"""
    def __init__(self, reason: str = "You don't have permission to access this resource"):
        super().__init__(
            status_code=403,
            detail=reason
        )


class UserNotFoundError(HTTPException):
    """Raised when a referenced user (e.g. target lawyer) doesn't exist"""
    def __init__(self, user_id: str, role: str = "User"):
        super().__init__(
            status_code=404,
            detail=f"{role} {user_id} not found"
        )


class ConversationNotFoundError(HTTPException):
    """Raised when conversation doesn't exist"""
    def __init__(self, conversation_id: str):
        super().__init__(
            status_code=404,
            detail=f"Conversation {conversation_id} not found"
        )


class CaseNotFoundError(HTTPException):
    """Raised when case doesn't exist"""
    def __init__(self, case_id: str):
        super().__init__(
            status_code=404,
            detail=f"Case {case_id} not found"
        )


class ConflictError(HTTPException):
    """Raised when acting on a conversation or case in the wrong state"""
    def __init__(self, reason: str):
        super().__init__(
            status_code=409,
            detail=reason
        )


class UploadFailedError(HTTPException):
    """Raised when S3 presigning fails"""
    def __init__(self, reason: str = "Unknown error"):
        super().__init__(
            status_code=500,
            detail=f"Upload failed: {reason}"
        )
