# app/services/s3_service.py

import boto3
from botocore.exceptions import ClientError
from functools import lru_cache
from typing import Dict

from app.core.config import settings
from app.core.logger import logger
from app.utils.helpers import file_extension, random_suffix, safe_path_segment, utcnow

ATTACHMENTS_PREFIX = "chat-attachments"


class S3Service:
    """
    Service layer for chat attachment storage on AWS S3.

    Bytes never pass through the API: clients POST straight to S3 with a
    presigned policy, then embed the returned descriptor in a message.
    """

    def __init__(self, client=None):
        self.s3_client = client or boto3.client(
            's3',
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY
        )
        self.bucket = settings.S3_ATTACHMENTS_BUCKET

    def build_attachment_key(
        self,
        sender_id: str,
        recipient_id: str,
        filename: str,
        now=None,
    ) -> str:
        """
        chat-attachments/{sender}/{recipient}/{timestamp}_{random}.{ext}

        Timestamp plus random suffix makes every key write-once, so
        concurrent uploads from the same user never collide.
        """
        timestamp = (now or utcnow()).strftime("%Y%m%d%H%M%S%f")
        ext = file_extension(filename)
        name = f"{timestamp}_{random_suffix()}"
        if ext:
            name = f"{name}.{ext}"
        return "/".join([
            ATTACHMENTS_PREFIX,
            safe_path_segment(sender_id),
            safe_path_segment(recipient_id),
            name,
        ])

    def public_url(self, s3_key: str) -> str:
        return f"{settings.attachments_base_url}/{s3_key}"

    def generate_presigned_post(
        self,
        s3_key: str,
        content_type: str,
        max_bytes: int,
        expires_in: int = 900,
    ) -> Dict:
        """
        Pre-signed POST whose policy pins the key, the content type and a
        content-length-range, so S3 itself rejects oversized files.
        """
        try:
            presigned = self.s3_client.generate_presigned_post(
                Bucket=self.bucket,
                Key=s3_key,
                Fields={"Content-Type": content_type},
                Conditions=[
                    {"Content-Type": content_type},
                    ["content-length-range", 1, max_bytes],
                ],
                ExpiresIn=expires_in,
            )
            logger.info(f"Generated presigned POST for: {s3_key}")
            return presigned

        except ClientError as e:
            logger.error(f"Failed to generate presigned POST: {str(e)}")
            raise


@lru_cache(maxsize=1)
def get_s3_service() -> S3Service:
    """FastAPI dependency; one boto3 client per process"""
    return S3Service()
