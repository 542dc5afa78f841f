"""
Health and readiness checks – verify database and S3 connectivity.
"""
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.logger import logger
from app.db.database import SessionLocal
from app.services.s3_service import get_s3_service

router = APIRouter()


def _check_database() -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except SQLAlchemyError as e:
        logger.exception("Database check failed")
        return "error", f"Database: {str(e)}"
    finally:
        db.close()


def _check_s3() -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    s3 = get_s3_service()
    try:
        s3.s3_client.head_bucket(Bucket=s3.bucket)
        return "ok", f"Bucket '{s3.bucket}' accessible"
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "")
        return "error", f"S3: {code} - {str(e)}"
    except BotoCoreError as e:
        return "error", f"S3: {str(e)}"


@router.get("/ready")
def readiness():
    """
    Check if backing services are reachable.
    - database: SELECT 1
    - s3: head_bucket on the attachments bucket
    """
    db_status, db_detail = _check_database()
    s3_status, s3_detail = _check_s3()

    healthy = db_status == "ok" and s3_status == "ok"
    return {
        "status": "healthy" if healthy else "degraded",
        "database": {"status": db_status, "detail": db_detail},
        "s3": {"status": s3_status, "detail": s3_detail},
    }
