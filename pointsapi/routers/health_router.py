import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pointsapi.database.session import get_db
from pointsapi.schemas.health import HealthCheckResponse
from pointsapi.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    """Health check endpoint. 데이터베이스 연결이 실패하면 degraded로 응답합니다."""

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {str(e)}")
        return HealthCheckResponse(
            status="degraded", database=False, checked_at=utc_now(), error=str(e)
        )
    return HealthCheckResponse(checked_at=utc_now())
