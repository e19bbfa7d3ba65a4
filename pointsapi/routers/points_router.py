"""
포인트 API 라우터

사용자용 엔드포인트:
- GET /points/me: 내 잔액 및 오늘 적립 현황
- GET /points/me/ledger: 내 포인트 원장 (최신순)
- POST /points/me/actions/{action_kind}: 활동 보상 적립

관리자용 엔드포인트:
- POST /points/admin/credit: 포인트 지급
- POST /points/admin/deduct: 포인트 차감
- POST /points/admin/reset-daily/{user_id}: 일일 한도 초기화
- GET /points/admin/integrity/{user_id}: 원장 정합성 검증

인증은 게이트웨이가 전달한 내부 헤더로 처리하며, 타임존은 X-Timezone 헤더를 따릅니다.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query

from pointsapi.core.auth_middleware import (
    get_current_user_id,
    get_request_timezone,
    require_admin,
)
from pointsapi.core.exceptions import BaseAPIException, InternalServerError
from pointsapi.deps import get_point_service
from pointsapi.models.ledger import LedgerDirection, LedgerKind
from pointsapi.schemas.points import (
    AdminCreditRequest,
    AdminDeductRequest,
    AwardActionRequest,
    AwardResult,
    DeductResult,
    LedgerIntegrityReport,
    LedgerPage,
    PointsSnapshot,
)
from pointsapi.services.point_service import PointService
from pointsapi.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/me", response_model=PointsSnapshot)
def get_my_points(
    user_id: int = Depends(get_current_user_id),
    timezone: str = Depends(get_request_timezone),
    point_service: PointService = Depends(get_point_service),
) -> PointsSnapshot:
    """
    내 포인트 상태 조회

    업무일(현지 06:00 기준)이 바뀌었으면 일일 카운터를 초기화한 뒤 반환합니다.
    포인트 활동이 없는 사용자는 잔액 0으로 응답합니다.
    """
    try:
        return point_service.get_snapshot(user_id, timezone)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Failed to get points snapshot for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to retrieve points")


@router.get("/me/ledger", response_model=LedgerPage)
def get_my_ledger(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    kind: Optional[LedgerKind] = Query(None, description="원장 항목 종류 필터"),
    direction: Optional[LedgerDirection] = Query(None, description="EARN(적립) / SPEND(차감)"),
    from_at: Optional[datetime] = Query(None, description="조회 시작 시각 (포함)"),
    to_at: Optional[datetime] = Query(None, description="조회 종료 시각 (포함)"),
    user_id: int = Depends(get_current_user_id),
    point_service: PointService = Depends(get_point_service),
) -> LedgerPage:
    """
    내 포인트 원장 조회

    사용 예시:
        GET /points/me/ledger?limit=20&offset=0
        GET /points/me/ledger?kind=SHOP_PURCHASE
        GET /points/me/ledger?direction=EARN&from_at=2024-03-01T00:00:00Z&to_at=2024-03-31T23:59:59Z
    """
    try:
        return point_service.get_ledger(
            user_id,
            limit=limit,
            offset=offset,
            kind=kind,
            direction=direction,
            from_at=from_at,
            to_at=to_at,
        )
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Failed to get ledger for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to retrieve ledger")


@router.post("/me/actions/{action_kind}", response_model=AwardResult)
def award_action(
    action_kind: str = Path(..., description="CHAT_MESSAGE | POST_CREATE | DAILY_ATTENDANCE"),
    request: Optional[AwardActionRequest] = Body(None),
    user_id: int = Depends(get_current_user_id),
    timezone: str = Depends(get_request_timezone),
    point_service: PointService = Depends(get_point_service),
) -> AwardResult:
    """
    활동 보상 적립

    한도 초과, 중복 출석, 알 수 없는 액션은 에러가 아니라 skipped=True로 응답합니다.
    """
    reference = request or AwardActionRequest()
    try:
        return point_service.award(
            user_id,
            action_kind,
            now=utc_now(),
            timezone=timezone,
            reference_type=reference.reference_type,
            reference_id=reference.reference_id,
        )
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Failed to award {action_kind} for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to award points")


# ============================================================================
# Admin
# ============================================================================


@router.post("/admin/credit", response_model=AwardResult)
def admin_credit(
    request: AdminCreditRequest,
    admin_id: int = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> AwardResult:
    """관리자 포인트 지급 (ADJUSTMENT)"""
    try:
        result = point_service.credit_custom(
            request.user_id, request.amount, request.reason, now=utc_now()
        )
        logger.info(
            f"Admin {admin_id} credited {result.added_points} points to user {request.user_id}"
        )
        return result
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Admin credit failed for user {request.user_id}: {str(e)}")
        raise InternalServerError("Failed to credit points")


@router.post("/admin/deduct", response_model=DeductResult)
def admin_deduct(
    request: AdminDeductRequest,
    admin_id: int = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> DeductResult:
    """관리자 포인트 차감 - 잔액 부족 시 success=False"""
    try:
        result = point_service.deduct(
            request.user_id,
            request.amount,
            request.reason,
            now=utc_now(),
            kind=request.kind,
        )
        logger.info(
            f"Admin {admin_id} deduct for user {request.user_id}: "
            f"success={result.success}, amount={request.amount}"
        )
        return result
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Admin deduct failed for user {request.user_id}: {str(e)}")
        raise InternalServerError("Failed to deduct points")


@router.post("/admin/reset-daily/{user_id}", response_model=PointsSnapshot)
def admin_reset_daily(
    user_id: int = Path(..., gt=0, description="대상 사용자 ID"),
    admin_id: int = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> PointsSnapshot:
    try:
        snapshot = point_service.reset_daily_limits(user_id, now=utc_now())
        logger.info(f"Admin {admin_id} reset daily limits for user {user_id}")
        return snapshot
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Daily reset failed for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to reset daily limits")


@router.get("/admin/integrity/{user_id}", response_model=LedgerIntegrityReport)
def admin_verify_integrity(
    user_id: int = Path(..., gt=0, description="대상 사용자 ID"),
    admin_id: int = Depends(require_admin),
    point_service: PointService = Depends(get_point_service),
) -> LedgerIntegrityReport:
    """원장 재생 결과와 계정 잔액 비교"""
    try:
        return point_service.verify_integrity(user_id)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Integrity check failed for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to verify ledger integrity")
