"""
요청 컨텍스트 의존성

인증은 상위 게이트웨이에서 처리되며, 게이트웨이가 검증한 사용자 ID와 역할을
내부 헤더(settings.INTERNAL_USER_HEADER / INTERNAL_ROLE_HEADER)로 전달합니다.
타임존은 X-Timezone 헤더에서 읽고, 없으면 settings.DEFAULT_TIMEZONE을 사용합니다.
"""

from fastapi import Depends, Request

from pointsapi.config import settings
from pointsapi.core.exceptions import AuthenticationError, AuthorizationError
from pointsapi.models.user import UserRole
from pointsapi.utils.timezone_utils import resolve_timezone

TIMEZONE_HEADER = "X-Timezone"


def get_current_user_id(request: Request) -> int:
    """게이트웨이가 전달한 사용자 ID (필수)"""
    raw = request.headers.get(settings.INTERNAL_USER_HEADER)
    if not raw:
        raise AuthenticationError("Authentication required")
    try:
        user_id = int(raw)
    except ValueError:
        raise AuthenticationError(
            "Invalid user identity header", details={"header": settings.INTERNAL_USER_HEADER}
        )
    if user_id <= 0:
        raise AuthenticationError("Invalid user identity header")
    return user_id


def get_current_role(request: Request) -> str:
    return request.headers.get(settings.INTERNAL_ROLE_HEADER) or UserRole.USER.value


def require_admin(
    request: Request, user_id: int = Depends(get_current_user_id)
) -> int:
    """관리자 권한 확인 - 관리자 user_id 반환"""
    if not UserRole.is_admin(get_current_role(request)):
        raise AuthorizationError("Admin privileges required")
    return user_id


def get_request_timezone(request: Request) -> str:
    tz = request.headers.get(TIMEZONE_HEADER) or settings.DEFAULT_TIMEZONE
    resolve_timezone(tz)
    return tz
