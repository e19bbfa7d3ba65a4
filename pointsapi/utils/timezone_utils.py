"""
타임존 유틸리티

포인트 코어는 기본 타임존을 갖지 않습니다. 호출자가 요청마다 타임존 이름을 넘기며,
이 모듈은 이름 해석과 UTC/현지 시각 변환만 담당합니다.
"""

from datetime import datetime, timezone, tzinfo
from typing import Union

import pytz

from pointsapi.core.exceptions import ValidationError

TimezoneLike = Union[str, tzinfo]


def resolve_timezone(tz: TimezoneLike) -> tzinfo:
    """타임존 이름(예: "Asia/Seoul") 또는 tzinfo를 tzinfo로 변환합니다."""
    if isinstance(tz, tzinfo):
        return tz
    if not tz:
        raise ValidationError("Timezone is required")
    try:
        return pytz.timezone(tz)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {tz}", details={"timezone": tz})


def ensure_utc(dt: datetime) -> datetime:
    """aware datetime을 UTC로 변환합니다. naive datetime은 UTC로 가정합니다."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz: TimezoneLike) -> datetime:
    """UTC 또는 다른 타임존의 datetime을 지정 타임존의 현지 시각으로 변환합니다."""
    return ensure_utc(dt).astimezone(resolve_timezone(tz))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
