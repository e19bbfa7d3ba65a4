"""
포인트 적립 정책

액션별 보상 포인트와 일일 한도, 그리고 "하루"의 경계를 계산하는 순수 로직입니다.
날짜 경계 계산은 이 모듈에만 존재하며, 모든 함수는 주입된 now 값으로 동작합니다.

업무일(business day) 기준:
- 하루는 현지 시각 DAILY_RESET_HOUR(06:00)에 시작합니다. 자정이 아닙니다.
- 예) Asia/Seoul 기준 05:59:59는 전날, 06:00:00부터 당일로 취급합니다.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from pointsapi.models.ledger import LedgerKind
from pointsapi.utils.timezone_utils import TimezoneLike, to_local

# 일일 카운터/출석 초기화 기준 시각 (현지 시각, 0~23)
DAILY_RESET_HOUR = 6


class ActionKind(str, Enum):
    """포인트 적립 대상 사용자 활동"""

    CHAT_MESSAGE = "CHAT_MESSAGE"
    POST_CREATE = "POST_CREATE"
    DAILY_ATTENDANCE = "DAILY_ATTENDANCE"


DEFAULT_REWARDS: Dict[ActionKind, int] = {
    ActionKind.CHAT_MESSAGE: 5,
    ActionKind.POST_CREATE: 5,
    ActionKind.DAILY_ATTENDANCE: 20,
}

# 출석은 포인트 한도가 아니라 하루 1회 규칙으로 제한됨
DEFAULT_DAILY_CAPS: Dict[ActionKind, int] = {
    ActionKind.CHAT_MESSAGE: 30,
    ActionKind.POST_CREATE: 30,
}

ACTION_LEDGER_KINDS: Dict[ActionKind, LedgerKind] = {
    ActionKind.CHAT_MESSAGE: LedgerKind.EARN_CHAT,
    ActionKind.POST_CREATE: LedgerKind.EARN_POST,
    ActionKind.DAILY_ATTENDANCE: LedgerKind.EARN_ATTENDANCE,
}

ActionLike = Union[ActionKind, str]


def parse_action(action: ActionLike) -> Optional[ActionKind]:
    """알 수 없는 액션은 None (에러 아님)"""
    if isinstance(action, ActionKind):
        return action
    try:
        return ActionKind(str(action).upper())
    except ValueError:
        return None


class EarningPolicy:
    """액션별 보상/한도 및 업무일 경계 계산 (상태 없음)"""

    def __init__(
        self,
        rewards: Optional[Mapping[ActionKind, int]] = None,
        daily_caps: Optional[Mapping[ActionKind, int]] = None,
        reset_hour: int = DAILY_RESET_HOUR,
    ):
        if not 0 <= reset_hour <= 23:
            raise ValueError(f"reset_hour must be within 0..23, got {reset_hour}")
        self.rewards = dict(DEFAULT_REWARDS if rewards is None else rewards)
        self.daily_caps = dict(DEFAULT_DAILY_CAPS if daily_caps is None else daily_caps)
        self.reset_hour = reset_hour

    @classmethod
    def from_settings(cls, settings) -> "EarningPolicy":
        return cls(
            rewards={
                ActionKind.CHAT_MESSAGE: settings.CHAT_MESSAGE_POINTS,
                ActionKind.POST_CREATE: settings.POST_CREATE_POINTS,
                ActionKind.DAILY_ATTENDANCE: settings.DAILY_ATTENDANCE_POINTS,
            },
            daily_caps={
                ActionKind.CHAT_MESSAGE: settings.CHAT_MESSAGE_DAILY_CAP,
                ActionKind.POST_CREATE: settings.POST_CREATE_DAILY_CAP,
            },
            reset_hour=settings.DAILY_RESET_HOUR,
        )

    def reward_for(self, action: ActionLike) -> int:
        kind = parse_action(action)
        if kind is None:
            return 0
        return self.rewards.get(kind, 0)

    def daily_cap_for(self, action: ActionLike) -> Optional[int]:
        """None은 무제한"""
        kind = parse_action(action)
        if kind is None:
            return None
        return self.daily_caps.get(kind)

    def ledger_kind_for(self, action: ActionLike) -> Optional[LedgerKind]:
        kind = parse_action(action)
        if kind is None:
            return None
        return ACTION_LEDGER_KINDS.get(kind)

    def business_day(self, moment: datetime, tz: TimezoneLike) -> date:
        """moment가 속한 업무일 (현지 시각에서 reset_hour만큼 당긴 날짜)"""
        local = to_local(moment, tz)
        return (local - timedelta(hours=self.reset_hour)).date()

    def is_same_business_day(
        self, first: Optional[datetime], second: datetime, tz: TimezoneLike
    ) -> bool:
        if first is None:
            return False
        return self.business_day(first, tz) == self.business_day(second, tz)

    def needs_daily_reset(
        self, now: datetime, last_reset_at: Optional[datetime], tz: TimezoneLike
    ) -> bool:
        """마지막 초기화 이후 업무일 경계를 넘었으면 True"""
        return not self.is_same_business_day(last_reset_at, now, tz)
