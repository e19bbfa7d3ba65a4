"""
포인트 계정 데이터 모델

사용자별 현재 잔액(원장의 마지막 balance_after 캐시)과 일일 적립 카운터를 저장합니다.
잔액 변경은 오직 PointService를 통해서만 이루어지며, 계정은 첫 포인트 활동 시 생성됩니다.
"""

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import BigInteger, CheckConstraint, Integer
from sqlalchemy.orm import Mapped, mapped_column

from pointsapi.models.base import BaseModel, JSONType, UTCDateTime


class PointAccount(BaseModel):
    """
    포인트 계정 테이블 - 사용자당 1행

    - balance: 원장(ledger_entries)의 마지막 balance_after와 항상 일치해야 함
    - daily_counters: 액션 종류별 오늘(업무일 기준) 적립 포인트
    - 동시성: 잔액 변경 시 SELECT ... FOR UPDATE로 행 잠금
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # {"CHAT_MESSAGE": 15, "POST_CREATE": 5}
    daily_counters: Mapped[Dict[str, int]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    last_daily_reset_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(timezone=True), nullable=True
    )
    last_attendance_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(timezone=True), nullable=True
    )
