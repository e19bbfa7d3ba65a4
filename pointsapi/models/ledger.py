"""
포인트 원장 데이터 모델

포인트의 모든 적립/차감은 이 테이블에 한 행씩 기록되어 완전한 감사 추적(Audit Trail)을 제공합니다.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pointsapi.models.base import Base, JSONType, UTCDateTime
from pointsapi.utils.timezone_utils import utc_now


class LedgerKind(str, enum.Enum):
    """원장 항목 종류 - 적립/차감 원인 표준화"""

    EARN_CHAT = "EARN_CHAT"  # 채팅 메시지 적립
    EARN_POST = "EARN_POST"  # 게시글 작성 적립
    EARN_ATTENDANCE = "EARN_ATTENDANCE"  # 출석 체크 적립
    ADJUSTMENT = "ADJUSTMENT"  # 관리자 조정 / 환불
    SHOP_PURCHASE = "SHOP_PURCHASE"  # 상점 구매 차감


class LedgerDirection(str, enum.Enum):
    """원장 조회 필터 - 적립(양수) / 차감(음수)"""

    EARN = "EARN"
    SPEND = "SPEND"


class LedgerReferenceType(str, enum.Enum):
    """원장 항목이 참조하는 원본 리소스 종류"""

    POST = "POST"
    COMMENT = "COMMENT"
    CHAT_MESSAGE = "CHAT_MESSAGE"
    SHOP_ITEM = "SHOP_ITEM"
    ATTENDANCE = "ATTENDANCE"
    SYSTEM = "SYSTEM"


class LedgerEntry(Base):
    """
    포인트 원장 테이블 - 모든 포인트 변동 내역

    이 테이블은 다음 원칙을 따릅니다:
    1. 불변성(Immutable): 한번 생성된 레코드는 수정/삭제되지 않음
    2. 완전성(Complete): 모든 잔액 변동이 기록됨
    3. 정합성(Integrity): 사용자별 (created_at, id) 순서로
       balance_after[i] == balance_after[i-1] + amount[i]
       created_at은 계정 잠금 안에서 정해지며 직전 항목보다 과거가 될 수 없음
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (Index("ix_ledger_entries_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.user_id"), nullable=False
    )

    # 변동량 - 양수면 적립, 음수면 차감
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # 거래 후 잔액 스냅샷
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    # "metadata"는 Declarative 예약어라 속성명은 meta로 사용
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
