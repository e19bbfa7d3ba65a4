import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pointsapi.models.base import BaseModel, JSONType, UTCDateTime


class ItemCategory(str, enum.Enum):
    DECORATION = "decoration"
    BOOST = "boost"
    PREMIUM = "premium"
    SPECIAL = "special"


class ItemRarity(str, enum.Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class InventoryLine(BaseModel):
    """사용자 보유 아이템 - (user_id, item_id)당 1행, 재구매 시 수량 증가"""

    __tablename__ = "inventory_lines"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_inventory_lines_quantity_positive"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    item_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_purchased_at: Mapped[datetime] = mapped_column(
        UTCDateTime(timezone=True), nullable=False
    )
    last_purchase_price: Mapped[int] = mapped_column(Integer, nullable=False)

    # 카탈로그 표시 정보 캐시 (조회 성능용, 재구매/동기화 시 갱신)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rarity: Mapped[str] = mapped_column(String(30), nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
