from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from pointsapi.models.inventory import ItemCategory, ItemRarity


class CatalogItem(BaseModel):
    """상점 카탈로그 아이템 (정적, 불변)"""

    model_config = ConfigDict(frozen=True)

    item_id: str = Field(..., description="아이템 고유 ID (변경 금지 비즈니스 키)")
    name: str = Field(..., description="표시 이름")
    description: str = Field("", description="설명")
    base_price: int = Field(..., ge=0, description="정가")
    category: ItemCategory = Field(..., description="카테고리")
    icon: str = Field("", description="아이콘 (이모지)")
    rarity: ItemRarity = Field(..., description="희귀도")
    is_available: bool = Field(True, description="판매 가능 여부")
    discount_percent: Optional[int] = Field(None, ge=0, le=100, description="할인율 (0~100)")
    metadata: Optional[Dict[str, Any]] = Field(None, description="확장 메타데이터")


class CatalogItemView(BaseModel):
    """카탈로그 조회 응답 항목 (최종 가격 포함)"""

    item_id: str
    name: str
    description: str
    category: ItemCategory
    icon: str
    rarity: ItemRarity
    base_price: int
    discount_percent: Optional[int] = None
    final_price: int
    is_available: bool


class CatalogResponse(BaseModel):
    items: List[CatalogItemView] = Field(..., description="아이템 목록")
    total_count: int = Field(..., description="아이템 수")


class InventoryLineSchema(BaseModel):
    """사용자 보유 아이템"""

    user_id: int = Field(..., description="사용자 ID")
    item_id: str = Field(..., description="아이템 ID")
    quantity: int = Field(..., ge=1, description="보유 수량")
    last_purchased_at: datetime = Field(..., description="마지막 구매 시각")
    last_purchase_price: int = Field(..., description="마지막 구매 단가")
    category: str = Field(..., description="카테고리 (캐시)")
    icon: Optional[str] = Field(None, description="아이콘 (캐시)")
    rarity: str = Field(..., description="희귀도 (캐시)")
    meta: Optional[dict] = Field(None, description="카탈로그 메타데이터 사본")

    class Config:
        from_attributes = True


class InventoryResponse(BaseModel):
    items: List[InventoryLineSchema]
    total_count: int


class PurchaseStatus(str, Enum):
    """구매 사가의 종료 상태"""

    COMPLETED = "COMPLETED"  # 차감 + 지급 완료
    REJECTED = "REJECTED"  # 차감 단계에서 거절 (잔액 부족 등), 변경 없음


class PurchaseRequest(BaseModel):
    item_id: str = Field(..., min_length=1, max_length=100, description="아이템 ID")
    quantity: int = Field(1, description="구매 수량 (1 이상)")


class PurchaseResult(BaseModel):
    """아이템 구매 결과"""

    success: bool = Field(..., description="구매 성공 여부")
    status: PurchaseStatus = Field(..., description="사가 종료 상태")
    message: str = Field(..., description="결과 메시지")
    inventory_line: Optional[InventoryLineSchema] = Field(None, description="갱신(또는 생성)된 보유 아이템")
    total_cost: int = Field(..., description="총 결제 포인트 (할인/수량 반영)")
    remaining_points: int = Field(..., description="차감 후 잔여 포인트")
    created: bool = Field(False, description="최초 보유 여부")
    unit_price: int = Field(..., description="할인 적용 후 단가")


class CatalogSyncResponse(BaseModel):
    updated_lines: int = Field(..., description="캐시가 갱신된 보유 아이템 수")
