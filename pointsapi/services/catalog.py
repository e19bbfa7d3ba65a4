"""
상점 카탈로그 - 정적, 읽기 전용

아이템 목록은 프로세스 시작 시 한 번 로드되며 요청 중 변경되지 않습니다.
최종 가격은 저장하지 않고 항상 base_price와 discount_percent로부터 계산합니다.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from pointsapi.core.exceptions import ItemUnavailableError, NotFoundError
from pointsapi.models.inventory import ItemCategory, ItemRarity
from pointsapi.schemas.shop import CatalogItem, CatalogItemView

SHOP_CATALOG: Tuple[CatalogItem, ...] = (
    CatalogItem(
        item_id="profile_frame_gold",
        name="골드 프로필 프레임",
        description="프로필 사진에 골드 프레임을 적용합니다.",
        base_price=500,
        category=ItemCategory.DECORATION,
        icon="🏆",
        rarity=ItemRarity.EPIC,
    ),
    CatalogItem(
        item_id="post_boost_3days",
        name="게시글 부스트 (3일)",
        description="게시글을 3일간 상단에 고정합니다.",
        base_price=200,
        discount_percent=20,
        category=ItemCategory.BOOST,
        icon="🚀",
        rarity=ItemRarity.COMMON,
        metadata={"durationDays": 3, "effect": "pin_post"},
    ),
    CatalogItem(
        item_id="premium_badge",
        name="프리미엄 배지",
        description="닉네임 옆에 프리미엄 배지를 표시합니다.",
        base_price=1000,
        category=ItemCategory.PREMIUM,
        icon="⭐",
        rarity=ItemRarity.LEGENDARY,
    ),
    CatalogItem(
        item_id="custom_emoji_pack",
        name="커스텀 이모지 팩",
        description="채팅에서 사용할 수 있는 이모지 20종",
        base_price=300,
        category=ItemCategory.DECORATION,
        icon="😎",
        rarity=ItemRarity.RARE,
        metadata={"emojiCount": 20},
    ),
    CatalogItem(
        item_id="highlight_comment",
        name="댓글 하이라이트",
        description="댓글을 12시간 동안 강조 표시합니다.",
        base_price=100,
        category=ItemCategory.BOOST,
        icon="💬",
        rarity=ItemRarity.COMMON,
        metadata={"effect": "highlight_comment", "durationHours": 12},
    ),
    CatalogItem(
        item_id="test_item_10p",
        name="테스트 아이템",
        description="개발/QA용 저가 아이템",
        base_price=10,
        category=ItemCategory.DECORATION,
        icon="🧪",
        rarity=ItemRarity.COMMON,
        metadata={"devOnly": True},
    ),
    CatalogItem(
        item_id="team_supporter_badge",
        name="팀 서포터 배지",
        description="응원하는 팀의 서포터 배지를 표시합니다.",
        base_price=750,
        discount_percent=15,
        category=ItemCategory.SPECIAL,
        icon="🏅",
        rarity=ItemRarity.EPIC,
        metadata={"effect": "team_badge"},
    ),
)


class Catalog:
    def __init__(self, items: Iterable[CatalogItem] = SHOP_CATALOG):
        self._items: Dict[str, CatalogItem] = {item.item_id: item for item in items}

    def get(self, item_id: str) -> Optional[CatalogItem]:
        return self._items.get(item_id)

    @staticmethod
    def final_price(item: CatalogItem) -> int:
        """할인 적용가 = floor(base_price * (100 - discount) / 100), 최소 0"""
        discount = item.discount_percent or 0
        if discount <= 0:
            return item.base_price
        return max(0, item.base_price * (100 - discount) // 100)

    def ensure_purchasable(self, item_id: str) -> Tuple[CatalogItem, int]:
        item = self.get(item_id)
        if item is None:
            raise NotFoundError(
                f"Catalog item not found: {item_id}", details={"item_id": item_id}
            )
        if not item.is_available:
            raise ItemUnavailableError(
                f"Item is not available for purchase: {item_id}",
                details={"item_id": item_id},
            )
        return item, self.final_price(item)

    def snapshot(self, item: CatalogItem) -> CatalogItemView:
        return CatalogItemView(
            item_id=item.item_id,
            name=item.name,
            description=item.description,
            category=item.category,
            icon=item.icon,
            rarity=item.rarity,
            base_price=item.base_price,
            discount_percent=item.discount_percent,
            final_price=self.final_price(item),
            is_available=item.is_available,
        )

    def list_available(self, category: Optional[ItemCategory] = None) -> List[CatalogItem]:
        return [
            item
            for item in self._items.values()
            if item.is_available and (category is None or item.category == category)
        ]
