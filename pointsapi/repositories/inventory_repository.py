from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session

from pointsapi.models.inventory import InventoryLine
from pointsapi.repositories.base import BaseRepository
from pointsapi.schemas.shop import CatalogItem, InventoryLineSchema


class InventoryRepository(BaseRepository[InventoryLine, InventoryLineSchema]):
    """사용자 인벤토리 리포지토리 - (user_id, item_id)당 1행"""

    def __init__(self, db: Session):
        super().__init__(InventoryLine, InventoryLineSchema, db)

    def find_line(self, user_id: int, item_id: str) -> Optional[InventoryLine]:
        return (
            self.db.query(InventoryLine)
            .filter(InventoryLine.user_id == user_id, InventoryLine.item_id == item_id)
            .with_for_update()
            .first()
        )

    def insert_line(
        self,
        user_id: int,
        item: CatalogItem,
        quantity: int,
        unit_price: int,
        purchased_at: datetime,
    ) -> InventoryLine:
        line = InventoryLine(
            user_id=user_id,
            item_id=item.item_id,
            quantity=quantity,
            last_purchased_at=purchased_at,
            last_purchase_price=unit_price,
        )
        self.apply_display(line, item)
        return self.add(line)

    def update_line(
        self,
        line: InventoryLine,
        item: CatalogItem,
        quantity: int,
        unit_price: int,
        purchased_at: datetime,
    ) -> InventoryLine:
        line.quantity = line.quantity + quantity
        line.last_purchased_at = purchased_at
        line.last_purchase_price = unit_price
        self.apply_display(line, item)
        return self.add(line)

    @staticmethod
    def apply_display(line: InventoryLine, item: CatalogItem) -> None:
        """카탈로그 표시 정보(category, icon, rarity, metadata)를 라인에 복사"""
        line.category = item.category.value
        line.icon = item.icon
        line.rarity = item.rarity.value
        line.meta = dict(item.metadata) if item.metadata else None

    def list_for_user(self, user_id: int) -> List[InventoryLineSchema]:
        """최근 구매순"""
        lines = (
            self.db.query(InventoryLine)
            .filter(InventoryLine.user_id == user_id)
            .order_by(desc(InventoryLine.last_purchased_at), asc(InventoryLine.item_id))
            .all()
        )
        return self._to_schemas(lines)

    def list_all(self, user_id: Optional[int] = None) -> List[InventoryLine]:
        """캐시 동기화용 - user_id가 없으면 전체"""
        query = self.db.query(InventoryLine)
        if user_id is not None:
            query = query.filter(InventoryLine.user_id == user_id)
        return query.order_by(asc(InventoryLine.user_id), asc(InventoryLine.item_id)).all()
