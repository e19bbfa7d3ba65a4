"""
상점 구매 서비스 (Saga)

VALIDATE → RESERVE(포인트 차감) → FULFILL(인벤토리 지급) → 실패 시 COMPENSATE(환불)

- RESERVE와 FULFILL은 각각 별도의 트랜잭션으로 commit 됩니다.
- RESERVE가 commit 된 이후에는 요청 안에서 반드시 종료 상태(완료 또는 환불)에 도달합니다.
- 환불까지 실패하면 pointsapi.reconciliation 로거에 CRITICAL로 기록하며,
  운영자가 해당 로그를 기준으로 수동 정산합니다.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pointsapi.core.exceptions import (
    NotFoundError,
    PurchaseFailedError,
    StorageError,
    ValidationError,
)
from pointsapi.database.session import transaction_scope
from pointsapi.models.ledger import LedgerKind, LedgerReferenceType
from pointsapi.repositories.account_repository import AccountRepository
from pointsapi.repositories.inventory_repository import InventoryRepository
from pointsapi.repositories.user_repository import UserRepository
from pointsapi.schemas.shop import (
    CatalogItem,
    InventoryLineSchema,
    PurchaseResult,
    PurchaseStatus,
)
from pointsapi.services.catalog import Catalog
from pointsapi.services.point_service import PointService
from pointsapi.utils.timezone_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)
reconciliation_logger = logging.getLogger("pointsapi.reconciliation")


class PurchaseService:
    """포인트로 카탈로그 아이템을 구매하는 서비스"""

    def __init__(
        self,
        db: Session,
        point_service: PointService,
        catalog: Catalog,
        identity: Optional[UserRepository] = None,
    ):
        self.db = db
        self.points = point_service
        self.catalog = catalog
        self.inventory = InventoryRepository(db)
        self.accounts = AccountRepository(db)
        self.identity = identity or UserRepository(db)

    def _ensure_user(self, user_id: int) -> None:
        try:
            is_active = self.identity.is_active_user(user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Identity check failed for user {user_id}: {str(e)}")
            raise StorageError(details={"operation": "identity_check"}) from e
        if not is_active:
            raise NotFoundError(f"User not found: {user_id}", details={"user_id": user_id})

    def _current_balance(self, user_id: int) -> int:
        try:
            account = self.accounts.get(user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(details={"operation": "get_balance"}) from e
        return account.balance if account is not None else 0

    def purchase(
        self,
        user_id: int,
        item_id: str,
        quantity: int = 1,
        now: Optional[datetime] = None,
    ) -> PurchaseResult:
        """아이템 구매

        잔액 부족은 REJECTED 결과로 반환합니다. 인벤토리 지급 실패 시 환불 후
        PurchaseFailedError를 발생시킵니다.
        """
        # VALIDATE
        if quantity < 1:
            raise ValidationError(
                f"Quantity must be at least 1: {quantity}", details={"quantity": quantity}
            )
        now = ensure_utc(now or utc_now())
        self._ensure_user(user_id)
        item, unit_price = self.catalog.ensure_purchasable(item_id)
        total_cost = unit_price * quantity

        # RESERVE
        if total_cost > 0:
            deduction = self.points.deduct(
                user_id,
                total_cost,
                f"{item.name} x{quantity}",
                now,
                kind=LedgerKind.SHOP_PURCHASE,
                reference_type=LedgerReferenceType.SHOP_ITEM,
                reference_id=item.item_id,
            )
            if not deduction.success:
                logger.info(
                    f"Purchase rejected for user {user_id}, item {item_id}: {deduction.message}"
                )
                return PurchaseResult(
                    success=False,
                    status=PurchaseStatus.REJECTED,
                    message=deduction.message,
                    total_cost=total_cost,
                    remaining_points=deduction.remaining_points,
                    unit_price=unit_price,
                )
            remaining_points = deduction.remaining_points
        else:
            remaining_points = self._current_balance(user_id)

        # FULFILL
        try:
            with transaction_scope(self.db):
                line = self.inventory.find_line(user_id, item.item_id)
                created = line is None
                if created:
                    line = self.inventory.insert_line(
                        user_id, item, quantity, unit_price, now
                    )
                else:
                    line = self.inventory.update_line(
                        line, item, quantity, unit_price, now
                    )
                inventory_line = InventoryLineSchema.model_validate(line)
        except Exception as e:
            self._compensate(user_id, item, total_cost, now, e)

        logger.info(
            f"User {user_id} purchased {item.item_id} x{quantity} for {total_cost} points"
        )
        return PurchaseResult(
            success=True,
            status=PurchaseStatus.COMPLETED,
            message=f"Purchased {item.name} x{quantity}",
            inventory_line=inventory_line,
            total_cost=total_cost,
            remaining_points=remaining_points,
            created=created,
            unit_price=unit_price,
        )

    def _compensate(
        self,
        user_id: int,
        item: CatalogItem,
        total_cost: int,
        now: datetime,
        cause: Exception,
    ) -> None:
        """차감된 포인트를 환불하고 PurchaseFailedError를 발생시킴"""
        logger.error(
            f"Inventory grant failed for user {user_id}, item {item.item_id}: {str(cause)}. "
            f"Refunding {total_cost} points"
        )
        try:
            self.points.credit_custom(
                user_id,
                total_cost,
                f"purchase rollback: {item.name}",
                now,
                reference_type=LedgerReferenceType.SHOP_ITEM,
                reference_id=item.item_id,
            )
        except Exception as refund_error:
            reconciliation_logger.critical(
                f"Refund failed after purchase failure: user_id={user_id}, "
                f"amount={total_cost}, item_id={item.item_id}, error={str(refund_error)}"
            )
            raise PurchaseFailedError(refunded=False) from refund_error
        raise PurchaseFailedError(refunded=True) from cause

    def get_inventory(self, user_id: int) -> List[InventoryLineSchema]:
        """보유 아이템 목록 (최근 구매순)"""
        self._ensure_user(user_id)
        try:
            return self.inventory.list_for_user(user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to load inventory for user {user_id}: {str(e)}")
            raise StorageError(details={"operation": "get_inventory"}) from e

    def sync_catalog_cache(self, user_id: Optional[int] = None) -> int:
        """보유 아이템의 카탈로그 캐시(표시 정보, 현재 가격)를 최신 카탈로그로 갱신

        카탈로그에서 제거된 아이템의 라인은 건드리지 않습니다.
        """
        updated = 0
        try:
            with transaction_scope(self.db):
                for line in self.inventory.list_all(user_id):
                    item = self.catalog.get(line.item_id)
                    if item is None:
                        continue
                    self.inventory.apply_display(line, item)
                    line.last_purchase_price = self.catalog.final_price(item)
                    updated += 1
        except SQLAlchemyError as e:
            logger.error(f"Catalog cache sync failed: {str(e)}")
            raise StorageError(details={"operation": "sync_catalog_cache"}) from e

        target = f"user {user_id}" if user_id is not None else "all users"
        logger.info(f"Catalog cache synced for {target}: {updated} lines updated")
        return updated
