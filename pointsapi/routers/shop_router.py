"""
상점 API 라우터

- GET /shop/catalog: 판매 중인 아이템 목록 (할인 적용가 포함)
- POST /shop/purchase: 포인트로 아이템 구매
- GET /shop/inventory: 내 보유 아이템
- POST /shop/admin/sync-cache: 보유 아이템의 카탈로그 캐시 갱신 (관리자)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from pointsapi.core.auth_middleware import get_current_user_id, require_admin
from pointsapi.core.exceptions import BaseAPIException, InternalServerError
from pointsapi.deps import get_catalog, get_purchase_service
from pointsapi.models.inventory import ItemCategory
from pointsapi.schemas.shop import (
    CatalogResponse,
    CatalogSyncResponse,
    InventoryResponse,
    PurchaseRequest,
    PurchaseResult,
)
from pointsapi.services.catalog import Catalog
from pointsapi.services.purchase_service import PurchaseService
from pointsapi.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shop", tags=["shop"])


@router.get("/catalog", response_model=CatalogResponse)
def get_catalog_items(
    category: Optional[ItemCategory] = Query(None, description="카테고리 필터"),
    catalog: Catalog = Depends(get_catalog),
) -> CatalogResponse:
    items = [catalog.snapshot(item) for item in catalog.list_available(category)]
    return CatalogResponse(items=items, total_count=len(items))


@router.post("/purchase", response_model=PurchaseResult)
def purchase_item(
    request: PurchaseRequest,
    user_id: int = Depends(get_current_user_id),
    purchase_service: PurchaseService = Depends(get_purchase_service),
) -> PurchaseResult:
    """
    아이템 구매

    HTTP Status:
        200: 구매 완료 또는 잔액 부족(success=False, status=REJECTED)
        404: 알 수 없는 아이템
        409: 판매 중지된 아이템
        422: 잘못된 수량
        503: 지급 실패 (차감된 포인트는 환불 처리됨)
    """
    try:
        return purchase_service.purchase(
            user_id, request.item_id, quantity=request.quantity, now=utc_now()
        )
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Purchase failed for user {user_id}, item {request.item_id}: {str(e)}")
        raise InternalServerError("Failed to process purchase")


@router.get("/inventory", response_model=InventoryResponse)
def get_my_inventory(
    user_id: int = Depends(get_current_user_id),
    purchase_service: PurchaseService = Depends(get_purchase_service),
) -> InventoryResponse:
    try:
        items = purchase_service.get_inventory(user_id)
        return InventoryResponse(items=items, total_count=len(items))
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Failed to get inventory for user {user_id}: {str(e)}")
        raise InternalServerError("Failed to retrieve inventory")


@router.post("/admin/sync-cache", response_model=CatalogSyncResponse)
def sync_catalog_cache(
    user_id: Optional[int] = Query(None, gt=0, description="대상 사용자 (없으면 전체)"),
    admin_id: int = Depends(require_admin),
    purchase_service: PurchaseService = Depends(get_purchase_service),
) -> CatalogSyncResponse:
    try:
        updated = purchase_service.sync_catalog_cache(user_id)
        logger.info(f"Admin {admin_id} synced catalog cache: {updated} lines")
        return CatalogSyncResponse(updated_lines=updated)
    except BaseAPIException:
        raise
    except Exception as e:
        logger.error(f"Catalog cache sync failed: {str(e)}")
        raise InternalServerError("Failed to sync catalog cache")
