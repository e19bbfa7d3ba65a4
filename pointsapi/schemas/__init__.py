from .points import AwardResult, DeductResult, LedgerPage, PointsSnapshot
from .shop import CatalogItem, InventoryLineSchema, PurchaseResult, PurchaseStatus
