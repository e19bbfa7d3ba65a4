from datetime import datetime
from typing import Optional

from pydantic import BaseModel

POINTS_AWARDED_TOPIC = "points.awarded"
POINTS_DEDUCTED_TOPIC = "points.deducted"


class PointsEvent(BaseModel):
    user_id: int
    amount: int
    balance_after: int
    kind: str
    occurred_at: datetime
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None


class PointsAwardedEvent(PointsEvent):
    action: Optional[str] = None
    is_custom: bool = False
    reason: Optional[str] = None


class PointsDeductedEvent(PointsEvent):
    reason: str
