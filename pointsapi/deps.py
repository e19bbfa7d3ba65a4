from dependency_injector.wiring import Provide, inject
from fastapi import Depends
from sqlalchemy.orm import Session

from pointsapi.containers import Container
from pointsapi.database.session import get_db
from pointsapi.providers.queue.publisher import EventPublisher
from pointsapi.services.catalog import Catalog
from pointsapi.services.earning_policy import EarningPolicy
from pointsapi.services.point_service import PointService
from pointsapi.services.purchase_service import PurchaseService


@inject
def get_point_service(
    db: Session = Depends(get_db),
    policy: EarningPolicy = Depends(Provide[Container.core.earning_policy]),
    publisher: EventPublisher = Depends(Provide[Container.core.event_publisher]),
) -> PointService:
    return PointService(db=db, policy=policy, publisher=publisher)


@inject
def get_catalog(catalog: Catalog = Depends(Provide[Container.core.catalog])) -> Catalog:
    return catalog


def get_purchase_service(
    db: Session = Depends(get_db),
    point_service: PointService = Depends(get_point_service),
    catalog: Catalog = Depends(get_catalog),
) -> PurchaseService:
    return PurchaseService(db=db, point_service=point_service, catalog=catalog)
