import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVENT_PUBLISHER", "log")

from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pointsapi.models import account, inventory, ledger, user  # noqa: F401
from pointsapi.models.base import Base
from pointsapi.models.user import User, UserRole
from pointsapi.services.catalog import Catalog
from pointsapi.services.earning_policy import EarningPolicy
from pointsapi.services.point_service import PointService
from pointsapi.services.purchase_service import PurchaseService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email: str = "member@example.com", is_active: bool = True, role=UserRole.USER):
        user = User(email=email, nickname=email.split("@")[0], role=role.value, is_active=is_active)
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def publisher():
    return Mock()


@pytest.fixture
def policy():
    return EarningPolicy()


@pytest.fixture
def point_service(db, policy, publisher):
    return PointService(db, policy, publisher)


@pytest.fixture
def catalog():
    return Catalog()


@pytest.fixture
def purchase_service(db, point_service, catalog):
    return PurchaseService(db, point_service, catalog)

