from sqlalchemy import Column, DateTime, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, declared_attr
from sqlalchemy.types import TypeDecorator

from pointsapi.utils.timezone_utils import ensure_utc, utc_now

Base = declarative_base()

# PostgreSQL에서는 JSONB, 그 외(SQLite 테스트 등)에서는 JSON
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """항상 UTC aware datetime으로 저장/조회되는 타입

    naive datetime은 UTC로 간주합니다. SQLite처럼 타임존을 보존하지 않는
    드라이버에서도 조회 결과가 aware datetime이 되도록 보정합니다.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return ensure_utc(value)


class TimestampMixin:
    """타임스탬프 필드를 위한 믹스인"""

    @declared_attr
    def created_at(cls):
        return Column(UTCDateTime(timezone=True), default=utc_now, server_default=func.now())

    @declared_attr
    def updated_at(cls):
        return Column(
            UTCDateTime(timezone=True),
            default=utc_now,
            server_default=func.now(),
            onupdate=utc_now,
        )


class BaseModel(Base, TimestampMixin):
    """모든 모델의 베이스 클래스"""

    __abstract__ = True
