"""
사용자 모델 (사용자 관리 도메인 소유)

포인트 코어는 이 테이블을 읽기 전용으로만 사용하여 사용자 존재/활성 여부를 확인합니다.
"""

from enum import Enum
from typing import Union

from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pointsapi.models.base import BaseModel


class UserRole(str, Enum):
    """사용자 역할 정의"""

    USER = "user"  # 일반 사용자
    INFLUENCER = "influencer"  # 인플루언서 (검증된 사용자)
    ADMIN = "admin"  # 관리자

    @classmethod
    def is_admin(cls, role: Union[str, "UserRole"]) -> bool:
        if isinstance(role, cls):
            role = role.value
        return str(role).lower() == cls.ADMIN.value


class User(BaseModel):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )
    # 탈퇴/정지 시 비활성화 (hard delete 없음)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, active={self.is_active})>"
