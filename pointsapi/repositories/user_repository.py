from typing import Optional

from sqlalchemy.orm import Session

from pointsapi.models.user import User as UserModel


class UserRepository:
    """사용자 존재/활성 여부 조회 (읽기 전용)"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[UserModel]:
        return self.db.query(UserModel).filter(UserModel.id == user_id).first()

    def is_active_user(self, user_id: int) -> bool:
        user = self.get(user_id)
        return bool(user is not None and user.is_active)
