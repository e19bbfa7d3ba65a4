"""
포인트 계정 리포지토리

잔액 변경 경로는 항상 get_for_update로 계정 행을 잠근 뒤 수정합니다.
(PostgreSQL: SELECT ... FOR UPDATE, SQLite: 잠금 힌트 무시 / 단일 writer)
"""

from typing import Optional

from sqlalchemy.orm import Session

from pointsapi.models.account import PointAccount
from pointsapi.repositories.base import BaseRepository
from pointsapi.schemas.points import PointsSnapshot


class AccountRepository(BaseRepository[PointAccount, PointsSnapshot]):
    def __init__(self, db: Session):
        super().__init__(PointAccount, PointsSnapshot, db)

    def get(self, user_id: int) -> Optional[PointAccount]:
        """잠금 없이 계정 조회 (읽기 전용 경로)"""
        return (
            self.db.query(PointAccount)
            .filter(PointAccount.user_id == user_id)
            .first()
        )

    def get_snapshot(self, user_id: int) -> Optional[PointsSnapshot]:
        """잠금 없이 계정 상태를 스냅샷 스키마로 조회"""
        return self._to_schema(self.get(user_id))

    def get_for_update(self, user_id: int) -> Optional[PointAccount]:
        """계정 행을 잠그고 조회 - 같은 사용자의 변경을 직렬화"""
        return (
            self.db.query(PointAccount)
            .filter(PointAccount.user_id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def create(self, user_id: int) -> PointAccount:
        """잔액 0의 빈 계정 생성

        동시에 같은 사용자의 계정을 생성하면 flush 시점에 IntegrityError가 발생하며,
        호출자(PointService)가 롤백 후 재시도합니다.
        """
        account = PointAccount(user_id=user_id, balance=0, daily_counters={})
        return self.add(account)
