"""
포인트 원장 리포지토리 - 추가 전용(append-only)

원장 항목은 생성 후 수정/삭제하지 않습니다. 이 리포지토리는 추가와 조회만 제공합니다.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc, func
from sqlalchemy.orm import Session

from pointsapi.models.ledger import (
    LedgerDirection,
    LedgerEntry,
    LedgerKind,
    LedgerReferenceType,
)
from pointsapi.repositories.base import BaseRepository
from pointsapi.schemas.points import LedgerEntrySchema


class LedgerRepository(BaseRepository[LedgerEntry, LedgerEntrySchema]):
    def __init__(self, db: Session):
        super().__init__(LedgerEntry, LedgerEntrySchema, db)

    def append(
        self,
        user_id: int,
        amount: int,
        balance_after: int,
        kind: LedgerKind,
        created_at: datetime,
        description: Optional[str] = None,
        reference_type: Optional[LedgerReferenceType] = None,
        reference_id: Optional[str] = None,
        meta: Optional[dict] = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            kind=LedgerKind(kind).value,
            description=description,
            reference_type=(
                LedgerReferenceType(reference_type).value if reference_type else None
            ),
            reference_id=reference_id,
            meta=meta,
            created_at=created_at,
        )
        return self.add(entry)

    def _user_query(
        self,
        user_id: int,
        kind: Optional[LedgerKind] = None,
        direction: Optional[LedgerDirection] = None,
        from_at: Optional[datetime] = None,
        to_at: Optional[datetime] = None,
    ):
        query = self.db.query(LedgerEntry).filter(LedgerEntry.user_id == user_id)
        if kind is not None:
            query = query.filter(LedgerEntry.kind == LedgerKind(kind).value)
        if direction is not None:
            if LedgerDirection(direction) == LedgerDirection.EARN:
                query = query.filter(LedgerEntry.amount > 0)
            else:
                query = query.filter(LedgerEntry.amount < 0)
        # 기간은 양 끝 포함
        if from_at is not None:
            query = query.filter(LedgerEntry.created_at >= from_at)
        if to_at is not None:
            query = query.filter(LedgerEntry.created_at <= to_at)
        return query

    def latest_created_at(self, user_id: int) -> Optional[datetime]:
        """사용자의 마지막 원장 항목 시각 (계정 잠금 안에서 호출)"""
        return (
            self._user_query(user_id)
            .with_entities(func.max(LedgerEntry.created_at))
            .scalar()
        )

    def list_recent(
        self,
        user_id: int,
        limit: int,
        offset: int = 0,
        kind: Optional[LedgerKind] = None,
        direction: Optional[LedgerDirection] = None,
        from_at: Optional[datetime] = None,
        to_at: Optional[datetime] = None,
    ) -> List[LedgerEntrySchema]:
        """최신순 페이지 조회"""
        entries = (
            self._user_query(user_id, kind, direction, from_at, to_at)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return self._to_schemas(entries)

    def count(
        self,
        user_id: int,
        kind: Optional[LedgerKind] = None,
        direction: Optional[LedgerDirection] = None,
        from_at: Optional[datetime] = None,
        to_at: Optional[datetime] = None,
    ) -> int:
        return (
            self._user_query(user_id, kind, direction, from_at, to_at)
            .with_entities(func.count(LedgerEntry.id))
            .scalar()
            or 0
        )

    def list_chronological(self, user_id: int) -> List[LedgerEntry]:
        """정합성 검증용 - 기록 순서 (created_at, id) 오름차순"""
        return (
            self._user_query(user_id)
            .order_by(asc(LedgerEntry.created_at), asc(LedgerEntry.id))
            .all()
        )
