"""
포인트 원장 서비스

잔액 변경은 모두 이 서비스를 통해서만 이루어집니다.

트랜잭션 규칙:
1. 변경 작업 하나 = 로컬 트랜잭션 하나 (계정 행 잠금 → 변경 → 원장 추가 → commit 1회)
2. 계정은 첫 활동 시 생성되며, 동시 생성 충돌(IntegrityError)은 최대 3회 재시도
3. SQLAlchemyError는 롤백 후 StorageError로 변환
4. 이벤트는 commit 이후 발행하며, 발행 실패는 로그만 남기고 결과에 영향을 주지 않음

잔액 부족, 일일 한도 초과, 중복 출석은 예외가 아닌 결과(success/skipped)로 반환합니다.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Tuple, TypeVar, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pointsapi.core.exceptions import NotFoundError, StorageError, ValidationError
from pointsapi.database.session import transaction_scope
from pointsapi.models.account import PointAccount
from pointsapi.models.ledger import LedgerDirection, LedgerKind, LedgerReferenceType
from pointsapi.providers.queue.events import (
    POINTS_AWARDED_TOPIC,
    POINTS_DEDUCTED_TOPIC,
    PointsAwardedEvent,
    PointsDeductedEvent,
    PointsEvent,
)
from pointsapi.providers.queue.publisher import EventPublisher
from pointsapi.repositories.account_repository import AccountRepository
from pointsapi.repositories.ledger_repository import LedgerRepository
from pointsapi.repositories.user_repository import UserRepository
from pointsapi.schemas.points import (
    AwardResult,
    DeductResult,
    LedgerIntegrityReport,
    LedgerPage,
    PointsSnapshot,
)
from pointsapi.services.earning_policy import ActionKind, ActionLike, EarningPolicy, parse_action
from pointsapi.utils.timezone_utils import TimezoneLike, ensure_utc, resolve_timezone, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ACCOUNT_CREATE_ATTEMPTS = 3
MAX_LEDGER_PAGE_SIZE = 100

# 차감에 사용할 수 있는 원장 종류
DEBIT_KINDS = (LedgerKind.SHOP_PURCHASE, LedgerKind.ADJUSTMENT)


def _reference_value(reference_type) -> Optional[str]:
    if not reference_type:
        return None
    return LedgerReferenceType(reference_type).value


class PointService:
    """포인트 적립/차감/조회 비즈니스 로직"""

    def __init__(
        self,
        db: Session,
        policy: EarningPolicy,
        publisher: Optional[EventPublisher] = None,
        identity: Optional[UserRepository] = None,
    ):
        self.db = db
        self.policy = policy
        self.publisher = publisher
        self.accounts = AccountRepository(db)
        self.ledger = LedgerRepository(db)
        self.identity = identity or UserRepository(db)

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------

    @contextmanager
    def _storage_guard(self, operation: str, user_id: int):
        """읽기 경로의 SQLAlchemyError를 StorageError로 변환"""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Storage failure during {operation} for user {user_id}: {str(e)}")
            raise StorageError(details={"operation": operation}) from e

    def _ensure_user(self, user_id: int) -> None:
        with self._storage_guard("identity_check", user_id):
            is_active = self.identity.is_active_user(user_id)
        if not is_active:
            raise NotFoundError(f"User not found: {user_id}", details={"user_id": user_id})

    def _run_locked(
        self,
        user_id: int,
        operation: str,
        work: Callable[[Optional[PointAccount]], T],
        create_missing: bool = True,
    ) -> T:
        """계정 행을 잠근 상태로 work를 실행하고 한 번 commit"""
        for attempt in range(1, MAX_ACCOUNT_CREATE_ATTEMPTS + 1):
            created = False
            try:
                with transaction_scope(self.db):
                    account = self.accounts.get_for_update(user_id)
                    if account is None and create_missing:
                        created = True
                        account = self.accounts.create(user_id)
                    return work(account)
            except IntegrityError as e:
                if not created or attempt == MAX_ACCOUNT_CREATE_ATTEMPTS:
                    logger.error(
                        f"Integrity error during {operation} for user {user_id}: {str(e)}"
                    )
                    raise StorageError(details={"operation": operation}) from e
                logger.warning(
                    f"Concurrent account creation for user {user_id}, retrying {operation} "
                    f"({attempt}/{MAX_ACCOUNT_CREATE_ATTEMPTS})"
                )
            except SQLAlchemyError as e:
                logger.error(f"Storage failure during {operation} for user {user_id}: {str(e)}")
                raise StorageError(details={"operation": operation}) from e
        raise StorageError(details={"operation": operation})

    def _entry_time(self, user_id: int, now: datetime) -> datetime:
        """원장 기록 시각 - 직전 항목보다 과거가 되지 않도록 보정 (잠금 안에서 호출)"""
        latest = self.ledger.latest_created_at(user_id)
        if latest is None:
            return now
        return max(now, ensure_utc(latest))

    def _apply_daily_reset(
        self, account: PointAccount, now: datetime, timezone: TimezoneLike
    ) -> bool:
        if not self.policy.needs_daily_reset(now, account.last_daily_reset_at, timezone):
            return False
        account.daily_counters = {}
        account.last_daily_reset_at = now
        logger.info(f"Daily counters reset for user {account.user_id}")
        return True

    def _skip_reason(
        self,
        account: PointAccount,
        action: Optional[ActionKind],
        action_name: str,
        now: datetime,
        timezone: TimezoneLike,
    ) -> Optional[str]:
        reward = self.policy.reward_for(action) if action else 0
        if reward <= 0:
            return f"No reward configured for action: {action_name}"

        if action == ActionKind.DAILY_ATTENDANCE and self.policy.is_same_business_day(
            account.last_attendance_at, now, timezone
        ):
            return "Daily attendance already claimed today"

        cap = self.policy.daily_cap_for(action)
        if cap is not None:
            current = (account.daily_counters or {}).get(action.value, 0)
            if current + reward > cap:
                return f"Daily cap reached for {action.value}: {current}/{cap} points"
        return None

    def _publish(self, topic: str, event: PointsEvent) -> None:
        if self.publisher is None:
            return
        try:
            self.publisher.publish(topic, event)
        except Exception as e:
            logger.error(
                f"Failed to publish {topic} for user {event.user_id}: {str(e)}",
                exc_info=True,
            )

    @staticmethod
    def _snapshot(user_id: int, account: Optional[PointAccount]) -> PointsSnapshot:
        if account is None:
            return PointsSnapshot(user_id=user_id, balance=0)
        return PointsSnapshot(
            user_id=account.user_id,
            balance=account.balance,
            daily_counters=dict(account.daily_counters or {}),
            last_daily_reset_at=account.last_daily_reset_at,
            last_attendance_at=account.last_attendance_at,
        )

    # ------------------------------------------------------------------
    # 적립
    # ------------------------------------------------------------------

    def award(
        self,
        user_id: int,
        action_kind: ActionLike,
        now: datetime,
        timezone: TimezoneLike,
        reference_type: Optional[LedgerReferenceType] = None,
        reference_id: Optional[str] = None,
    ) -> AwardResult:
        """활동 보상 적립

        일일 초기화가 필요하면 먼저 카운터를 초기화하며, 이 초기화는 보상이
        스킵되더라도 저장됩니다.
        """
        resolve_timezone(timezone)
        now = ensure_utc(now)
        self._ensure_user(user_id)

        action = parse_action(action_kind)
        action_name = action.value if action else str(action_kind)

        def work(account: PointAccount) -> Tuple[AwardResult, Optional[PointsAwardedEvent]]:
            self._apply_daily_reset(account, now, timezone)

            skip_reason = self._skip_reason(account, action, action_name, now, timezone)
            if skip_reason:
                logger.info(f"Award skipped for user {user_id} ({action_name}): {skip_reason}")
                return (
                    AwardResult(
                        user_id=user_id,
                        action=action_name,
                        added_points=0,
                        total_points=account.balance,
                        skipped=True,
                        skip_reason=skip_reason,
                        timestamp=now,
                    ),
                    None,
                )

            reward = self.policy.reward_for(action)
            ledger_kind = self.policy.ledger_kind_for(action)

            counters = dict(account.daily_counters or {})
            counters[action.value] = counters.get(action.value, 0) + reward
            account.daily_counters = counters
            account.balance = account.balance + reward
            if action == ActionKind.DAILY_ATTENDANCE:
                account.last_attendance_at = now

            recorded_at = self._entry_time(user_id, now)
            self.ledger.append(
                user_id=user_id,
                amount=reward,
                balance_after=account.balance,
                kind=ledger_kind,
                created_at=recorded_at,
                description=f"{action.value} reward",
                reference_type=reference_type,
                reference_id=reference_id,
            )

            result = AwardResult(
                user_id=user_id,
                action=action_name,
                added_points=reward,
                total_points=account.balance,
                timestamp=now,
            )
            event = PointsAwardedEvent(
                user_id=user_id,
                amount=reward,
                balance_after=account.balance,
                kind=ledger_kind.value,
                occurred_at=recorded_at,
                reference_type=_reference_value(reference_type),
                reference_id=reference_id,
                action=action_name,
            )
            return result, event

        result, event = self._run_locked(user_id, "award", work)
        if event is not None:
            logger.info(
                f"Awarded {result.added_points} points to user {user_id} "
                f"for {action_name} (balance {result.total_points})"
            )
            self._publish(POINTS_AWARDED_TOPIC, event)
        return result

    def credit_custom(
        self,
        user_id: int,
        amount: int,
        reason: str,
        now: datetime,
        reference_type: Optional[LedgerReferenceType] = None,
        reference_id: Optional[str] = None,
    ) -> AwardResult:
        """관리자 지급/환불 - ADJUSTMENT 원장 항목으로 기록"""
        now = ensure_utc(now)
        if amount <= 0:
            return AwardResult(
                user_id=user_id,
                added_points=0,
                total_points=None,
                skipped=True,
                skip_reason=f"Credit amount must be positive: {amount}",
                is_custom=True,
                reason=reason,
                timestamp=now,
            )

        self._ensure_user(user_id)

        def work(account: PointAccount) -> Tuple[AwardResult, PointsAwardedEvent]:
            account.balance = account.balance + amount
            recorded_at = self._entry_time(user_id, now)
            self.ledger.append(
                user_id=user_id,
                amount=amount,
                balance_after=account.balance,
                kind=LedgerKind.ADJUSTMENT,
                created_at=recorded_at,
                description=reason,
                reference_type=reference_type,
                reference_id=reference_id,
                meta={"is_custom": True, "reason": reason},
            )
            result = AwardResult(
                user_id=user_id,
                added_points=amount,
                total_points=account.balance,
                is_custom=True,
                reason=reason,
                timestamp=now,
            )
            event = PointsAwardedEvent(
                user_id=user_id,
                amount=amount,
                balance_after=account.balance,
                kind=LedgerKind.ADJUSTMENT.value,
                occurred_at=recorded_at,
                reference_type=_reference_value(reference_type),
                reference_id=reference_id,
                is_custom=True,
                reason=reason,
            )
            return result, event

        result, event = self._run_locked(user_id, "credit_custom", work)
        logger.info(f"Credited {amount} points to user {user_id}: {reason}")
        self._publish(POINTS_AWARDED_TOPIC, event)
        return result

    # ------------------------------------------------------------------
    # 차감
    # ------------------------------------------------------------------

    def deduct(
        self,
        user_id: int,
        amount: int,
        reason: str,
        now: datetime,
        kind: Union[LedgerKind, str],
        reference_type: Optional[LedgerReferenceType] = None,
        reference_id: Optional[str] = None,
    ) -> DeductResult:
        """포인트 차감

        kind는 SHOP_PURCHASE 또는 ADJUSTMENT만 허용합니다. 잔액이 부족하면
        아무것도 변경하지 않고 success=False를 반환합니다.
        """
        try:
            debit_kind = LedgerKind(kind)
        except ValueError:
            debit_kind = None
        if debit_kind not in DEBIT_KINDS:
            raise ValidationError(
                f"Invalid debit kind: {kind}",
                details={"allowed": [k.value for k in DEBIT_KINDS]},
            )

        if amount <= 0:
            return DeductResult(
                success=False,
                message=f"Deduct amount must be positive: {amount}",
                remaining_points=None,
            )

        now = ensure_utc(now)
        self._ensure_user(user_id)

        def work(
            account: Optional[PointAccount],
        ) -> Tuple[DeductResult, Optional[PointsDeductedEvent]]:
            balance = account.balance if account is not None else 0
            if balance < amount:
                return (
                    DeductResult(
                        success=False,
                        message=f"Insufficient balance. Required: {amount}, Available: {balance}",
                        remaining_points=balance,
                        shortfall=amount - balance,
                    ),
                    None,
                )

            account.balance = balance - amount
            recorded_at = self._entry_time(user_id, now)
            self.ledger.append(
                user_id=user_id,
                amount=-amount,
                balance_after=account.balance,
                kind=debit_kind,
                created_at=recorded_at,
                description=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            )
            result = DeductResult(
                success=True,
                message=f"Deducted {amount} points",
                remaining_points=account.balance,
                deducted_points=amount,
            )
            event = PointsDeductedEvent(
                user_id=user_id,
                amount=-amount,
                balance_after=account.balance,
                kind=debit_kind.value,
                occurred_at=recorded_at,
                reference_type=_reference_value(reference_type),
                reference_id=reference_id,
                reason=reason,
            )
            return result, event

        result, event = self._run_locked(user_id, "deduct", work, create_missing=False)
        if event is None:
            logger.info(f"Deduct rejected for user {user_id}: {result.message}")
            return result

        logger.info(f"Deducted {amount} points from user {user_id}: {reason}")
        self._publish(POINTS_DEDUCTED_TOPIC, event)
        return result

    # ------------------------------------------------------------------
    # 조회 / 관리
    # ------------------------------------------------------------------

    def get_snapshot(
        self, user_id: int, timezone: TimezoneLike, now: Optional[datetime] = None
    ) -> PointsSnapshot:
        """현재 잔액과 일일 카운터 조회 (필요 시 일일 초기화 저장)

        계정이 없으면 행을 만들지 않고 0 스냅샷을 반환합니다.
        """
        resolve_timezone(timezone)
        now = ensure_utc(now or utc_now())
        self._ensure_user(user_id)

        with self._storage_guard("get_snapshot", user_id):
            snapshot = self.accounts.get_snapshot(user_id)
        if snapshot is None:
            return self._snapshot(user_id, None)
        if not self.policy.needs_daily_reset(now, snapshot.last_daily_reset_at, timezone):
            return snapshot

        def work(locked: Optional[PointAccount]) -> PointsSnapshot:
            if locked is not None:
                self._apply_daily_reset(locked, now, timezone)
            return self._snapshot(user_id, locked)

        return self._run_locked(user_id, "get_snapshot", work, create_missing=False)

    def reset_daily_limits(self, user_id: int, now: datetime) -> PointsSnapshot:
        """관리자용 - 일일 카운터를 무조건 초기화"""
        now = ensure_utc(now)
        self._ensure_user(user_id)

        def work(account: PointAccount) -> PointsSnapshot:
            account.daily_counters = {}
            account.last_daily_reset_at = now
            return self._snapshot(user_id, account)

        snapshot = self._run_locked(user_id, "reset_daily_limits", work)
        logger.info(f"Daily limits reset by admin for user {user_id}")
        return snapshot

    def get_ledger(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        kind: Optional[LedgerKind] = None,
        direction: Optional[LedgerDirection] = None,
        from_at: Optional[datetime] = None,
        to_at: Optional[datetime] = None,
    ) -> LedgerPage:
        """원장 조회 (최신순, 최대 100건)

        Args:
            kind: 원장 항목 종류 필터
            direction: EARN(적립만) / SPEND(차감만)
            from_at, to_at: 기간 필터 (양 끝 포함, naive datetime은 UTC)
        """
        limit = max(1, min(limit, MAX_LEDGER_PAGE_SIZE))
        offset = max(0, offset)
        from_at = ensure_utc(from_at) if from_at is not None else None
        to_at = ensure_utc(to_at) if to_at is not None else None
        if from_at is not None and to_at is not None and from_at > to_at:
            raise ValidationError(
                "from_at must not be later than to_at",
                details={"from_at": from_at.isoformat(), "to_at": to_at.isoformat()},
            )
        self._ensure_user(user_id)

        filters = dict(kind=kind, direction=direction, from_at=from_at, to_at=to_at)
        with self._storage_guard("get_ledger", user_id):
            account = self.accounts.get(user_id)
            entries = self.ledger.list_recent(user_id, limit=limit, offset=offset, **filters)
            total_count = self.ledger.count(user_id, **filters)

        return LedgerPage(
            balance=account.balance if account is not None else 0,
            entries=entries,
            total_count=total_count,
            has_next=offset + len(entries) < total_count,
        )

    def verify_integrity(self, user_id: int) -> LedgerIntegrityReport:
        """원장을 (created_at, id) 순서로 재생하여 잔액 정합성 검증"""
        self._ensure_user(user_id)

        with self._storage_guard("verify_integrity", user_id):
            account = self.accounts.get(user_id)
            entries = self.ledger.list_chronological(user_id)

        running = 0
        broken_entry_id = None
        for entry in entries:
            running += entry.amount
            if broken_entry_id is None and entry.balance_after != running:
                broken_entry_id = entry.id

        recorded_balance = entries[-1].balance_after if entries else 0
        account_balance = account.balance if account is not None else 0
        is_consistent = (
            broken_entry_id is None
            and running == recorded_balance
            and recorded_balance == account_balance
        )
        if not is_consistent:
            logger.warning(
                f"Ledger mismatch for user {user_id}: calculated={running}, "
                f"recorded={recorded_balance}, account={account_balance}, "
                f"broken_entry={broken_entry_id}"
            )

        return LedgerIntegrityReport(
            status="OK" if is_consistent else "MISMATCH",
            user_id=user_id,
            calculated_balance=running,
            recorded_balance=recorded_balance,
            account_balance=account_balance,
            entry_count=len(entries),
            broken_entry_id=broken_entry_id,
            verified_at=utc_now(),
        )

    def get_reward_value(self, action_kind: ActionLike) -> int:
        return self.policy.reward_for(action_kind)
