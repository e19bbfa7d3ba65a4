from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import pytz
from sqlalchemy.exc import IntegrityError, OperationalError

from pointsapi.core.exceptions import NotFoundError, StorageError, ValidationError
from pointsapi.models.account import PointAccount
from pointsapi.models.ledger import LedgerDirection, LedgerEntry, LedgerKind, LedgerReferenceType
from pointsapi.providers.queue.events import POINTS_AWARDED_TOPIC, POINTS_DEDUCTED_TOPIC
from pointsapi.schemas.points import PointsSnapshot
from pointsapi.services.earning_policy import ActionKind

SEOUL_TZ = pytz.timezone("Asia/Seoul")
SEOUL = "Asia/Seoul"


def kst(*args):
    return SEOUL_TZ.localize(datetime(*args))


def fresh_account(db, user_id):
    db.expire_all()
    return db.get(PointAccount, user_id)


def give_points(point_service, user_id, amount, now):
    return point_service.credit_custom(user_id, amount, "test seed", now)


class TestAward:
    """활동 보상 적립"""

    def test_first_award_creates_account(self, point_service, user, db):
        # When
        result = point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        # Then
        assert result.skipped is False
        assert result.added_points == 5
        assert result.total_points == 5
        account = fresh_account(db, user.id)
        assert account.balance == 5
        assert account.daily_counters == {"CHAT_MESSAGE": 5}

    def test_chat_cap_allows_six_then_skips_seventh(self, point_service, user):
        start = kst(2024, 3, 15, 12, 0)
        results = [
            point_service.award(user.id, "CHAT_MESSAGE", start + timedelta(minutes=i), SEOUL)
            for i in range(7)
        ]

        assert [r.skipped for r in results[:6]] == [False] * 6
        assert results[5].total_points == 30
        assert results[6].skipped is True
        assert results[6].added_points == 0
        assert results[6].total_points == 30
        assert "30" in results[6].skip_reason

    def test_cap_resets_after_cutover(self, point_service, user, db):
        # Given: 전날 업무일(05:59:59 KST는 아직 전날)에 한도 소진
        for i in range(6):
            point_service.award(user.id, ActionKind.POST_CREATE, kst(2024, 3, 15, 5, 50 + i), SEOUL)
        blocked = point_service.award(user.id, ActionKind.POST_CREATE, kst(2024, 3, 15, 5, 59, 59), SEOUL)

        # When
        allowed = point_service.award(user.id, ActionKind.POST_CREATE, kst(2024, 3, 15, 6, 0, 1), SEOUL)

        # Then
        assert blocked.skipped is True
        assert allowed.skipped is False
        assert allowed.total_points == 35
        assert fresh_account(db, user.id).daily_counters == {"POST_CREATE": 5}

    def test_attendance_once_per_business_day(self, point_service, user):
        first = point_service.award(user.id, ActionKind.DAILY_ATTENDANCE, kst(2024, 3, 15, 9, 0), SEOUL)
        second = point_service.award(user.id, ActionKind.DAILY_ATTENDANCE, kst(2024, 3, 16, 5, 0), SEOUL)
        next_day = point_service.award(user.id, ActionKind.DAILY_ATTENDANCE, kst(2024, 3, 16, 6, 30), SEOUL)

        assert first.added_points == 20
        assert second.skipped is True
        assert next_day.added_points == 20
        assert next_day.total_points == 40

    def test_unknown_action_is_skipped_not_error(self, point_service, user, db):
        result = point_service.award(user.id, "LIKE_POST", kst(2024, 3, 15, 12, 0), SEOUL)

        assert result.skipped is True
        assert result.added_points == 0
        assert db.query(LedgerEntry).count() == 0

    def test_daily_reset_persisted_even_when_skipped(self, point_service, user, db):
        # Given
        for i in range(6):
            point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, i), SEOUL)
        next_day = kst(2024, 3, 16, 8, 0)

        # When
        result = point_service.award(user.id, "LIKE_POST", next_day, SEOUL)

        # Then
        account = fresh_account(db, user.id)
        assert result.skipped is True
        assert account.daily_counters == {}
        assert account.last_daily_reset_at == next_day

    def test_award_writes_ledger_entry(self, point_service, user, db):
        point_service.award(
            user.id,
            ActionKind.POST_CREATE,
            kst(2024, 3, 15, 12, 0),
            SEOUL,
            reference_type=LedgerReferenceType.POST,
            reference_id="post-42",
        )

        entry = db.query(LedgerEntry).one()
        assert entry.kind == LedgerKind.EARN_POST.value
        assert entry.amount == 5
        assert entry.balance_after == 5
        assert entry.reference_type == "POST"
        assert entry.reference_id == "post-42"

    def test_unknown_user_raises_not_found(self, point_service):
        with pytest.raises(NotFoundError):
            point_service.award(9999, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

    def test_inactive_user_raises_not_found(self, point_service, make_user):
        inactive = make_user("gone@example.com", is_active=False)

        with pytest.raises(NotFoundError):
            point_service.award(inactive.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

    def test_unknown_timezone_raises_validation_error(self, point_service, user):
        with pytest.raises(ValidationError):
            point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), "Nowhere/City")

    def test_publishes_event_after_commit(self, point_service, user, publisher):
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        topic, event = publisher.publish.call_args[0]
        assert topic == POINTS_AWARDED_TOPIC
        assert event.user_id == user.id
        assert event.amount == 5
        assert event.kind == "EARN_CHAT"

    def test_skipped_award_publishes_nothing(self, point_service, user, publisher):
        point_service.award(user.id, "LIKE_POST", kst(2024, 3, 15, 12, 0), SEOUL)

        publisher.publish.assert_not_called()

    def test_publisher_failure_does_not_roll_back(self, point_service, user, publisher, db):
        publisher.publish.side_effect = RuntimeError("queue down")

        result = point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        assert result.added_points == 5
        assert fresh_account(db, user.id).balance == 5

    def test_concurrent_account_creation_is_retried(self, point_service, user, db):
        real_create = point_service.accounts.create
        race = IntegrityError("INSERT INTO accounts", {}, Exception("duplicate key"))
        calls = {"count": 0}

        def flaky_create(user_id):
            calls["count"] += 1
            if calls["count"] == 1:
                raise race
            return real_create(user_id)

        with patch.object(point_service.accounts, "create", side_effect=flaky_create):
            result = point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        assert calls["count"] == 2
        assert result.total_points == 5

    def test_storage_failure_rolls_back(self, point_service, user, db):
        give_points(point_service, user.id, 50, kst(2024, 3, 15, 11, 0))

        with patch.object(
            point_service.ledger,
            "append",
            side_effect=OperationalError("INSERT INTO ledger_entries", {}, Exception("timeout")),
        ):
            with pytest.raises(StorageError):
                point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        assert fresh_account(db, user.id).balance == 50
        assert db.query(LedgerEntry).count() == 1


class TestDeduct:
    """포인트 차감"""

    def test_deduct_success(self, point_service, user, publisher):
        give_points(point_service, user.id, 100, kst(2024, 3, 15, 11, 0))

        result = point_service.deduct(
            user.id, 30, "manual fix", kst(2024, 3, 15, 12, 0), kind=LedgerKind.ADJUSTMENT
        )

        assert result.success is True
        assert result.remaining_points == 70
        assert result.deducted_points == 30
        topic, event = publisher.publish.call_args[0]
        assert topic == POINTS_DEDUCTED_TOPIC
        assert event.amount == -30

    def test_insufficient_balance_is_result_not_error(self, point_service, user, db):
        give_points(point_service, user.id, 20, kst(2024, 3, 15, 11, 0))

        result = point_service.deduct(
            user.id, 50, "too much", kst(2024, 3, 15, 12, 0), kind=LedgerKind.SHOP_PURCHASE
        )

        assert result.success is False
        assert result.shortfall == 30
        assert result.remaining_points == 20
        assert "Required: 50" in result.message
        assert "Available: 20" in result.message
        assert fresh_account(db, user.id).balance == 20
        assert db.query(LedgerEntry).count() == 1

    def test_deduct_without_account_does_not_create_one(self, point_service, user, db):
        result = point_service.deduct(
            user.id, 10, "nothing", kst(2024, 3, 15, 12, 0), kind=LedgerKind.ADJUSTMENT
        )

        assert result.success is False
        assert result.shortfall == 10
        assert fresh_account(db, user.id) is None

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_touches_no_storage(self, point_service, user, amount):
        with patch.object(point_service.identity, "is_active_user") as identity_check:
            result = point_service.deduct(
                user.id, amount, "noop", kst(2024, 3, 15, 12, 0), kind=LedgerKind.ADJUSTMENT
            )

        assert result.success is False
        assert result.remaining_points is None
        identity_check.assert_not_called()

    def test_unknown_user_raises_not_found(self, point_service):
        with pytest.raises(NotFoundError):
            point_service.deduct(9999, 10, "ghost", kst(2024, 3, 15, 12, 0), kind=LedgerKind.ADJUSTMENT)

    def test_inactive_user_raises_not_found(self, point_service, make_user, db):
        inactive = make_user("gone@example.com", is_active=False)

        with pytest.raises(NotFoundError):
            point_service.deduct(
                inactive.id, 10, "ghost", kst(2024, 3, 15, 12, 0), kind=LedgerKind.SHOP_PURCHASE
            )

        assert db.query(LedgerEntry).count() == 0

    @pytest.mark.parametrize("kind", [LedgerKind.EARN_CHAT, "SOMETHING_ELSE"])
    def test_invalid_debit_kind(self, point_service, user, kind):
        with pytest.raises(ValidationError):
            point_service.deduct(user.id, 10, "bad kind", kst(2024, 3, 15, 12, 0), kind=kind)

    def test_balance_never_negative(self, point_service, user):
        now = kst(2024, 3, 15, 12, 0)
        give_points(point_service, user.id, 25, now)

        outcomes = [
            point_service.deduct(user.id, 10, f"spend {i}", now + timedelta(seconds=i), kind="ADJUSTMENT")
            for i in range(4)
        ]

        assert [o.success for o in outcomes] == [True, True, False, False]
        assert outcomes[-1].remaining_points == 5


class TestCreditCustom:
    def test_credit_records_adjustment_with_metadata(self, point_service, user, db):
        result = point_service.credit_custom(user.id, 300, "event prize", kst(2024, 3, 15, 12, 0))

        entry = db.query(LedgerEntry).one()
        assert result.is_custom is True
        assert result.total_points == 300
        assert entry.kind == LedgerKind.ADJUSTMENT.value
        assert entry.meta == {"is_custom": True, "reason": "event prize"}

    def test_non_positive_credit_is_skipped(self, point_service, user, db):
        result = point_service.credit_custom(user.id, 0, "nothing", kst(2024, 3, 15, 12, 0))

        assert result.skipped is True
        assert result.total_points is None
        assert db.query(LedgerEntry).count() == 0

    def test_unknown_user_raises_not_found(self, point_service, db):
        with pytest.raises(NotFoundError):
            point_service.credit_custom(9999, 10, "ghost", kst(2024, 3, 15, 12, 0))

        assert db.query(PointAccount).count() == 0

    def test_inactive_user_raises_not_found(self, point_service, make_user, db):
        inactive = make_user("gone@example.com", is_active=False)

        with pytest.raises(NotFoundError):
            point_service.credit_custom(inactive.id, 10, "ghost", kst(2024, 3, 15, 12, 0))

        assert db.query(LedgerEntry).count() == 0


class TestQueries:
    def test_snapshot_without_account_is_zero_and_creates_nothing(self, point_service, user, db):
        snapshot = point_service.get_snapshot(user.id, SEOUL, now=kst(2024, 3, 15, 12, 0))

        assert snapshot.balance == 0
        assert snapshot.daily_counters == {}
        assert fresh_account(db, user.id) is None

    def test_snapshot_applies_lazy_reset(self, point_service, user, db):
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        same_day = point_service.get_snapshot(user.id, SEOUL, now=kst(2024, 3, 15, 23, 0))
        next_day = point_service.get_snapshot(user.id, SEOUL, now=kst(2024, 3, 16, 7, 0))

        assert same_day.daily_counters == {"CHAT_MESSAGE": 5}
        assert next_day.daily_counters == {}
        assert next_day.balance == 5
        assert fresh_account(db, user.id).last_daily_reset_at == kst(2024, 3, 16, 7, 0)

    def test_reset_daily_limits(self, point_service, user):
        for i in range(6):
            point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, i), SEOUL)

        point_service.reset_daily_limits(user.id, kst(2024, 3, 15, 13, 0))
        result = point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 13, 1), SEOUL)

        assert result.skipped is False
        assert result.total_points == 35

    def test_ledger_newest_first_with_paging(self, point_service, user):
        for i in range(5):
            point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, i), SEOUL)

        page = point_service.get_ledger(user.id, limit=2, offset=0)

        assert page.balance == 25
        assert page.total_count == 5
        assert page.has_next is True
        assert [e.balance_after for e in page.entries] == [25, 20]

    def test_ledger_direction_filter(self, point_service, user):
        give_points(point_service, user.id, 100, kst(2024, 3, 15, 11, 0))
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)
        point_service.deduct(user.id, 30, "sticker", kst(2024, 3, 15, 13, 0), kind=LedgerKind.SHOP_PURCHASE)

        earned = point_service.get_ledger(user.id, direction=LedgerDirection.EARN)
        spent = point_service.get_ledger(user.id, direction="SPEND")

        assert [e.amount for e in earned.entries] == [5, 100]
        assert earned.total_count == 2
        assert [e.amount for e in spent.entries] == [-30]
        assert spent.total_count == 1
        assert spent.balance == 75

    def test_ledger_period_filter_is_inclusive(self, point_service, user):
        give_points(point_service, user.id, 100, kst(2024, 3, 14, 11, 0))
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)
        point_service.deduct(user.id, 30, "sticker", kst(2024, 3, 16, 12, 0), kind=LedgerKind.SHOP_PURCHASE)

        page = point_service.get_ledger(
            user.id, from_at=kst(2024, 3, 15, 12, 0), to_at=kst(2024, 3, 16, 0, 0)
        )
        since = point_service.get_ledger(user.id, from_at=kst(2024, 3, 15, 0, 0))

        assert [e.amount for e in page.entries] == [5]
        assert page.total_count == 1
        assert [e.amount for e in since.entries] == [-30, 5]

    def test_ledger_naive_period_is_utc(self, point_service, user):
        give_points(point_service, user.id, 100, kst(2024, 3, 15, 11, 0))

        # 11:00 KST == 02:00 UTC
        page = point_service.get_ledger(user.id, to_at=datetime(2024, 3, 15, 1, 59))

        assert page.total_count == 0

    def test_ledger_reversed_period_rejected(self, point_service, user):
        with pytest.raises(ValidationError):
            point_service.get_ledger(
                user.id, from_at=kst(2024, 3, 16, 0, 0), to_at=kst(2024, 3, 15, 0, 0)
            )

    def test_snapshot_read_path_returns_account_state(self, point_service, user):
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)

        snapshot = point_service.accounts.get_snapshot(user.id)

        assert isinstance(snapshot, PointsSnapshot)
        assert snapshot.balance == 5
        assert snapshot.daily_counters == {"CHAT_MESSAGE": 5}
        assert point_service.accounts.get_snapshot(9999) is None

    def test_ledger_limit_is_capped(self, point_service, user):
        with patch.object(point_service.ledger, "list_recent", return_value=[]) as list_recent:
            point_service.get_ledger(user.id, limit=1000)

        assert list_recent.call_args.kwargs["limit"] == 100

    def test_get_reward_value(self, point_service):
        assert point_service.get_reward_value("DAILY_ATTENDANCE") == 20
        assert point_service.get_reward_value("UNKNOWN") == 0


class TestIntegrity:
    def test_consistent_ledger(self, point_service, user):
        now = kst(2024, 3, 15, 12, 0)
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, now, SEOUL)
        point_service.award(user.id, ActionKind.DAILY_ATTENDANCE, now + timedelta(minutes=1), SEOUL)
        point_service.deduct(user.id, 7, "adjust", now + timedelta(minutes=2), kind=LedgerKind.ADJUSTMENT)

        report = point_service.verify_integrity(user.id)

        assert report.status == "OK"
        assert report.calculated_balance == 18
        assert report.recorded_balance == 18
        assert report.account_balance == 18
        assert report.entry_count == 3

    def test_late_request_time_does_not_reorder_ledger(self, point_service, user, db):
        # Given: 요청 시각(12:00:01)이 먼저 commit 된 항목(12:00:02)보다 이른 차감
        give_points(point_service, user.id, 100, kst(2024, 3, 15, 11, 0))
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0, 2), SEOUL)

        # When
        point_service.deduct(
            user.id, 30, "sticker", kst(2024, 3, 15, 12, 0, 1), kind=LedgerKind.SHOP_PURCHASE
        )

        # Then
        report = point_service.verify_integrity(user.id)
        assert report.status == "OK"
        assert report.calculated_balance == 75
        assert report.recorded_balance == 75
        assert report.broken_entry_id is None

        latest = point_service.get_ledger(user.id, limit=1).entries[0]
        assert latest.amount == -30
        assert latest.balance_after == 75
        assert latest.created_at == kst(2024, 3, 15, 12, 0, 2)

        created = [e.created_at for e in db.query(LedgerEntry).order_by(LedgerEntry.id).all()]
        assert created == sorted(created)

    def test_detects_tampered_account_balance(self, point_service, user, db):
        point_service.award(user.id, ActionKind.CHAT_MESSAGE, kst(2024, 3, 15, 12, 0), SEOUL)
        account = fresh_account(db, user.id)
        account.balance = 999
        db.commit()

        report = point_service.verify_integrity(user.id)

        assert report.status == "MISMATCH"
        assert report.account_balance == 999
        assert report.broken_entry_id is None
