"""
로컬 개발용 시드 스크립트
데모 사용자(일반/관리자)를 만들고 일반 사용자에게 초기 포인트를 지급
"""

import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pointsapi.config import settings
from pointsapi.database.connection import SessionLocal
from pointsapi.models.user import User, UserRole
from pointsapi.providers.queue.publisher import LoggingEventPublisher
from pointsapi.services.earning_policy import EarningPolicy
from pointsapi.services.point_service import PointService
from pointsapi.utils.timezone_utils import utc_now

DEMO_USERS = [
    ("demo@example.com", "demo", UserRole.USER),
    ("admin@example.com", "admin", UserRole.ADMIN),
]
WELCOME_POINTS = 1000


def seed_users():
    db = SessionLocal()
    try:
        created = []
        for email, nickname, role in DEMO_USERS:
            user = db.query(User).filter(User.email == email).first()
            if user is None:
                user = User(email=email, nickname=nickname, role=role.value, is_active=True)
                db.add(user)
                db.flush()
                created.append(user)
        db.commit()
        print(f"✅ 데모 사용자 생성 완료: {len(created)}명")

        point_service = PointService(
            db, EarningPolicy.from_settings(settings), LoggingEventPublisher()
        )
        for user in created:
            if user.role == UserRole.USER.value:
                point_service.credit_custom(user.id, WELCOME_POINTS, "welcome bonus", utc_now())
                print(f"💰 {user.email}: {WELCOME_POINTS} 포인트 지급")

    except Exception as e:
        db.rollback()
        print(f"❌ 시드 데이터 생성 실패: {str(e)}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_users()
