import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pointsapi.database.connection import engine
from pointsapi.models import account, inventory, ledger, user  # noqa: F401  (테이블 등록)
from pointsapi.models.base import Base


def init_db():
    """데이터베이스 초기화 - 포인트/인벤토리/사용자 테이블 생성"""
    try:
        Base.metadata.create_all(bind=engine)
        print(
            f"Database initialized successfully: {', '.join(sorted(Base.metadata.tables))}"
        )
    except Exception as e:
        print(f"Database initialization failed: {str(e)}")
        raise


if __name__ == "__main__":
    init_db()
