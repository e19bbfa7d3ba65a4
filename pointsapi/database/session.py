from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from pointsapi.database.connection import SessionLocal


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def transaction_scope(db: Session) -> Iterator[Session]:
    """하나의 로컬 트랜잭션 단위

    블록이 정상 종료되면 commit, 예외가 발생하면 rollback 후 예외를 그대로 전파합니다.
    잔액 갱신과 원장 추가는 반드시 같은 scope 안에서 수행되어야 합니다.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
