from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import Column, DateTime, Integer, String, create_engine, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import KeyConflictError
from .models import UploadRecord

Base = declarative_base()


class UserORM(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True)
    credits = Column(Integer, nullable=True, default=0)


class UploadRecordORM(Base):
    __tablename__ = "data"
    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False)
    user_id = Column(String)
    prediction_id = Column(String)


class KeyValueStore(Protocol):
    def insert_record(self, key: str, user_id: Optional[str] = None) -> None: ...

    def get_record(self, key: str) -> Optional[UploadRecord]: ...

    def set_prediction(self, key: str, prediction_id: str, status: str) -> None: ...

    def get_credits(self, user_id: str) -> Optional[int]: ...

    def update_credits(self, user_id: str, delta: int) -> int: ...


class SqlKeyValueStore:
    """Upload registry and credit balances backed by a SQLAlchemy database."""

    def __init__(self, url: str):
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, connect_args=connect_args)
        # Keep attributes readable after the session closes
        self.Session = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
        Base.metadata.create_all(self.engine)

    def insert_record(self, key: str, user_id: Optional[str] = None) -> None:
        """Insert a placeholder row; the primary key makes this the uniqueness check."""
        with self.Session() as db:
            db.add(
                UploadRecordORM(
                    id=key,
                    status="pending",
                    created_at=datetime.now(timezone.utc),
                    user_id=user_id,
                )
            )
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise KeyConflictError(key) from e

    def get_record(self, key: str) -> Optional[UploadRecord]:
        with self.Session() as db:
            row = db.get(UploadRecordORM, key)
            if not row:
                return None
            return UploadRecord(
                id=row.id,
                status=row.status,
                created_at=row.created_at,
                user_id=row.user_id,
                prediction_id=row.prediction_id,
            )

    def set_prediction(self, key: str, prediction_id: str, status: str) -> None:
        with self.Session() as db:
            row = db.get(UploadRecordORM, key)
            if not row:
                return
            row.prediction_id = prediction_id
            row.status = status
            db.add(row)
            db.commit()

    def get_credits(self, user_id: str) -> Optional[int]:
        with self.Session() as db:
            user = db.get(UserORM, user_id)
            return user.credits if user else None

    def update_credits(self, user_id: str, delta: int) -> int:
        """Atomically add a signed delta to a user's balance and return the new balance."""
        with self.Session() as db:
            result = db.execute(
                update(UserORM)
                .where(UserORM.id == user_id)
                .values(credits=UserORM.credits + delta)
            )
            if result.rowcount == 0:
                db.rollback()
                raise RuntimeError(f"User not found: {user_id}")
            db.commit()
            return db.get(UserORM, user_id).credits

    def ensure_user(self, user_id: str, credits: int = 0) -> None:
        """Create a user row if missing (seeding and tests)."""
        with self.Session() as db:
            if db.get(UserORM, user_id):
                return
            db.add(UserORM(id=user_id, credits=credits))
            db.commit()
