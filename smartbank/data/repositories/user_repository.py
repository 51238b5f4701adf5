from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from smartbank.data.base import Base
from smartbank.domain.errors import DuplicateEmailError


class UserORM(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, default="")
    hashed_password = Column(String, nullable=False)
    currency = Column(String, default="USD")
    language = Column(String, default="es")
    theme = Column(String, default="light")
    savings_goal = Column(Integer, default=20)
    emergency_fund = Column(Numeric(14, 2), default=Decimal("10000"))
    failed_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    last_activity = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db, email: str):
    return db.query(UserORM).filter(UserORM.email == normalize_email(email)).first()


def get_user(db, user_id: int):
    return db.query(UserORM).filter(UserORM.id == user_id).first()


def create_user(
    db,
    first_name: str,
    last_name: str,
    email: str,
    hashed_password: str,
    phone: str = "",
    commit: bool = True,
):
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise DuplicateEmailError("This email is already registered")
    db_user = UserORM(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        hashed_password=hashed_password,
    )
    db.add(db_user)
    if commit:
        db.commit()
        db.refresh(db_user)
    else:
        db.flush()
    return db_user


def record_failed_login(db, user, locked_until=None):
    user.failed_attempts = (user.failed_attempts or 0) + 1
    if locked_until is not None:
        user.locked_until = locked_until
    db.commit()
    db.refresh(user)
    return user


def clear_lockout(db, user):
    user.failed_attempts = 0
    user.locked_until = None
    db.commit()
    db.refresh(user)
    return user


def record_successful_login(db, user, now: datetime):
    user.failed_attempts = 0
    user.locked_until = None
    user.last_login = now
    user.last_activity = now
    db.commit()
    db.refresh(user)
    return user


def touch_user_activity(db, user, now: datetime):
    user.last_activity = now
    db.commit()
    return user


def update_password(db, user_id: int, new_hashed_password: str):
    user = get_user(db, user_id)
    if user:
        user.hashed_password = new_hashed_password
        db.commit()
        db.refresh(user)
        return user
    return None


def update_settings(db, user_id: int, settings: dict):
    user = get_user(db, user_id)
    if user:
        for key, value in settings.items():
            setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user
    return None
