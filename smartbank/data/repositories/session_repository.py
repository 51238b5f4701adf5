import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String

from smartbank.data.base import Base
from smartbank.domain.models import SessionState


class AuthSessionORM(Base):
    __tablename__ = "auth_sessions"
    id = Column(String(32), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    state = Column(
        SAEnum(SessionState), nullable=False, default=SessionState.AUTHENTICATED
    )
    created_at = Column(DateTime, nullable=False)
    last_activity = Column(DateTime, nullable=False)


def create_session(db, user_id: int, now: datetime) -> AuthSessionORM:
    session = AuthSessionORM(
        id=uuid.uuid4().hex,
        user_id=user_id,
        state=SessionState.AUTHENTICATED,
        created_at=now,
        last_activity=now,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_session(db, session_id: str):
    return db.query(AuthSessionORM).filter(AuthSessionORM.id == session_id).first()


def touch_session(db, session: AuthSessionORM, now: datetime) -> AuthSessionORM:
    session.last_activity = now
    db.commit()
    return session


def set_session_state(db, session: AuthSessionORM, state: SessionState):
    session.state = state
    db.commit()
    return session


def close_user_sessions(db, user_id: int, keep_session_id=None) -> int:
    query = db.query(AuthSessionORM).filter(
        AuthSessionORM.user_id == user_id,
        AuthSessionORM.state == SessionState.AUTHENTICATED,
    )
    if keep_session_id is not None:
        query = query.filter(AuthSessionORM.id != keep_session_id)
    closed = query.update(
        {AuthSessionORM.state: SessionState.LOGGED_OUT}, synchronize_session=False
    )
    db.commit()
    return closed
