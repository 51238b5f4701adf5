from datetime import date, datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from smartbank.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    BCRYPT_ROUNDS,
    LOCKOUT_MINUTES,
    MAX_FAILED_LOGINS,
    MIN_PASSWORD_LENGTH,
    SECRET_KEY,
    SESSION_IDLE_MINUTES,
)
from smartbank.data.base import get_db
from smartbank.data.repositories.session_repository import (
    close_user_sessions,
    create_session,
    get_session,
    set_session_state,
    touch_session,
)
from smartbank.data.repositories.user_repository import (
    UserORM,
    clear_lockout,
    create_user,
    get_user,
    get_user_by_email,
    record_failed_login,
    record_successful_login,
    touch_user_activity,
    update_password,
)
from smartbank.domain.errors import (
    AccountLockedError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidSessionError,
    WeakPasswordError,
)
from smartbank.domain.helpers.validation import require_text, validate_email
from smartbank.domain.models import SessionState
from smartbank.domain.services.account_service import seed_default_data
from smartbank.utils.logger import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def _validate_password(password: str):
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def create_access_token(
    data: dict, expires_delta: timedelta | None = None, now: datetime | None = None
):
    to_encode = data.copy()
    expire = (now or datetime.utcnow()) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise InvalidSessionError("Invalid session credential")
    if not payload.get("jti") or not payload.get("sub"):
        raise InvalidSessionError("Invalid session credential")
    return payload


def register_user(
    db: Session,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    phone: str = "",
    today: date | None = None,
) -> UserORM:
    first_name = require_text(first_name, "firstName")
    last_name = require_text(last_name, "lastName")
    email = validate_email(email)
    if get_user_by_email(db, email):
        raise DuplicateEmailError("This email is already registered")
    _validate_password(password)
    # The account and its starter data are committed together or not at all
    try:
        user = create_user(
            db,
            first_name,
            last_name,
            email,
            get_password_hash(password),
            phone=(phone or "").strip(),
            commit=False,
        )
        seed_default_data(db, user.id, today, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Registered user {user.id}")
    return user


def login(
    db: Session, email: str, password: str, now: datetime | None = None
) -> tuple[str, UserORM]:
    """
    Check credentials and open a session. Five consecutive failures lock
    the account, and while the lock holds even the right password is refused.
    Returns the signed session token and the user.
    """
    now = now or datetime.utcnow()
    user = get_user_by_email(db, email or "")
    if not user:
        raise InvalidCredentialsError("Invalid credentials")

    if user.locked_until is not None:
        if now < user.locked_until:
            raise AccountLockedError(
                f"Account locked until {user.locked_until.isoformat(timespec='seconds')}"
                " after too many failed attempts"
            )
        clear_lockout(db, user)

    if not verify_password(password or "", user.hashed_password):
        attempts = (user.failed_attempts or 0) + 1
        locked_until = None
        if attempts >= MAX_FAILED_LOGINS:
            locked_until = now + timedelta(minutes=LOCKOUT_MINUTES)
            logger.warning(
                f"User {user.id} locked for {LOCKOUT_MINUTES} minutes "
                f"after {attempts} failed logins"
            )
        record_failed_login(db, user, locked_until)
        raise InvalidCredentialsError("Invalid credentials")

    record_successful_login(db, user, now)
    session = create_session(db, user.id, now)
    token = create_access_token(
        data={"sub": str(user.id), "jti": session.id}, now=now
    )
    logger.info(f"User {user.id} logged in")
    return token, user


def verify_session(db: Session, token: str | None, now: datetime | None = None) -> UserORM:
    """Resolve a session token to its user, expiring sessions idle too long."""
    if not token:
        raise InvalidSessionError("Missing session credential")
    now = now or datetime.utcnow()
    payload = _decode_token(token)
    session = get_session(db, payload["jti"])
    if session is None or str(session.user_id) != str(payload["sub"]):
        raise InvalidSessionError("Unknown session")
    if session.state != SessionState.AUTHENTICATED:
        raise InvalidSessionError("Session is no longer active")
    if now - session.last_activity > timedelta(minutes=SESSION_IDLE_MINUTES):
        set_session_state(db, session, SessionState.EXPIRED)
        logger.info(f"Session for user {session.user_id} expired after inactivity")
        raise InvalidSessionError("Session expired due to inactivity")
    user = get_user(db, session.user_id)
    if user is None:
        raise InvalidSessionError("Unknown session")
    touch_session(db, session, now)
    touch_user_activity(db, user, now)
    return user


def logout(db: Session, token: str | None) -> bool:
    """Close the session behind token. Returns False when there was nothing to close."""
    if not token:
        return False
    try:
        payload = _decode_token(token)
    except InvalidSessionError:
        return False
    session = get_session(db, payload["jti"])
    if session is None or session.state != SessionState.AUTHENTICATED:
        return False
    set_session_state(db, session, SessionState.LOGGED_OUT)
    logger.info(f"User {session.user_id} logged out")
    return True


def change_password(
    db: Session, user: UserORM, current_password: str, new_password: str, token=None
):
    if not verify_password(current_password or "", user.hashed_password):
        raise InvalidCredentialsError("Current password is incorrect")
    _validate_password(new_password)
    update_password(db, user.id, get_password_hash(new_password))
    keep = _decode_token(token)["jti"] if token else None
    closed = close_user_sessions(db, user.id, keep_session_id=keep)
    logger.info(f"User {user.id} changed password, {closed} other sessions closed")
    return user


def get_current_user(
    token: str | None = Depends(oauth2_scheme), db: Session = Depends(get_db)
):
    try:
        return verify_session(db, token)
    except InvalidSessionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
