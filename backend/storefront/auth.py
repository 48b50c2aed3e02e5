"""
Session-cookie authentication.

The cookie holds only an opaque session id; the session row (user id,
expiry) lives in the `sessions` table. Expired rows are ignored on lookup
and removed by the maintenance sweep.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from storefront import models, schemas
from storefront.config import Settings
from storefront.database import get_db
from storefront.dependencies import get_settings_dep
from storefront.errors import Conflict, Forbidden, Unauthenticated

logger = logging.getLogger("storefront.auth")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# PASSWORDS / USERS
# ============================================================================

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash in the table
        return False


def create_user(db: Session, data: schemas.UserCreate, rounds: int = 12) -> models.User:
    email = data.email.strip().lower()
    if db.query(models.User).filter(models.User.email == email).first() is not None:
        raise Conflict("An account with this email already exists")

    user = models.User(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(data.password, rounds),
        first_name=data.first_name,
        last_name=data.last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# ============================================================================
# SESSIONS
# ============================================================================

def create_session(db: Session, user_id: str, ttl_hours: int) -> models.LoginSession:
    row = models.LoginSession(
        sid=secrets.token_urlsafe(32),
        sess={"user_id": user_id},
        user_id=user_id,
        expire=utcnow() + timedelta(hours=ttl_hours),
    )
    db.add(row)
    db.commit()
    return row


def load_session(db: Session, sid: str) -> Optional[models.LoginSession]:
    return (
        db.query(models.LoginSession)
        .filter(models.LoginSession.sid == sid, models.LoginSession.expire > utcnow())
        .first()
    )


def invalidate_user_sessions(db: Session, user_id: str) -> int:
    deleted = (
        db.query(models.LoginSession)
        .filter(models.LoginSession.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("[AUDIT] Invalidated %d sessions for user %s", deleted, user_id)
    return deleted


def clear_expired_sessions(db: Session) -> int:
    deleted = (
        db.query(models.LoginSession)
        .filter(models.LoginSession.expire <= utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def set_session_cookie(response: Response, settings: Settings, session: models.LoginSession) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        session.sid,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(settings.session_cookie_name)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_optional_user_id(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
) -> Optional[str]:
    sid = request.cookies.get(settings.session_cookie_name)
    if not sid:
        return None
    session = load_session(db, sid)
    return session.user_id if session is not None else None


def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if user_id is None:
        raise Unauthenticated()
    return user_id


def require_admin(request: Request, settings: Settings = Depends(get_settings_dep)) -> None:
    token = request.headers.get("X-Admin-Token")
    if not settings.admin_api_token or not token or not secrets.compare_digest(token, settings.admin_api_token):
        raise Forbidden()
