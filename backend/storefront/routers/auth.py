import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from storefront import auth, models, schemas
from storefront.config import Settings
from storefront.database import get_db
from storefront.dependencies import client_ip, get_rate_limiters, get_settings_dep
from storefront.errors import Unauthenticated
from storefront.observability import security_logger
from storefront.rate_limit import RateLimiterRegistry, rate_limit

logger = logging.getLogger("storefront.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=schemas.User, status_code=201)
def register(
    data: schemas.UserCreate,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    user = auth.create_user(db, data, rounds=settings.bcrypt_rounds)
    session = auth.create_session(db, user.id, settings.session_ttl_hours)
    auth.set_session_cookie(response, settings, session)
    logger.info("[AUDIT] User registered: userId=%s", user.id)
    return user


@router.post("/login", response_model=schemas.User, dependencies=[Depends(rate_limit("login"))])
def login(
    data: schemas.UserLogin,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
):
    user = auth.authenticate(db, data.email, data.password)
    if user is None:
        security_logger.warning("Security: failed login from %s", client_ip(request))
        raise Unauthenticated("Invalid email or password")

    # a successful login starts the attempt count over
    limiters["login"].reset(client_ip(request))
    session = auth.create_session(db, user.id, settings.session_ttl_hours)
    auth.set_session_cookie(response, settings, session)
    return user


@router.post("/logout")
def logout(
    response: Response,
    user_id: str = Depends(auth.get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    auth.invalidate_user_sessions(db, user_id)
    auth.clear_session_cookie(response, settings)
    return {"message": "Logged out"}


@router.get("/user", response_model=schemas.User)
def current_user(user_id: str = Depends(auth.get_current_user_id), db: Session = Depends(get_db)):
    user = db.get(models.User, user_id)
    if user is None:
        raise Unauthenticated()
    return user
