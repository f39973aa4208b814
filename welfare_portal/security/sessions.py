from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, Role
from welfare_portal.models import User, WebSession


BEARER_PREFIX = 'bearer '


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry(ttl_minutes: int) -> datetime:
    return _now() + timedelta(minutes=ttl_minutes)


def create_web_session(
    db: Session,
    user_id: int,
    *,
    ttl_minutes: int,
    ip: str | None,
    user_agent: str | None,
) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(ttl_minutes),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def delete_user_sessions(db: Session, user_id: int) -> None:
    db.execute(delete(WebSession).where(WebSession.user_id == user_id))


def principal_for_user(user: User) -> Principal:
    role = Role(user.role.value if hasattr(user.role, 'value') else user.role)
    return Principal(
        id=user.id,
        name=user.name,
        email=user.email,
        role=role,
        department_id=user.department_id,
    )


def load_principal_from_token(db: Session, token: str | None, *, ttl_minutes: int) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry(ttl_minutes)
    return principal_for_user(user)


def token_from_request(request: Request, cookie_name: str) -> str | None:
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :].strip() or None
    return request.cookies.get(cookie_name)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        settings = request.app.state.settings
        token = token_from_request(request, settings.session_cookie_name)
        principal = None
        if token:
            with request.app.state.session_factory() as db:
                principal = load_principal_from_token(db, token, ttl_minutes=settings.session_ttl_minutes)
                db.commit()
        request.state.principal = principal
        return await call_next(request)
