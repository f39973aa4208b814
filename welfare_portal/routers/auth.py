from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, get_current_principal
from welfare_portal.db import get_db
from welfare_portal.dependencies import get_client_ip
from welfare_portal.errors import Unauthorized
from welfare_portal.models import User
from welfare_portal.schemas import LoginRequest
from welfare_portal.security.passwords import verify_password
from welfare_portal.security.sessions import create_web_session, revoke_web_session, token_from_request
from welfare_portal.services.audit_service import log_auth_event
from welfare_portal.services.serializers import user_dict

router = APIRouter(prefix='/auth', tags=['auth'])

INVALID_CREDENTIALS = 'Invalid email or password'


@router.post('/login')
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    settings = request.app.state.settings
    email = payload.email.strip().lower()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason='UNKNOWN_EMAIL',
            user_id=None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        raise Unauthorized(INVALID_CREDENTIALS)

    if not verify_password(payload.password, user.password_hash):
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason='BAD_PASSWORD',
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        raise Unauthorized(INVALID_CREDENTIALS)

    token = create_web_session(
        db,
        user.id,
        ttl_minutes=settings.session_ttl_minutes,
        ip=ip,
        user_agent=user_agent,
    )
    log_auth_event(
        db,
        attempted_email=email,
        success=True,
        failure_reason=None,
        user_id=user.id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()

    response = JSONResponse({'token': token, 'user': user_dict(user)})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db)):
    settings = request.app.state.settings
    token = token_from_request(request, settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
        db.commit()

    response = JSONResponse({'message': 'Logged out'})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    user = db.get(User, principal.id)
    if user is None:
        raise Unauthorized()
    return user_dict(user)
