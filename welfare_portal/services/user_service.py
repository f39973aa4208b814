from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from welfare_portal import cache as cache_keys
from welfare_portal.auth import Principal, assert_self_or_admin, is_admin
from welfare_portal.cache import CacheGateway, cache_key, namespace_pattern
from welfare_portal.config import settings
from welfare_portal.errors import Conflict, InvalidInput, NotFound
from welfare_portal.models import Department, StatusLog, User, UserRole, WelfareRecord
from welfare_portal.schemas import UserCreate, UserPatch
from welfare_portal.security.passwords import hash_password, validate_new_password
from welfare_portal.security.sessions import delete_user_sessions
from welfare_portal.services.pagination import envelope, fetch_page
from welfare_portal.services.serializers import user_dict

logger = logging.getLogger(__name__)

SELF_SERVICE_FIELDS = frozenset({'name', 'email', 'password'})
ADMIN_FIELDS = SELF_SERVICE_FIELDS | {'role', 'department_id'}


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound('User not found')
    return user


def _ensure_department(db: Session, department_id: int) -> None:
    if db.get(Department, department_id) is None:
        raise InvalidInput('Department does not exist')


def _invalidate(cache: CacheGateway, user_id: int, *, profile_changed: bool = False) -> None:
    cache.delete(cache_key(cache_keys.USER, user_id))
    cache.delete_by_pattern(namespace_pattern(cache_keys.USERS))
    if profile_changed:
        # Record and status log payloads embed user names.
        cache.delete_by_pattern(namespace_pattern(cache_keys.WELFARE_RECORD))
        cache.delete_by_pattern(namespace_pattern(cache_keys.WELFARE_RECORDS))
        cache.delete_by_pattern(namespace_pattern(cache_keys.STATUS_LOGS))


def list_users(
    db: Session,
    cache: CacheGateway,
    *,
    department_id: int | None,
    role: UserRole | None,
    search: str | None,
    page: int,
    limit: int,
) -> dict:
    search = (search or '').strip() or None
    key = cache_key(cache_keys.USERS, department_id, role, search, page, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    query = select(User).order_by(User.created_at.desc(), User.id.desc())
    if department_id is not None:
        query = query.where(User.department_id == department_id)
    if role is not None:
        query = query.where(User.role == role)
    if search:
        query = query.where(
            or_(
                User.name.icontains(search, autoescape=True),
                User.email.icontains(search, autoescape=True),
                User.employee_id.icontains(search, autoescape=True),
            )
        )

    rows, total = fetch_page(db, query, page=page, limit=limit)
    result = envelope([user_dict(row) for row in rows], total=total, page=page, limit=limit)
    cache.put(key, result, settings.cache_list_ttl_seconds)
    return result


def get_user(db: Session, cache: CacheGateway, *, principal: Principal, user_id: int) -> dict:
    assert_self_or_admin(principal, user_id)

    key = cache_key(cache_keys.USER, user_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = user_dict(_get_user(db, user_id))
    cache.put(key, result, settings.cache_user_ttl_seconds)
    return result


def create_user(db: Session, cache: CacheGateway, *, payload: UserCreate) -> dict:
    employee_id = payload.employee_id.strip()
    name = payload.name.strip()
    email = payload.email.strip().lower()
    if not employee_id or not name or not email or not payload.password:
        raise InvalidInput('Missing required fields')
    validate_new_password(payload.password, min_length=settings.password_min_length)
    _ensure_department(db, payload.department_id)

    existing = db.execute(
        select(User.id).where(or_(User.email == email, User.employee_id == employee_id)).limit(1)
    ).scalar_one_or_none()
    if existing is not None:
        raise Conflict('Email or Employee ID already exists')

    user = User(
        employee_id=employee_id,
        name=name,
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role or UserRole.USER,
        department_id=payload.department_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info('User created: id=%s employee_id=%s role=%s', user.id, user.employee_id, user.role.value)

    _invalidate(cache, user.id)
    return user_dict(user)


def update_user(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    user_id: int,
    patch: UserPatch,
) -> dict:
    assert_self_or_admin(principal, user_id)
    user = _get_user(db, user_id)

    allowed = ADMIN_FIELDS if is_admin(principal) else SELF_SERVICE_FIELDS
    changes = {
        name: value
        for name, value in patch.model_dump(exclude_unset=True).items()
        if name in allowed and value is not None
    }
    if not changes:
        raise InvalidInput('Nothing to update')

    if 'name' in changes:
        name = changes['name'].strip()
        if not name:
            raise InvalidInput('Name cannot be empty')
        user.name = name
    if 'email' in changes:
        email = changes['email'].strip().lower()
        if not email:
            raise InvalidInput('Email cannot be empty')
        if email != user.email:
            taken = db.execute(
                select(User.id).where(User.email == email, User.id != user.id).limit(1)
            ).scalar_one_or_none()
            if taken is not None:
                raise Conflict('Email already exists')
        user.email = email
    if 'password' in changes:
        validate_new_password(changes['password'], min_length=settings.password_min_length)
        user.password_hash = hash_password(changes['password'])
    if 'role' in changes:
        user.role = UserRole(changes['role'])
    if 'department_id' in changes:
        _ensure_department(db, changes['department_id'])
        user.department_id = changes['department_id']

    db.commit()
    db.refresh(user)
    logger.info('User updated: id=%s fields=%s by=%s', user.id, sorted(changes), principal.id)

    _invalidate(cache, user.id, profile_changed=True)
    return user_dict(user)


def delete_user(db: Session, cache: CacheGateway, *, user_id: int) -> None:
    user = _get_user(db, user_id)

    has_records = db.execute(
        select(WelfareRecord.id).where(WelfareRecord.user_id == user_id).limit(1)
    ).scalar_one_or_none()
    if has_records is not None:
        raise Conflict('Cannot delete user with welfare records')

    has_logs = db.execute(
        select(StatusLog.id).where(StatusLog.processed_by_id == user_id).limit(1)
    ).scalar_one_or_none()
    if has_logs is not None:
        raise Conflict('Cannot delete user with status logs')

    delete_user_sessions(db, user_id)
    db.delete(user)
    db.commit()
    logger.info('User deleted: id=%s', user_id)

    _invalidate(cache, user_id)
