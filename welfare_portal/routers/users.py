from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, Role, get_current_principal, require_role
from welfare_portal.cache import CacheGateway
from welfare_portal.db import get_db
from welfare_portal.dependencies import PageParams, get_cache, get_page_params
from welfare_portal.models import UserRole
from welfare_portal.schemas import UserCreate, UserPatch
from welfare_portal.services.user_service import create_user, delete_user, get_user, list_users, update_user

router = APIRouter(prefix='/users', tags=['users'])
admin_access = require_role(Role.ADMIN)


@router.get('')
def list_users_endpoint(
    department_id: int | None = Query(None, alias='departmentId'),
    role: UserRole | None = Query(None),
    search: str | None = Query(None),
    paging: PageParams = Depends(get_page_params),
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_users(
        db,
        cache,
        department_id=department_id,
        role=role,
        search=search,
        page=paging.page,
        limit=paging.limit,
    )


@router.post('', status_code=status.HTTP_201_CREATED)
def create_user_endpoint(
    payload: UserCreate,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return create_user(db, cache, payload=payload)


@router.get('/{user_id}')
def get_user_endpoint(
    user_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return get_user(db, cache, principal=principal, user_id=user_id)


@router.put('/{user_id}')
def update_user_endpoint(
    user_id: int,
    patch: UserPatch,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return update_user(db, cache, principal=principal, user_id=user_id, patch=patch)


@router.delete('/{user_id}')
def delete_user_endpoint(
    user_id: int,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    delete_user(db, cache, user_id=user_id)
    return {'message': 'User deleted successfully'}
