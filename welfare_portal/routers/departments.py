from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, Role, get_current_principal, require_role
from welfare_portal.cache import CacheGateway
from welfare_portal.db import get_db
from welfare_portal.dependencies import PageParams, get_cache, get_page_params
from welfare_portal.schemas import NamePayload
from welfare_portal.services.reference_service import (
    DEPARTMENTS,
    create_item,
    delete_item,
    get_item,
    list_items,
    update_item,
)

router = APIRouter(prefix='/departments', tags=['departments'])
admin_access = require_role(Role.ADMIN)


@router.get('')
def list_departments(
    search: str | None = Query(None),
    paging: PageParams = Depends(get_page_params),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_items(db, cache, DEPARTMENTS, search=search, page=paging.page, limit=paging.limit)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_department(
    payload: NamePayload,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return create_item(db, cache, DEPARTMENTS, name=payload.name)


@router.get('/{department_id}')
def get_department(
    department_id: int,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return get_item(db, cache, DEPARTMENTS, item_id=department_id)


@router.put('/{department_id}')
def update_department(
    department_id: int,
    payload: NamePayload,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return update_item(db, cache, DEPARTMENTS, item_id=department_id, name=payload.name)


@router.delete('/{department_id}')
def delete_department(
    department_id: int,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    delete_item(db, cache, DEPARTMENTS, item_id=department_id)
    return {'message': 'Department deleted successfully'}
