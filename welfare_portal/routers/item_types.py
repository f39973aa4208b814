from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, Role, get_current_principal, require_role
from welfare_portal.cache import CacheGateway
from welfare_portal.db import get_db
from welfare_portal.dependencies import PageParams, get_cache, get_page_params
from welfare_portal.schemas import NamePayload
from welfare_portal.services.reference_service import (
    ITEM_TYPES,
    create_item,
    delete_item,
    get_item,
    list_all_item_types,
    list_items,
    update_item,
)

router = APIRouter(prefix='/item-types', tags=['item-types'])
admin_access = require_role(Role.ADMIN)


@router.get('')
def list_item_types(
    search: str | None = Query(None),
    paging: PageParams = Depends(get_page_params),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_items(db, cache, ITEM_TYPES, search=search, page=paging.page, limit=paging.limit)


@router.get('/all')
def all_item_types(
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_all_item_types(db, cache)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_item_type(
    payload: NamePayload,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return create_item(db, cache, ITEM_TYPES, name=payload.name)


@router.get('/{item_type_id}')
def get_item_type(
    item_type_id: int,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return get_item(db, cache, ITEM_TYPES, item_id=item_type_id)


@router.put('/{item_type_id}')
def update_item_type(
    item_type_id: int,
    payload: NamePayload,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return update_item(db, cache, ITEM_TYPES, item_id=item_type_id, name=payload.name)


@router.delete('/{item_type_id}')
def delete_item_type(
    item_type_id: int,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    delete_item(db, cache, ITEM_TYPES, item_id=item_type_id)
    return {'message': 'Item type deleted successfully'}
