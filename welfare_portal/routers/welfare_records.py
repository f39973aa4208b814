from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, Role, get_current_principal, require_role
from welfare_portal.cache import CacheGateway
from welfare_portal.db import get_db
from welfare_portal.dependencies import PageParams, get_cache, get_page_params
from welfare_portal.models import WelfareStatus
from welfare_portal.schemas import BulkStatusUpdate, WelfareRecordCreate, WelfareRecordPatch
from welfare_portal.services.stats_service import get_stats
from welfare_portal.services.welfare_record_service import (
    RecordFilters,
    bulk_update_status,
    create_record,
    delete_record,
    get_record,
    list_my_records,
    list_records,
    update_record,
)

router = APIRouter(prefix='/welfare-records', tags=['welfare-records'])
admin_access = require_role(Role.ADMIN)


def get_record_filters(
    user_id: int | None = Query(None, alias='userId'),
    department_id: int | None = Query(None, alias='departmentId'),
    item_type_id: int | None = Query(None, alias='itemTypeId'),
    status: WelfareStatus | None = Query(None),
    is_cancelled: bool | None = Query(None, alias='isCancelled'),
    from_date: date | None = Query(None, alias='fromDate'),
    to_date: date | None = Query(None, alias='toDate'),
    search: str | None = Query(None),
) -> RecordFilters:
    return RecordFilters(
        user_id=user_id,
        department_id=department_id,
        item_type_id=item_type_id,
        status=status,
        is_cancelled=is_cancelled,
        from_date=from_date,
        to_date=to_date,
        search=search,
    )


@router.get('')
def list_records_endpoint(
    filters: RecordFilters = Depends(get_record_filters),
    paging: PageParams = Depends(get_page_params),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_records(db, cache, principal=principal, filters=filters, page=paging.page, limit=paging.limit)


@router.post('', status_code=status.HTTP_201_CREATED)
def create_record_endpoint(
    payload: WelfareRecordCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return create_record(db, cache, principal=principal, payload=payload)


@router.get('/my')
def my_records(
    search: str | None = Query(None),
    record_status: WelfareStatus | None = Query(None, alias='status'),
    paging: PageParams = Depends(get_page_params),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return list_my_records(
        db,
        cache,
        principal=principal,
        search=search,
        status=record_status,
        page=paging.page,
        limit=paging.limit,
    )


@router.get('/stats')
def stats(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return get_stats(db, cache, principal=principal)


@router.post('/bulk-update-status')
def bulk_update_status_endpoint(
    payload: BulkStatusUpdate,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return bulk_update_status(
        db,
        cache,
        principal=principal,
        record_ids=payload.record_ids,
        status=payload.status,
        notes=payload.notes,
    )


@router.get('/{record_id}')
def get_record_endpoint(
    record_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return get_record(db, cache, principal=principal, record_id=record_id)


@router.put('/{record_id}')
def update_record_endpoint(
    record_id: int,
    patch: WelfareRecordPatch,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return update_record(db, cache, principal=principal, record_id=record_id, patch=patch)


@router.delete('/{record_id}')
def delete_record_endpoint(
    record_id: int,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    delete_record(db, cache, principal=principal, record_id=record_id)
    return {'message': 'Welfare record deleted successfully'}
