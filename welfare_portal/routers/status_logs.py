from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from welfare_portal.auth import Principal, get_current_principal
from welfare_portal.cache import CacheGateway
from welfare_portal.db import get_db
from welfare_portal.dependencies import PageParams, get_cache, get_page_params
from welfare_portal.errors import InvalidInput
from welfare_portal.models import WelfareStatus
from welfare_portal.schemas import StatusLogCreate
from welfare_portal.services.status_log_service import create_status_log, list_status_logs

router = APIRouter(prefix='/status-logs', tags=['status-logs'])


@router.get('')
def list_status_logs_endpoint(
    welfare_record_id: int | None = Query(None, alias='welfareRecordId'),
    processed_by_id: int | None = Query(None, alias='processedById'),
    log_status: WelfareStatus | None = Query(None, alias='status'),
    from_date: date | None = Query(None, alias='fromDate'),
    to_date: date | None = Query(None, alias='toDate'),
    paging: PageParams = Depends(get_page_params),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    if welfare_record_id is None:
        raise InvalidInput('Welfare record ID is required')
    return list_status_logs(
        db,
        cache,
        principal=principal,
        record_id=welfare_record_id,
        processed_by_id=processed_by_id,
        status=log_status,
        from_date=from_date,
        to_date=to_date,
        page=paging.page,
        limit=paging.limit,
    )


@router.post('', status_code=status.HTTP_201_CREATED)
def create_status_log_endpoint(
    payload: StatusLogCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    cache: CacheGateway = Depends(get_cache),
):
    return create_status_log(
        db,
        cache,
        principal=principal,
        record_id=payload.welfare_record_id,
        status=payload.status,
        notes=payload.notes,
    )
