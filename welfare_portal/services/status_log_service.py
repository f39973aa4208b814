from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from welfare_portal import cache as cache_keys
from welfare_portal.auth import Principal, assert_record_access
from welfare_portal.cache import CacheGateway, cache_key, namespace_pattern
from welfare_portal.config import settings
from welfare_portal.errors import NotFound
from welfare_portal.models import StatusLog, WelfareRecord, WelfareStatus
from welfare_portal.services.pagination import envelope, fetch_page
from welfare_portal.services.serializers import status_log_dict

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def get_record_or_404(db: Session, record_id: int) -> WelfareRecord:
    record = db.get(WelfareRecord, record_id)
    if record is None:
        raise NotFound('Welfare record not found')
    return record


def append_status_log(
    db: Session,
    *,
    record_id: int,
    status: WelfareStatus,
    notes: str | None,
    processed_by_id: int,
    timestamp: datetime | None = None,
) -> StatusLog:
    """Stage one audit row; the caller owns the transaction."""
    log = StatusLog(
        welfare_record_id=record_id,
        status=status,
        notes=notes,
        processed_by_id=processed_by_id,
        timestamp=timestamp or _now(),
    )
    db.add(log)
    return log


def invalidate_record_caches(cache: CacheGateway, record_ids: list[int]) -> None:
    cache.delete_by_pattern(namespace_pattern(cache_keys.WELFARE_RECORDS))
    for record_id in record_ids:
        cache.delete(cache_key(cache_keys.WELFARE_RECORD, record_id))
        cache.delete_by_pattern(namespace_pattern(cache_keys.STATUS_LOGS, record_id))


def list_status_logs(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    record_id: int,
    processed_by_id: int | None,
    status: WelfareStatus | None,
    from_date: date | None,
    to_date: date | None,
    page: int,
    limit: int,
) -> dict:
    record = get_record_or_404(db, record_id)
    assert_record_access(principal, owner_id=record.user_id, department_id=record.department_id)

    key = cache_key(cache_keys.STATUS_LOGS, record_id, processed_by_id, status, from_date, to_date, page, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    conditions = [StatusLog.welfare_record_id == record_id]
    if processed_by_id is not None:
        conditions.append(StatusLog.processed_by_id == processed_by_id)
    if status is not None:
        conditions.append(StatusLog.status == status)
    if from_date:
        conditions.append(StatusLog.timestamp >= datetime.combine(from_date, time.min, tzinfo=timezone.utc))
    if to_date:
        conditions.append(
            StatusLog.timestamp < datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        )

    query = (
        select(StatusLog)
        .where(and_(*conditions))
        .order_by(StatusLog.timestamp.desc(), StatusLog.id.desc())
    )
    rows, total = fetch_page(db, query, page=page, limit=limit)
    result = envelope([status_log_dict(row) for row in rows], total=total, page=page, limit=limit)
    cache.put(key, result, settings.cache_status_log_ttl_seconds)
    return result


def create_status_log(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    record_id: int,
    status: WelfareStatus,
    notes: str | None,
) -> dict:
    record = get_record_or_404(db, record_id)
    assert_record_access(principal, owner_id=record.user_id, department_id=record.department_id)

    log = append_status_log(
        db,
        record_id=record.id,
        status=status,
        notes=(notes or '').strip() or f'Status changed to {status.value}',
        processed_by_id=principal.id,
    )
    record.status = status
    db.commit()
    db.refresh(log)
    logger.info('Status log added: record=%s status=%s by=%s', record.id, status.value, principal.id)

    invalidate_record_caches(cache, [record.id])
    return status_log_dict(log)
