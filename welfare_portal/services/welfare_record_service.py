"""Welfare records: the claims employees submit and reviewers act on.

Visibility: administrators see every record; everyone else sees records they
own or that belong to their department. Explicit filters are ANDed on top of
that restriction, so a filter can only narrow what a caller sees.

Every write commits first and invalidates cache entries afterwards; a failed
invalidation never fails the request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from welfare_portal import cache as cache_keys
from welfare_portal.auth import Principal, assert_admin, assert_record_access, can_access_record, is_admin
from welfare_portal.cache import CacheGateway, cache_key
from welfare_portal.config import settings
from welfare_portal.errors import Forbidden, InvalidInput, NotFound
from welfare_portal.models import Department, ItemType, StatusLog, User, WelfareRecord, WelfareStatus
from welfare_portal.schemas import WelfareRecordCreate, WelfareRecordPatch
from welfare_portal.services.pagination import envelope, fetch_page
from welfare_portal.services.serializers import status_log_dict, welfare_record_dict
from welfare_portal.services.status_log_service import (
    append_status_log,
    get_record_or_404,
    invalidate_record_caches,
)

logger = logging.getLogger(__name__)

CREATED_NOTE = 'Record created'

# Patch fields each kind of caller may set; anything else in a patch is dropped.
# MEMBER_FIELDS go to the owner and same-department callers, admins included.
ADMIN_FIELDS = frozenset(
    {
        'order_number',
        'amount',
        'record_date',
        'is_cancelled',
        'departure_date',
        'return_date',
        'item_type_id',
        'department_id',
        'status',
    }
)
MEMBER_FIELDS = frozenset({'correction_details', 'status'})


@dataclass
class RecordFilters:
    user_id: int | None = None
    department_id: int | None = None
    item_type_id: int | None = None
    status: WelfareStatus | None = None
    is_cancelled: bool | None = None
    from_date: date | None = None
    to_date: date | None = None
    search: str | None = None

    def key_parts(self) -> tuple:
        return (
            self.user_id,
            self.department_id,
            self.item_type_id,
            self.status,
            self.is_cancelled,
            self.from_date,
            self.to_date,
            self.search,
        )


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def visibility_scope(principal: Principal) -> str:
    if is_admin(principal):
        return 'admin'
    return f'{principal.id}.{principal.department_id}'


def visibility_condition(principal: Principal):
    if is_admin(principal):
        return None
    return or_(
        WelfareRecord.user_id == principal.id,
        WelfareRecord.department_id == principal.department_id,
    )


def _filter_conditions(filters: RecordFilters) -> list:
    conditions = []
    if filters.user_id is not None:
        conditions.append(WelfareRecord.user_id == filters.user_id)
    if filters.department_id is not None:
        conditions.append(WelfareRecord.department_id == filters.department_id)
    if filters.item_type_id is not None:
        conditions.append(WelfareRecord.item_type_id == filters.item_type_id)
    if filters.status is not None:
        conditions.append(WelfareRecord.status == filters.status)
    if filters.is_cancelled is not None:
        conditions.append(WelfareRecord.is_cancelled.is_(filters.is_cancelled))
    if filters.from_date:
        conditions.append(WelfareRecord.record_date >= filters.from_date)
    if filters.to_date:
        conditions.append(WelfareRecord.record_date <= filters.to_date)
    if filters.search:
        term = filters.search
        conditions.append(
            or_(
                WelfareRecord.order_number.icontains(term, autoescape=True),
                User.name.icontains(term, autoescape=True),
                User.employee_id.icontains(term, autoescape=True),
                Department.name.icontains(term, autoescape=True),
                ItemType.name.icontains(term, autoescape=True),
            )
        )
    return conditions


def _positive_amount(amount: Decimal | None) -> Decimal:
    if amount is None or amount <= 0:
        raise InvalidInput('Amount must be greater than zero')
    return amount


def _ensure_item_type(db: Session, item_type_id: int) -> None:
    if db.get(ItemType, item_type_id) is None:
        raise InvalidInput('Item type does not exist')


def _ensure_department(db: Session, department_id: int) -> None:
    if db.get(Department, department_id) is None:
        raise InvalidInput('Department does not exist')


def _load_record(db: Session, record_id: int) -> WelfareRecord:
    record = db.execute(
        select(WelfareRecord).where(WelfareRecord.id == record_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if record is None:
        raise NotFound('Welfare record not found')
    return record


def _record_detail(db: Session, record: WelfareRecord) -> dict:
    logs = db.execute(
        select(StatusLog)
        .where(StatusLog.welfare_record_id == record.id)
        .order_by(StatusLog.timestamp.desc(), StatusLog.id.desc())
    ).scalars().all()
    return {**welfare_record_dict(record), 'statusLogs': [status_log_dict(log) for log in logs]}


def list_records(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    filters: RecordFilters,
    page: int,
    limit: int,
) -> dict:
    filters.search = (filters.search or '').strip() or None
    key = cache_key(cache_keys.WELFARE_RECORDS, visibility_scope(principal), *filters.key_parts(), page, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    conditions = _filter_conditions(filters)
    scope = visibility_condition(principal)
    if scope is not None:
        conditions.append(scope)

    query = (
        select(WelfareRecord)
        .join(User, User.id == WelfareRecord.user_id)
        .join(Department, Department.id == WelfareRecord.department_id)
        .join(ItemType, ItemType.id == WelfareRecord.item_type_id)
        .order_by(WelfareRecord.record_date.desc(), WelfareRecord.id.desc())
    )
    if conditions:
        query = query.where(and_(*conditions))

    rows, total = fetch_page(db, query, page=page, limit=limit)
    result = envelope([welfare_record_dict(row) for row in rows], total=total, page=page, limit=limit)
    cache.put(key, result, settings.cache_list_ttl_seconds)
    return result


def list_my_records(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    search: str | None,
    status: WelfareStatus | None,
    page: int,
    limit: int,
) -> dict:
    search = (search or '').strip() or None
    key = cache_key(cache_keys.WELFARE_RECORDS, 'my', principal.id, search, status, page, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    query = (
        select(WelfareRecord)
        .where(WelfareRecord.user_id == principal.id)
        .order_by(WelfareRecord.created_at.desc(), WelfareRecord.id.desc())
    )
    if search:
        query = query.where(
            or_(
                WelfareRecord.order_number.icontains(search, autoescape=True),
                WelfareRecord.correction_details.icontains(search, autoescape=True),
            )
        )
    if status is not None:
        query = query.where(WelfareRecord.status == status)

    rows, total = fetch_page(db, query, page=page, limit=limit)
    result = envelope([welfare_record_dict(row) for row in rows], total=total, page=page, limit=limit)
    cache.put(key, result, settings.cache_list_ttl_seconds)
    return result


def get_record(db: Session, cache: CacheGateway, *, principal: Principal, record_id: int) -> dict:
    key = cache_key(cache_keys.WELFARE_RECORD, record_id)
    cached = cache.get(key)
    if cached is not None:
        if not can_access_record(principal, owner_id=cached['userId'], department_id=cached['departmentId']):
            raise Forbidden()
        return cached

    record = _load_record(db, record_id)
    assert_record_access(principal, owner_id=record.user_id, department_id=record.department_id)

    result = _record_detail(db, record)
    cache.put(key, result, settings.cache_list_ttl_seconds)
    return result


def create_record(db: Session, cache: CacheGateway, *, principal: Principal, payload: WelfareRecordCreate) -> dict:
    amount = _positive_amount(payload.amount)
    status = payload.status or WelfareStatus.PENDING

    if is_admin(principal):
        user_id = payload.user_id if payload.user_id is not None else principal.id
        owner = db.get(User, user_id)
        if owner is None:
            raise InvalidInput('User does not exist')
        department_id = payload.department_id if payload.department_id is not None else owner.department_id
        _ensure_department(db, department_id)
    else:
        if payload.user_id is not None and payload.user_id != principal.id:
            raise Forbidden('You can only create records for yourself')
        if payload.department_id is not None and payload.department_id != principal.department_id:
            raise Forbidden('You can only create records for your own department')
        if status != WelfareStatus.PENDING:
            raise Forbidden('Only administrators can set an initial status')
        user_id = principal.id
        department_id = principal.department_id

    _ensure_item_type(db, payload.item_type_id)

    record = WelfareRecord(
        order_number=(payload.order_number or '').strip() or None,
        correction_details=payload.correction_details,
        amount=amount,
        record_date=payload.record_date or _now().date(),
        status=status,
        is_cancelled=False,
        departure_date=payload.departure_date,
        return_date=payload.return_date,
        user_id=user_id,
        item_type_id=payload.item_type_id,
        department_id=department_id,
    )
    db.add(record)
    db.flush()
    append_status_log(db, record_id=record.id, status=status, notes=CREATED_NOTE, processed_by_id=principal.id)
    db.commit()
    logger.info('Welfare record created: id=%s user=%s by=%s', record.id, user_id, principal.id)

    invalidate_record_caches(cache, [record.id])
    return _record_detail(db, _load_record(db, record.id))


def update_record(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    record_id: int,
    patch: WelfareRecordPatch,
) -> dict:
    record = _load_record(db, record_id)
    assert_record_access(principal, owner_id=record.user_id, department_id=record.department_id)

    allowed = ADMIN_FIELDS if is_admin(principal) else frozenset()
    if principal.id == record.user_id or principal.department_id == record.department_id:
        allowed = allowed | MEMBER_FIELDS
    changes = {name: getattr(patch, name) for name in patch.model_fields_set if name in allowed}
    if changes.get('status') is None or changes.get('status') == record.status:
        changes.pop('status', None)
    for required in ('amount', 'record_date', 'is_cancelled', 'item_type_id', 'department_id'):
        if required in changes and changes[required] is None:
            changes.pop(required)
    if not changes:
        raise InvalidInput('Nothing to update')

    if 'amount' in changes:
        _positive_amount(changes['amount'])
    if 'item_type_id' in changes:
        _ensure_item_type(db, changes['item_type_id'])
    if 'department_id' in changes:
        _ensure_department(db, changes['department_id'])

    old_status = record.status
    new_status = changes.pop('status', None)
    for name, value in changes.items():
        setattr(record, name, value)
    if new_status is not None:
        record.status = new_status
        append_status_log(
            db,
            record_id=record.id,
            status=new_status,
            notes=(patch.status_note or '').strip() or f'Status changed from {old_status.value} to {new_status.value}',
            processed_by_id=principal.id,
        )
    db.commit()
    logger.info(
        'Welfare record updated: id=%s fields=%s status_changed=%s by=%s',
        record.id,
        sorted(changes),
        new_status is not None,
        principal.id,
    )

    invalidate_record_caches(cache, [record.id])
    return _record_detail(db, _load_record(db, record.id))


def delete_record(db: Session, cache: CacheGateway, *, principal: Principal, record_id: int) -> None:
    assert_admin(principal)
    record = get_record_or_404(db, record_id)

    db.execute(delete(StatusLog).where(StatusLog.welfare_record_id == record.id))
    db.delete(record)
    db.commit()
    logger.info('Welfare record deleted: id=%s by=%s', record_id, principal.id)

    invalidate_record_caches(cache, [record_id])


def bulk_update_status(
    db: Session,
    cache: CacheGateway,
    *,
    principal: Principal,
    record_ids: list[int],
    status: WelfareStatus,
    notes: str | None,
) -> dict:
    assert_admin(principal)
    ids = list(dict.fromkeys(record_ids))
    if not ids:
        raise InvalidInput('Missing required fields')

    found = set(db.execute(select(WelfareRecord.id).where(WelfareRecord.id.in_(ids))).scalars().all())
    missing = [record_id for record_id in ids if record_id not in found]
    if missing:
        raise NotFound(f"Some welfare records not found: {', '.join(str(m) for m in missing)}")

    note = (notes or '').strip() or f'Status changed to {status.value} (bulk update)'
    timestamp = _now()
    result = db.execute(
        update(WelfareRecord)
        .where(WelfareRecord.id.in_(ids))
        .values(status=status, updated_at=timestamp)
        .execution_options(synchronize_session=False)
    )
    for record_id in ids:
        append_status_log(db, record_id=record_id, status=status, notes=note, processed_by_id=principal.id, timestamp=timestamp)
    db.commit()
    count = result.rowcount
    logger.info('Bulk status update: %s records -> %s by=%s', count, status.value, principal.id)

    invalidate_record_caches(cache, ids)
    return {'message': f'Updated {count} welfare records', 'count': count}
