"""Departments and item types.

Both are flat name-only tables with the same rules: names are unique under
case-insensitive comparison, and a row cannot be deleted while anything still
references it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from welfare_portal import cache as cache_keys
from welfare_portal.cache import CacheGateway, cache_key, namespace_pattern
from welfare_portal.config import settings
from welfare_portal.errors import Conflict, InvalidInput, NotFound
from welfare_portal.models import Department, ItemType, User, WelfareRecord
from welfare_portal.services.pagination import envelope, fetch_page
from welfare_portal.services.serializers import named_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceResource:
    model: type
    label: str
    list_namespace: str
    item_namespace: str
    # (referencing column, noun used in the conflict message)
    blockers: tuple = field(default_factory=tuple)
    # Namespaces whose payloads embed this name.
    embedded_in: tuple = field(default_factory=tuple)


DEPARTMENTS = ReferenceResource(
    model=Department,
    label='Department',
    list_namespace=cache_keys.DEPARTMENTS,
    item_namespace=cache_keys.DEPARTMENT,
    blockers=((User.department_id, 'users'), (WelfareRecord.department_id, 'welfare records')),
    embedded_in=(cache_keys.WELFARE_RECORD, cache_keys.WELFARE_RECORDS, cache_keys.USER, cache_keys.USERS),
)

ITEM_TYPES = ReferenceResource(
    model=ItemType,
    label='Item type',
    list_namespace=cache_keys.ITEM_TYPES,
    item_namespace=cache_keys.ITEM_TYPE,
    blockers=((WelfareRecord.item_type_id, 'welfare records'),),
    embedded_in=(cache_keys.WELFARE_RECORD, cache_keys.WELFARE_RECORDS),
)


def _clean_name(resource: ReferenceResource, name: str | None) -> str:
    clean = (name or '').strip()
    if not clean:
        raise InvalidInput(f'{resource.label} name is required')
    return clean


def _get_row(db: Session, resource: ReferenceResource, item_id: int):
    row = db.get(resource.model, item_id)
    if row is None:
        raise NotFound(f'{resource.label} not found')
    return row


def _ensure_unique_name(db: Session, resource: ReferenceResource, name: str, *, exclude_id: int | None = None) -> None:
    model = resource.model
    query = select(model.id).where(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.where(model.id != exclude_id)
    if db.execute(query.limit(1)).scalar_one_or_none() is not None:
        raise Conflict(f'{resource.label} name already exists')


def _commit_name(db: Session, resource: ReferenceResource) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict(f'{resource.label} name already exists') from exc


def _invalidate(cache: CacheGateway, resource: ReferenceResource, item_id: int, *, renamed: bool = False) -> None:
    cache.delete(cache_key(resource.item_namespace, item_id))
    cache.delete_by_pattern(namespace_pattern(resource.list_namespace))
    if renamed:
        for namespace in resource.embedded_in:
            cache.delete_by_pattern(namespace_pattern(namespace))


def list_items(
    db: Session,
    cache: CacheGateway,
    resource: ReferenceResource,
    *,
    search: str | None,
    page: int,
    limit: int,
) -> dict:
    search = (search or '').strip() or None
    key = cache_key(resource.list_namespace, search, page, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    model = resource.model
    query = select(model).order_by(model.name.asc(), model.id.asc())
    if search:
        query = query.where(model.name.icontains(search, autoescape=True))

    rows, total = fetch_page(db, query, page=page, limit=limit)
    result = envelope([named_row(row) for row in rows], total=total, page=page, limit=limit)
    cache.put(key, result, settings.cache_reference_ttl_seconds)
    return result


def list_all_item_types(db: Session, cache: CacheGateway) -> list[dict]:
    key = cache_key(cache_keys.ITEM_TYPES, 'all')
    cached = cache.get(key)
    if cached is not None:
        return cached

    rows = db.execute(select(ItemType).order_by(ItemType.name.asc(), ItemType.id.asc())).scalars().all()
    result = [named_row(row) for row in rows]
    cache.put(key, result, settings.cache_reference_ttl_seconds)
    return result


def get_item(db: Session, cache: CacheGateway, resource: ReferenceResource, *, item_id: int) -> dict:
    key = cache_key(resource.item_namespace, item_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = named_row(_get_row(db, resource, item_id))
    cache.put(key, result, settings.cache_reference_ttl_seconds)
    return result


def create_item(db: Session, cache: CacheGateway, resource: ReferenceResource, *, name: str | None) -> dict:
    clean = _clean_name(resource, name)
    _ensure_unique_name(db, resource, clean)

    row = resource.model(name=clean)
    db.add(row)
    _commit_name(db, resource)
    logger.info('%s created: id=%s name=%r', resource.label, row.id, row.name)

    _invalidate(cache, resource, row.id)
    return named_row(row)


def update_item(
    db: Session,
    cache: CacheGateway,
    resource: ReferenceResource,
    *,
    item_id: int,
    name: str | None,
) -> dict:
    clean = _clean_name(resource, name)
    row = _get_row(db, resource, item_id)
    if clean != row.name:
        _ensure_unique_name(db, resource, clean, exclude_id=row.id)

    row.name = clean
    _commit_name(db, resource)
    logger.info('%s updated: id=%s name=%r', resource.label, row.id, row.name)

    _invalidate(cache, resource, row.id, renamed=True)
    return named_row(row)


def delete_item(db: Session, cache: CacheGateway, resource: ReferenceResource, *, item_id: int) -> None:
    row = _get_row(db, resource, item_id)
    for column, noun in resource.blockers:
        in_use = db.execute(select(column).where(column == item_id).limit(1)).scalar_one_or_none()
        if in_use is not None:
            raise Conflict(f'Cannot delete {resource.label.lower()} with {noun}')

    db.delete(row)
    db.commit()
    logger.info('%s deleted: id=%s', resource.label, item_id)

    _invalidate(cache, resource, item_id)
