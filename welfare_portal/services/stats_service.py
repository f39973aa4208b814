from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from welfare_portal import cache as cache_keys
from welfare_portal.auth import Principal
from welfare_portal.cache import CacheGateway, cache_key
from welfare_portal.config import settings
from welfare_portal.models import WelfareRecord, WelfareStatus
from welfare_portal.services.welfare_record_service import visibility_condition, visibility_scope


def _count(db: Session, conditions: list) -> int:
    query = select(func.count()).select_from(WelfareRecord)
    if conditions:
        query = query.where(*conditions)
    return db.execute(query).scalar_one()


def get_stats(db: Session, cache: CacheGateway, *, principal: Principal) -> dict:
    key = cache_key(cache_keys.WELFARE_RECORDS, 'stats', visibility_scope(principal))
    cached = cache.get(key)
    if cached is not None:
        return cached

    scope = visibility_condition(principal)
    base = [scope] if scope is not None else []
    result = {
        'total': _count(db, base),
        'pending': _count(db, [*base, WelfareRecord.status == WelfareStatus.PENDING]),
        'approved': _count(db, [*base, WelfareRecord.status == WelfareStatus.APPROVED]),
        'rejected': _count(db, [*base, WelfareRecord.status == WelfareStatus.REJECTED]),
    }
    cache.put(key, result, settings.cache_list_ttl_seconds)
    return result
