from dataclasses import dataclass

from fastapi import Query, Request

from welfare_portal.cache import CacheGateway


@dataclass
class PageParams:
    page: int
    limit: int


def get_cache(request: Request) -> CacheGateway:
    return request.app.state.cache


def get_page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None
