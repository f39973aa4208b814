import logging

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from welfare_portal.cache import CacheGateway, build_cache
from welfare_portal.config import Settings, settings as default_settings
from welfare_portal.db import build_engine, build_session_factory
from welfare_portal.errors import install_error_handlers
from welfare_portal.routers import auth, departments, item_types, status_logs, users, welfare_records
from welfare_portal.security.sessions import install_auth_session_middleware


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    cache: CacheGateway | None = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    )

    app = FastAPI(title='Welfare Portal')
    app.state.settings = settings
    app.state.session_factory = session_factory or build_session_factory(build_engine(settings))
    app.state.cache = cache if cache is not None else build_cache(settings)

    install_error_handlers(app)
    install_auth_session_middleware(app)

    app.include_router(auth.router)
    app.include_router(departments.router)
    app.include_router(item_types.router)
    app.include_router(users.router)
    app.include_router(welfare_records.router)
    app.include_router(status_logs.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


app = create_app()
