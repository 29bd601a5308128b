from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request

from pushrelay.apps.api.errors import register_exception_handlers
from pushrelay.apps.api.response import API_VERSION, VERSION_PREFIX
from pushrelay.apps.api.routes.health import router as health_router
from pushrelay.apps.api.routes.notifications import router as notifications_router
from pushrelay.core.config import get_settings
from pushrelay.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="pushrelay API", version=API_VERSION)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(health_router, prefix=VERSION_PREFIX, include_in_schema=False)
    app.include_router(notifications_router, prefix=VERSION_PREFIX)
    app.state.app_name = get_settings().app_name
    return app


app = create_app()
