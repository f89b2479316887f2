import logging
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storeops.config import settings
from storeops.data_providers import DataProvider, build_data_provider
from storeops.routers import admin, expenses, products, reports, sync, webhooks
from storeops.utils.logger import logger

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)


def create_app(provider: Optional[DataProvider] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "data_provider", None) is None:
            app.state.data_provider = build_data_provider(settings)
        logger.info(f"Data provider: {app.state.data_provider.name}")
        yield
        app.state.data_provider.dispose()

    app = FastAPI(title="Store Operations API", version="1.0.0", lifespan=lifespan)
    app.state.data_provider = provider

    origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        rid = uuid.uuid4().hex[:8]
        request.state.rid = rid
        logger.info("→ %s %s rid=%s", request.method, request.url.path, rid)
        try:
            resp = await call_next(request)
        except Exception as e:
            logger.exception("Unhandled error rid=%s: %s", rid, str(e))
            error_resp = JSONResponse(
                {"error": "internal_error", "rid": rid, "message": str(e), "type": type(e).__name__},
                status_code=500,
            )
            error_resp.headers["X-Request-ID"] = rid
            return error_resp
        logger.info("← %s status=%s rid=%s", request.url.path, resp.status_code, rid)
        resp.headers["X-Request-ID"] = rid
        return resp

    app.include_router(webhooks.router)
    app.include_router(expenses.router)
    app.include_router(admin.router)
    app.include_router(sync.router)
    app.include_router(products.router)
    app.include_router(reports.router)

    @app.get("/health")
    async def health():
        provider_name = getattr(app.state.data_provider, "name", None)
        return {"status": "ok", "data_provider": provider_name}

    return app


app = create_app()
