# gosafe/main.py
from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.responses import RedirectResponse

from gosafe.db.backend import build_store
from gosafe.errors import GoSafeError
from gosafe.settings import Settings

log = logging.getLogger("uvicorn.error")


def build_blob_store(settings: Settings):
    from gosafe.services.storage import LocalBlobStore, S3BlobStore
    if settings.photos_bucket:
        return S3BlobStore(settings.photos_bucket, settings.aws_region)
    return LocalBlobStore(settings.upload_dir)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store=None,
    identity=None,
    blob_store=None,
    clock=None,
) -> FastAPI:
    """
    Wire the app. Collaborators can be passed in (tests, scripts); anything
    missing is built from settings.
    """
    from gosafe.routes.report import router as report_router
    from gosafe.services.auth import CognitoIdentityProvider
    from gosafe.services.reports import ReportService

    settings = settings or Settings.from_env()
    store = store if store is not None else build_store(settings)
    blob_store = blob_store if blob_store is not None else build_blob_store(settings)
    identity = identity or CognitoIdentityProvider(store, settings.aws_region)

    app = FastAPI(
        title="GoSafe API",
        version="1.0.0",
        description="Community road-hazard reports with crowd verification.",
    )
    app.state.settings = settings
    app.state.identity = identity
    app.state.report_service = ReportService(store, settings, clock=clock, blob_store=blob_store)

    # ---------------- CORS ----------------
    cors_kwargs = dict(allow_methods=["*"], allow_headers=["*"])
    if settings.cors_origins:
        cors_kwargs.update(allow_origins=settings.cors_origins, allow_credentials=True)
    else:
        # Dev default: any localhost port (Expo web, Metro)
        cors_kwargs.update(
            allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
            allow_credentials=True,
        )
    app.add_middleware(CORSMiddleware, **cors_kwargs)

    # ---------------- Errors ----------------
    @app.exception_handler(GoSafeError)
    async def gosafe_error(request: Request, exc: GoSafeError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_encoder(exc.errors()), "code": "validation_error"},
        )

    # ---------------- Routers ----------------
    app.include_router(report_router, prefix=settings.api_prefix)

    if hasattr(blob_store, "root"):
        app.mount("/uploads", StaticFiles(directory=str(blob_store.root)), name="uploads")

    # ---------------- Meta/utility ----------------
    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    @app.get(f"{settings.api_prefix}/health", tags=["meta"])
    def health():
        return {"status": "ok", "prefix": settings.api_prefix, "store": settings.store_backend}

    log.info("GoSafe API configured (store=%s, prefix=%r)", settings.store_backend, settings.api_prefix)
    return app


app = create_app()


# ---------------- Local dev entrypoint ----------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gosafe.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
