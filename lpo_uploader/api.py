"""FastAPI application: upload route, webhook routes, liveness probe.

Every LpoUploaderError becomes ``{"success": false, "error": ...}`` with the
error's status code. Unexpected exceptions return a generic 500 and are
logged with a traceback; internals are never echoed to the caller.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from lpo_uploader import __version__
from lpo_uploader.config import Settings, configure_logging, load_settings
from lpo_uploader.errors import (
    ConfigurationError,
    InvalidRequestError,
    LpoUploaderError,
    MalformedResponseError,
)
from lpo_uploader.service import LpoService
from lpo_uploader.shopify.client import ShopifyClient
from lpo_uploader.storage import spool_upload
from lpo_uploader.webhooks.handlers import router as webhook_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings, service: LpoService | None = None) -> FastAPI:
    """Build the app. Without ``service`` the lifespan owns a ShopifyClient."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is not None:
            yield
            return
        async with ShopifyClient(settings) as client:
            app.state.service = LpoService(settings, client)
            logger.info("LPO uploader ready for %s", settings.shop_domain)
            yield
        app.state.service = None

    app = FastAPI(title="LPO Uploader", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(LpoUploaderError, _handle_platform_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
    app.include_router(webhook_router)

    @app.get("/test")
    async def liveness():
        """Liveness probe."""
        return {"status": "ok", "message": "Server is running"}

    @app.post("/upload")
    async def upload(
        request: Request,
        file: UploadFile | None = File(None),
        order_id: str | None = Form(None, alias="orderId"),
        customer_id: str | None = Form(None, alias="customerId"),
    ):
        """Upload a document and link it to the order (and customer)."""
        if file is None:
            raise InvalidRequestError("No file uploaded.", "upload")
        if not order_id or not order_id.strip():
            await file.close()
            raise InvalidRequestError("Order ID is required.", "upload")

        svc: LpoService = request.app.state.service
        async with spool_upload(file, settings.max_upload_bytes) as doc:
            data = await run_in_threadpool(doc.read_bytes)
            outcome = await svc.upload_and_link(
                data,
                doc.filename,
                doc.content_type,
                order_id.strip(),
                customer_id.strip() if customer_id else None,
            )

        return JSONResponse(outcome.to_dict(), status_code=200 if outcome.ok else 502)

    return app


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed form fields get the same envelope as every other 400."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid field '{field}': {first.get('msg', 'invalid value')}"
    logger.info("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse({"success": False, "error": message}, status_code=400)


async def _handle_platform_error(request: Request, exc: LpoUploaderError) -> JSONResponse:
    if isinstance(exc, MalformedResponseError):
        logger.error(
            "CONTRACT_DRIFT operation=%s path=%s: %s (hint=%s)",
            exc.operation,
            request.url.path,
            exc.message,
            exc.payload_hint,
        )
    elif exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse({"success": False, "error": exc.message}, status_code=exc.http_status)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)


def main() -> None:
    """Console entry point: load config, then serve with uvicorn."""
    import uvicorn

    configure_logging()
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.critical("%s", e)
        sys.exit(1)

    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
