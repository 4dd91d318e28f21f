from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from insanus_notes.dependencies import get_settings
from insanus_notes.interface.api.routes import router


def create_app() -> FastAPI:
    app = FastAPI(title="Insanus Notes API", version="0.1.0")

    settings = get_settings()
    logger = logging.getLogger("insanus.api")

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            dt_ms = (time.perf_counter() - start) * 1000.0
            logger.exception("request_error", extra={"rid": request_id, "path": request.url.path, "ms": dt_ms})
            return JSONResponse(
                status_code=500,
                content={"detail": "internal_error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        dt_ms = (time.perf_counter() - start) * 1000.0
        extra = {
            "rid": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "ms": dt_ms,
        }
        if settings.api_debug_log:
            extra["query"] = request.url.query
        logger.info("request", extra=extra)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(router)
    return app


app = create_app()
