from __future__ import annotations

from uuid import uuid4

import uvicorn
from fastapi import FastAPI

from geoask.core.http.client import close_http_client
from geoask.core.logging import configure_logging
from geoask.core.logging.context import log_context
from geoask.core.sessions import default_state_dir

from .routes_chat import router as chat_router

app = FastAPI(title="GeoAsk API")
configure_logging(default_state_dir())

app.include_router(chat_router, prefix="/api", tags=["chat"])


@app.middleware("http")
async def request_context_middleware(request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid4())
    with log_context(correlation_id=correlation_id):
        response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.on_event("shutdown")
def shutdown_http_client() -> None:
    close_http_client()


@app.get("/healthz")
def healthz() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    uvicorn.run("geoask.apps.api.main:app", host="127.0.0.1", port=8000)
