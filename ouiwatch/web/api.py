from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request

from ouiwatch.config import load_config, load_settings
from ouiwatch.errors import OuiWatchError
from ouiwatch.log import get_logger
from ouiwatch.models import LookupRequest, LookupResponse, RefreshReport, ServiceStatus
from ouiwatch.service import OuiService

logger = get_logger("api")

# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

_config = load_config()
_api_key = _config.get("web", {}).get("api_key")

service = OuiService(load_settings(_config))


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        service.ensure_started()
    except OuiWatchError as e:
        # Lookups retry the start, so the API still comes up.
        logger.error("OUI service failed to start: %s", e)
    yield
    service.shutdown()


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(title="ouiwatch", docs_url="/docs", redoc_url="/redoc", lifespan=lifespan)

_start_time = time.monotonic()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.monotonic()
    response = await call_next(request)
    elapsed = (time.monotonic() - start) * 1000
    logger.info("%s %s %d (%.1fms)", request.method, request.url.path,
                response.status_code, elapsed)
    return response

# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def verify_api_key(
    authorization: Optional[str] = Header(default=None),
    token: Optional[str] = Query(default=None),
):
    if not _api_key:
        return
    bearer_token = None
    if authorization and authorization.startswith("Bearer "):
        bearer_token = authorization[7:]
    actual = bearer_token or token
    if not actual or actual != _api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def started_service() -> OuiService:
    try:
        service.ensure_started()
    except OuiWatchError as e:
        raise HTTPException(status_code=503, detail=f"OUI database unavailable ({e.stage}): {e}")
    return service

# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok", "uptime_seconds": int(time.monotonic() - _start_time)}


@app.get("/api/v1/lookup/{mac}", response_model=LookupResponse, dependencies=[Depends(verify_api_key)])
def lookup_one(mac: str, svc: OuiService = Depends(started_service)):
    responses = svc.lookup_many([mac])
    if not responses:
        raise HTTPException(status_code=404, detail=f"No vendor found for {mac}")
    return responses[0]


@app.post("/api/v1/lookup", response_model=list[LookupResponse], dependencies=[Depends(verify_api_key)])
def lookup_batch(request: LookupRequest, svc: OuiService = Depends(started_service)):
    return svc.lookup_many(request.macs)


@app.get("/api/v1/status", response_model=ServiceStatus, dependencies=[Depends(verify_api_key)])
def get_status():
    return service.status()


@app.post("/api/v1/refresh", response_model=RefreshReport, dependencies=[Depends(verify_api_key)])
def refresh():
    try:
        return service.refresh()
    except OuiWatchError as e:
        raise HTTPException(status_code=502, detail=f"Refresh failed ({e.stage}): {e}")
