import logging
import time
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Path, Request
from pydantic import BaseModel

from msamiati.application.config import resolve_config
from msamiati.application.factory import Services, open_services
from msamiati.consts import VERSION
from msamiati.domain.errors import OfflineCacheError
from msamiati.domain.models import Mode

logger = logging.getLogger("msamiati.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"msamiati server v{VERSION} starting up...")
    async with open_services(resolve_config()) as services:
        app.state.services = services
        yield
    # Shutdown
    logger.info("msamiati server shutting down...")


app = FastAPI(
    title="msamiati server",
    description="Local companion server for the msamiati vocabulary app.",
    version=VERSION,
    lifespan=lifespan,
)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not initialized")
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


class CacheStatusResponse(BaseModel):
    total_count: int
    per_mode_counts: dict[str, int]
    last_updated: int | None = None
    online: bool


@app.get("/cache/status", response_model=CacheStatusResponse)
async def cache_status(services: ServicesDep):
    try:
        status = await services.cache.status()
    except OfflineCacheError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return CacheStatusResponse(
        total_count=status.total_count,
        per_mode_counts=status.per_mode_counts,
        last_updated=status.last_updated,
        online=services.connectivity.online,
    )


class DayResponse(BaseModel):
    mode: str
    category: str | None = None
    day_number: int
    source: str
    records: list[dict[str, Any]]


@app.get("/cache/{mode}/days/{day_number}", response_model=DayResponse)
async def get_day(
    services: ServicesDep,
    mode: Mode,
    day_number: Annotated[int, Path(ge=1)],
    category: str | None = None,
):
    """Words for one study day, from the remote when online, else the cache."""
    try:
        result = await services.reader.day(mode, day_number, category)
    except OfflineCacheError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return DayResponse(
        mode=mode,
        category=category,
        day_number=day_number,
        source=result.source,
        records=[r.model_dump() for r in result.records],
    )


class SyncRequest(BaseModel):
    # None syncs every mode
    mode: Mode | None = None
    category: str | None = None


class SyncReportResponse(BaseModel):
    mode: str
    category: str | None = None
    ok: bool
    accepted: int
    total: int
    dropped: int
    error: str | None = None
    last_updated: int | None = None


@app.post("/sync", response_model=list[SyncReportResponse])
async def trigger_sync(req: SyncRequest, services: ServicesDep):
    """
    Download the catalog into the offline cache.
    """
    logger.info(f"Sync requested via API: {req}")
    if services.sync is None:
        raise HTTPException(status_code=503, detail="No catalog_url configured")

    try:
        if req.mode is None:
            reports = await services.sync.sync_all()
        else:
            reports = [await services.sync.sync(req.mode, req.category)]
    except OfflineCacheError as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    return [
        SyncReportResponse(
            mode=r.mode,
            category=r.category,
            ok=r.ok,
            accepted=r.accepted,
            total=r.total,
            dropped=r.dropped,
            error=r.error,
            last_updated=r.last_updated,
        )
        for r in reports
    ]
