"""Curation service FastAPI application."""

from typing import Any, Dict, List

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from ketogo.core.errors import StoreWriteError
from ketogo.core.logging import setup_logging, get_logger
from ketogo.core.repositories import build_store
from ketogo.core.settings import get_settings
from ketogo.curation.models import Bucket
from ketogo.ingestor.pipeline import run_daily

setup_logging("curator")
logger = get_logger(__name__)

app = FastAPI(title="KETOGO Curator", version="0.1.0")


class RunResponse(BaseModel):
    """Response model for a curation run."""
    status: str
    message: str
    stats: Dict[str, Any]


def check_manual_run_enabled():
    """Manual runs must be enabled explicitly (ALLOW_MANUAL_RUN=true)."""
    if not get_settings().allow_manual_run:
        raise HTTPException(
            status_code=403,
            detail="Manual pipeline runs are disabled. Set ALLOW_MANUAL_RUN=true to enable."
        )
    return True


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"ok": True, "service": "curator"}


@app.get("/")
async def root():
    """Root endpoint with service information."""
    settings = get_settings()
    return {
        "service": "curator",
        "version": "0.1.0",
        "manual_run_enabled": settings.allow_manual_run,
        "endpoints": {
            "health": "/healthz",
            "observations": "/observations",
            "objects": "/objects",
            "run": "/run (POST)" if settings.allow_manual_run else "/run (disabled)",
        }
    }


async def _read_collection(bucket: Bucket, limit: int) -> List[Dict[str, Any]]:
    store = build_store(bucket.value, get_settings())
    records = await store.load()
    return records[:limit]


@app.get("/observations")
async def list_observations(limit: int = Query(50, ge=1, le=500)):
    """Latest approved observations, newest first."""
    return await _read_collection(Bucket.OBSERVATIONS, limit)


@app.get("/objects")
async def list_objects(limit: int = Query(50, ge=1, le=500)):
    """Latest approved objects, newest first."""
    return await _read_collection(Bucket.OBJECTS, limit)


@app.post("/run", response_model=RunResponse)
async def run_curation(dry_run: bool = False, _: bool = Depends(check_manual_run_enabled)):
    """Trigger the daily curation run."""
    logger.info("Starting manual curation run", extra={"dry_run": dry_run, "endpoint": "/run"})

    try:
        stats = await run_daily(dry_run=dry_run)
    except StoreWriteError as e:
        logger.error(f"Manual run failed to persist: {e}")
        raise HTTPException(status_code=500, detail=f"Persistence failed: {e}")

    added = sum(b['added'] for b in stats['buckets'].values())
    if stats['status'] == 'quiet_day':
        message = "Quiet day: no new approved items"
    else:
        message = f"Added {added} entries"
    if stats['errors']:
        message += f", {len(stats['errors'])} feed errors"

    return RunResponse(status=stats['status'], message=message, stats=stats)


if __name__ == "__main__":
    settings = get_settings()
    logger.info("Starting curator service via uvicorn")
    uvicorn.run(
        "ketogo.ingestor.app:app",
        host=settings.service_host,
        port=settings.service_port or 8001,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
