"""
VDFlow — API Routes

All HTTP endpoints. Thin layer — delegates to VDFService and the engine's
rescore entry points.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from vdflow import __version__
from vdflow.cache import get_cache
from vdflow.config import get_settings
from vdflow.engines.vdf_engine import rescore_zones
from vdflow.models import (
    AnalysisMode,
    HealthCheck,
    RescoreRequest,
    ScanRequest,
)
from vdflow.services.vdf_service import VDFService, get_vdf_service
from vdflow.utils.formatters import round_payload

# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/health", response_model=HealthCheck)
async def health_check():
    """Application health with cache and data-provider status."""
    settings = get_settings()
    services = {
        "redis": "ok" if get_cache().available else "unavailable",
        "massive": "ok" if settings.massive_configured else "no_api_key",
    }
    return HealthCheck(
        status="ok",
        version=__version__,
        environment=settings.app_env,
        services=services,
    )


# ──────────────────────────────────────────────
# VDF
# ──────────────────────────────────────────────

vdf_router = APIRouter(prefix="/vdf")


def _rounded(payload, raw: bool):
    if raw:
        return payload
    settings = get_settings()
    return round_payload(payload, settings.round_pct_digits, settings.round_ratio_digits)


@vdf_router.get("/{ticker}")
async def analyze_ticker(
    ticker: str,
    mode: AnalysisMode = Query(AnalysisMode.SCAN, description="scan = recent window, chart = full year"),
    force: bool = Query(False, description="Bypass today's cached result"),
    raw: bool = Query(False, description="Return full-precision values"),
    service: VDFService = Depends(get_vdf_service),
):
    """Accumulation zones, distribution clusters, breakouts and timeline for one ticker."""
    result = await service.analyze_ticker(ticker, mode, force)
    return _rounded(result.model_dump(mode="json"), raw)


@vdf_router.post("/scan")
async def scan_tickers(
    request: ScanRequest,
    raw: bool = Query(False),
    service: VDFService = Depends(get_vdf_service),
):
    """Batch analysis; a failing ticker yields an error entry, never a failed batch."""
    results = await service.scan_tickers(request.tickers, request.mode, request.force)
    return {
        "count": len(results),
        "detected": sum(1 for r in results if r.detected),
        "results": [_rounded(r.model_dump(mode="json"), raw) for r in results],
    }


@vdf_router.post("/rescore")
async def rescore(request: RescoreRequest, raw: bool = Query(False)):
    """Re-derive zone scores under new weights without re-running detection."""
    zones = rescore_zones(request.zones, request.weights)
    return _rounded(
        {
            "weights": request.weights.model_dump(mode="json"),
            "zones": [z.model_dump(mode="json") for z in zones],
        },
        raw,
    )
