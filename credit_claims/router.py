"""
router.py — FastAPI routes for site preview, credit claims and ledger lookups.
"""

import logging
from datetime import date
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from starlette.concurrency import run_in_threadpool
from pydantic import ValidationError as SchemaValidationError

from config import (
    MAX_FILE_SIZE, DEFAULT_NUM_SAMPLES, DEFAULT_SPLIT_RATIO, DEFAULT_EXPORT_TO_DRIVE,
)
from credit_claims.dependencies import (
    get_claim_store, get_ledger, get_pipeline,
)
from credit_claims.errors import (
    ClaimError, ArchiveError, ParseError, ValidationError,
    EstimationServiceUnavailable, EstimationServiceError,
    LedgerError, LedgerWriteError,
)
from credit_claims.geometry_utils import build_map_url, compute_area_hectares, compute_centroid
from credit_claims.pipeline import ClaimPipeline, ClaimRequest
from credit_claims.archive_service import read_markup
from credit_claims.kml_parser import parse_kml
from credit_claims.schemas import (
    AccountSummaryResponse, Centroid, ClaimResponse, CreditResponse, EstimationOptions,
    OverlapInfo, PoolCounts, PoolStatusResponse, SitePreviewResponse, TierCredits,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Credit Claims"])


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

async def _read_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name.")

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large ({len(content)} bytes). Max is {MAX_FILE_SIZE} bytes.",
        )
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return content


def _to_http(e: ClaimError) -> HTTPException:
    """Map a pipeline error to a status code; the message goes out verbatim."""
    if isinstance(e, LedgerWriteError):
        return HTTPException(status_code=502, detail={
            "message": e.message,
            "failed_at": e.failed_at,
            "succeeded": e.succeeded,
            "credit_ids": e.credit_ids,
        })
    if isinstance(e, (ArchiveError, ParseError, ValidationError)):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, EstimationServiceUnavailable):
        return HTTPException(status_code=503, detail=e.message)
    if isinstance(e, (EstimationServiceError, LedgerError)):
        return HTTPException(status_code=502, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)


def _polygon_list(polygon) -> list[list[float]]:
    return [[lng, lat] for lng, lat in polygon]


# ──────────────────────────────────────────────────────────────
# POST /preview_site — parse the upload, no network calls
# ──────────────────────────────────────────────────────────────

@router.post("/preview_site", response_model=SitePreviewResponse)
async def preview_site(
    file: UploadFile = File(..., description="ZIP/KMZ archive containing one KML, or a .kml file"),
):
    """Extract the site name and polygon so the user can check them before claiming."""
    content = await _read_upload(file)
    try:
        site = parse_kml(read_markup(file.filename, content))
    except ClaimError as e:
        raise _to_http(e)

    lng, lat = compute_centroid(site.polygon)
    try:
        area = compute_area_hectares(site.polygon)
    except Exception as e:
        logger.warning("Area computation failed (non-fatal): %s", e)
        area = None

    return SitePreviewResponse(
        site_name=site.site_name,
        polygon=_polygon_list(site.polygon),
        vertex_count=site.vertex_count,
        centroid=Centroid(lng=lng, lat=lat),
        map_url=build_map_url((lng, lat)),
        area_hectares=area,
    )


# ──────────────────────────────────────────────────────────────
# POST /claim_credits — full upload → estimate → allocate run
# ──────────────────────────────────────────────────────────────

@router.post("/claim_credits", response_model=ClaimResponse)
async def claim_credits(
    file: UploadFile = File(..., description="ZIP/KMZ archive containing one KML, or a .kml file"),
    start_date: date = Form(..., description="Start of the imagery window (YYYY-MM-DD)"),
    end_date: date = Form(..., description="End of the imagery window (YYYY-MM-DD)"),
    account: str = Form(..., description="Wallet address that will own the credits"),
    num_samples: int = Form(DEFAULT_NUM_SAMPLES),
    split_ratio: float = Form(DEFAULT_SPLIT_RATIO),
    export_to_drive: bool = Form(DEFAULT_EXPORT_TO_DRIVE),
    pipeline: ClaimPipeline = Depends(get_pipeline),
):
    content = await _read_upload(file)
    try:
        options = EstimationOptions(
            start_date=start_date,
            end_date=end_date,
            num_samples=num_samples,
            split_ratio=split_ratio,
            export_to_drive=export_to_drive,
        )
    except SchemaValidationError as e:
        raise HTTPException(
            status_code=400,
            detail="; ".join(err["msg"] for err in e.errors()),
        )

    request = ClaimRequest(filename=file.filename, content=content, account=account, options=options)
    try:
        outcome = await run_in_threadpool(pipeline.run, request)
    except ClaimError as e:
        raise _to_http(e)

    allocated = outcome.allocation.credits_allocated
    overlaps = [OverlapInfo(**o) for o in outcome.overlaps]
    msg = f"Successfully allocated {allocated} carbon credit(s)"
    if overlaps:
        msg += f"; {len(overlaps)} overlapping earlier claim(s) detected"

    site = outcome.site
    return ClaimResponse(
        site_name=site.site_name,
        polygon=_polygon_list(site.polygon),
        map_url=build_map_url(compute_centroid(site.polygon)),
        tier=outcome.estimate.tier,
        carbon_stock_tonnes=float(outcome.estimate.carbon_stock),
        sequestration_tonnes_per_year=(
            float(outcome.estimate.sequestration)
            if outcome.estimate.sequestration is not None else None
        ),
        total_co2e_tonnes=float(outcome.total_co2e),
        credits_requested=outcome.allocation.credits_requested,
        credits_allocated=allocated,
        credit_ids=outcome.allocation.credit_ids,
        overlaps=overlaps,
        has_overlap_warning=bool(overlaps),
        message=msg,
    )


# ──────────────────────────────────────────────────────────────
# Ledger lookups
# ──────────────────────────────────────────────────────────────

@router.get("/accounts/{address}", response_model=AccountSummaryResponse)
def account_summary(address: str, ledger=Depends(get_ledger)):
    """Registration, per-tier credits, reputation and BCT balance for a wallet."""
    try:
        registered = ledger.is_account_registered(address)
        if not registered:
            return AccountSummaryResponse(address=address, registered=False)
        credits = ledger.get_credits_per_tier(address)
    except ClaimError as e:
        raise _to_http(e)

    return AccountSummaryResponse(
        address=address,
        registered=True,
        credits={tier: TierCredits(**c) for tier, c in credits.items()},
        reputation=ledger.get_reputation(address),
        bct_balance=ledger.get_bct_balance(address),
    )


@router.post("/accounts/{address}/register")
def register_account(address: str, ledger=Depends(get_ledger)):
    try:
        tx_hash = ledger.register_account(address)
    except ClaimError as e:
        raise _to_http(e)
    return {"success": True, "transaction_hash": tx_hash}


@router.get("/pools", response_model=dict[str, PoolCounts])
def tier_pools(ledger=Depends(get_ledger)):
    try:
        return ledger.get_all_tier_pool_counts()
    except ClaimError as e:
        raise _to_http(e)


@router.get("/pools/{tier}", response_model=PoolStatusResponse)
def tier_pool_status(tier: str, ledger=Depends(get_ledger)):
    try:
        status = ledger.get_tier_pool_status(tier)
    except ClaimError as e:
        raise _to_http(e)
    return PoolStatusResponse(**{**status, "conversion_rate": float(status["conversion_rate"])})


@router.get("/credits/{credit_id}", response_model=CreditResponse)
def credit_detail(credit_id: int, ledger=Depends(get_ledger)):
    try:
        return CreditResponse(**ledger.get_credit(credit_id))
    except ClaimError as e:
        raise _to_http(e)


# ──────────────────────────────────────────────────────────────
# GET /claims — claim log history
# ──────────────────────────────────────────────────────────────

@router.get("/claims")
def list_claims(
    account: str = Query("", description="Only claims for this wallet"),
    limit: int = Query(100, ge=1, le=1000),
    store=Depends(get_claim_store),
):
    try:
        claims = store.list_claims(account=account or None, limit=limit)
    except Exception as e:
        logger.error("list_claims failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    return {"claims": claims, "count": len(claims)}
