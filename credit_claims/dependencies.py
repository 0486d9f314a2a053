"""
dependencies.py — Build the service collaborators and hand them to FastAPI routes.

Collaborators live on app.state (set at startup) rather than in module
globals, so tests can swap them via app.dependency_overrides.
"""

import logging
from fastapi import Depends, HTTPException, Request

from config import Settings
from credit_claims.claim_store import ClaimStore
from credit_claims.errors import LedgerConnectionError
from credit_claims.estimation_service import EstimationClient
from credit_claims.ledger_service import LedgerClient
from credit_claims.pipeline import ClaimPipeline

logger = logging.getLogger(__name__)


def connect_ledger(settings: Settings) -> LedgerClient:
    return LedgerClient.connect(
        settings.ledger_rpc_url,
        settings.ledger_contract_address,
        gas_multiplier=settings.ledger_gas_multiplier,
        timeout=settings.ledger_timeout_s,
    )


def build_estimator(settings: Settings) -> EstimationClient:
    return EstimationClient(
        settings.estimation_api_url,
        settings.estimation_key_path,
        timeout=settings.estimation_timeout_s,
    )


def build_claim_store(settings: Settings) -> ClaimStore | None:
    if not settings.supabase_url or not settings.supabase_service_key:
        logger.info("SUPABASE_URL / SUPABASE_SERVICE_KEY not set; claim log disabled")
        return None
    return ClaimStore.from_credentials(settings.supabase_url, settings.supabase_service_key)


def init_services(state, settings: Settings) -> None:
    """Populate app.state; a ledger that is down at startup is retried on first use."""
    state.settings = settings
    state.estimator = build_estimator(settings)
    state.claim_store = build_claim_store(settings)
    try:
        state.ledger = connect_ledger(settings)
    except LedgerConnectionError as e:
        logger.error("Ledger connection failed at startup: %s", e)
        state.ledger = None


# ──────────────────────────────────────────────
# FastAPI dependencies
# ──────────────────────────────────────────────

def get_estimator(request: Request) -> EstimationClient:
    return request.app.state.estimator


def get_ledger(request: Request) -> LedgerClient:
    state = request.app.state
    if getattr(state, "ledger", None) is None:
        try:
            state.ledger = connect_ledger(state.settings)
        except LedgerConnectionError as e:
            raise HTTPException(status_code=503, detail=f"Ledger unavailable: {e}")
    return state.ledger


def get_optional_claim_store(request: Request) -> ClaimStore | None:
    return getattr(request.app.state, "claim_store", None)


def get_claim_store(store: ClaimStore | None = Depends(get_optional_claim_store)) -> ClaimStore:
    if store is None:
        raise HTTPException(status_code=503, detail="Claim log is not configured")
    return store


def get_pipeline(
    estimator: EstimationClient = Depends(get_estimator),
    ledger: LedgerClient = Depends(get_ledger),
    claim_store: ClaimStore | None = Depends(get_optional_claim_store),
) -> ClaimPipeline:
    return ClaimPipeline(estimator, ledger, claim_store)
