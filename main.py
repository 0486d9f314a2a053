"""
main.py — FastAPI entrypoint for the TCO2 claim service.

Usage:
    uvicorn main:app --reload
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import load_settings
from credit_claims.dependencies import init_services
from credit_claims.router import router

# ──────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# FastAPI App
# ──────────────────────────────────────────────
app = FastAPI(
    title="TCO2 Claim Service",
    description=(
        "Upload a KML site boundary, estimate its carbon stock from satellite "
        "imagery and allocate TCO2 credits on the ledger."
    ),
    version="1.0.0",
)

# CORS — the browser UI runs on its own dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


# ──────────────────────────────────────────────
# Wire collaborators on startup
# ──────────────────────────────────────────────
@app.on_event("startup")
async def startup_event():
    settings = load_settings()
    init_services(app.state, settings)
    logger.info(
        "Estimation service: %s | ledger: %s | claim log: %s",
        settings.estimation_api_url,
        "connected" if app.state.ledger else "unavailable",
        "enabled" if app.state.claim_store else "disabled",
    )


@app.get("/health")
async def health():
    return {"status": "ok", "service": "tco2-claim-service"}
