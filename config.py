"""
config.py — Shared constants and settings.
"""

import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

CO2_PER_CARBON = Decimal("3.67")      # t CO2 per t C (44/12)
TCO2_PER_CREDIT = Decimal("20000")

MAX_FILE_SIZE = 10 * 1024 * 1024      # 10 MB
MAX_MARKUP_SIZE = 20 * 1024 * 1024    # uncompressed .kml inside an archive

TIERS = ("Platinum", "Gold", "Silver", "Bronze", "Grey")

DEFAULT_NUM_SAMPLES = 5000
DEFAULT_SPLIT_RATIO = 0.9
DEFAULT_EXPORT_TO_DRIVE = True

SQ_M_PER_HECTARE = 10_000


@dataclass(frozen=True)
class Settings:
    estimation_api_url: str
    estimation_key_path: str
    estimation_timeout_s: float
    ledger_rpc_url: str
    ledger_contract_address: str
    ledger_gas_multiplier: float
    ledger_timeout_s: float
    supabase_url: str | None
    supabase_service_key: str | None


def load_settings() -> Settings:
    """Read settings from the environment (and .env, if present)."""
    load_dotenv()
    return Settings(
        estimation_api_url=os.getenv(
            "ESTIMATION_API_URL", "http://localhost:3001/api/estimate-carbon",
        ),
        estimation_key_path=os.getenv("ESTIMATION_KEY_PATH", "./gee-service-account.json"),
        estimation_timeout_s=float(os.getenv("ESTIMATION_TIMEOUT_S", "600")),
        ledger_rpc_url=os.getenv("LEDGER_RPC_URL", "http://localhost:8545"),
        ledger_contract_address=os.getenv(
            "LEDGER_CONTRACT_ADDRESS", "0x8CdaF0CD259887258Bc13a92C0a6dA92698644C0",
        ),
        ledger_gas_multiplier=float(os.getenv("LEDGER_GAS_MULTIPLIER", "1.5")),
        ledger_timeout_s=float(os.getenv("LEDGER_TIMEOUT_S", "120")),
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY") or None,
    )
