"""
allocation.py — Convert a carbon-stock estimate into TCO2 credits on the ledger.

    total CO2e    = carbon stock × 3.67
    credit units  = floor(total CO2e / 20 000)

All arithmetic is exact Decimal; floats are converted once, at the estimation
service boundary (EstimationResult).
"""

import json
import logging
from decimal import Decimal, ROUND_FLOOR, localcontext

from config import CO2_PER_CARBON, TCO2_PER_CREDIT
from credit_claims.errors import LedgerError, LedgerWriteError, ValidationError
from credit_claims.schemas import AllocationResult, EstimationResult

logger = logging.getLogger(__name__)


def _exact_precision(value: Decimal) -> int:
    # enough digits that stock × 3.67 / 20 000 is never rounded
    digits = len(value.as_tuple().digits)
    return max(28, digits + max(value.adjusted(), 0) + 16)


def compute_total_co2e(carbon_stock: Decimal) -> Decimal:
    """Tonnes of CO2-equivalent, unrounded."""
    carbon_stock = Decimal(carbon_stock)
    if carbon_stock < 0:
        raise ValueError(f"carbon stock must be non-negative, got {carbon_stock}")
    with localcontext() as ctx:
        ctx.prec = _exact_precision(carbon_stock)
        return carbon_stock * CO2_PER_CARBON


def compute_credit_count(carbon_stock: Decimal) -> int:
    total = compute_total_co2e(carbon_stock)
    with localcontext() as ctx:
        ctx.prec = _exact_precision(total)
        return int((total / TCO2_PER_CREDIT).to_integral_value(rounding=ROUND_FLOOR))


def encode_coordinates(polygon) -> list[str]:
    """Contract takes string[]: one JSON "[lng,lat]" string per vertex."""
    return [json.dumps([lng, lat], separators=(",", ":")) for lng, lat in polygon]


def allocate_credits(
    ledger,
    result: EstimationResult,
    site_name: str,
    polygon,
    account: str,
) -> AllocationResult:
    """
    Issue one createTCO2Credit call per credit unit, sequentially.

    The calls are not atomic: when call k fails, calls 1..k-1 stay on the
    ledger and LedgerWriteError reports failed_at=k, succeeded=k-1.
    """
    count = compute_credit_count(result.carbon_stock)
    allocation = AllocationResult(credits_requested=count)
    if count == 0:
        logger.info(
            "Carbon stock %s t is below one credit (%s t CO2e); nothing to allocate",
            result.carbon_stock, TCO2_PER_CREDIT,
        )
        return allocation

    if not ledger.is_account_registered(account):
        raise ValidationError(
            f"Account {account} is not registered on the ledger", stage="allocating",
        )

    coordinates = encode_coordinates(polygon)
    logger.info("Creating %d %s TCO2 credit(s) for %s", count, result.tier, account)

    for index in range(1, count + 1):
        try:
            credit_id = ledger.create_credit(account, result.tier, site_name, coordinates)
        except LedgerError as e:
            logger.error(
                "Credit %d/%d failed; %d already on the ledger: %s",
                index, count, len(allocation.credit_ids), e,
            )
            raise LedgerWriteError(
                failed_at=index,
                succeeded=len(allocation.credit_ids),
                credit_ids=list(allocation.credit_ids),
                reason=e.message,
            ) from e
        allocation.credit_ids.append(credit_id)

    logger.info("Allocated %d credit(s): %s", allocation.credits_allocated, allocation.credit_ids)
    return allocation
