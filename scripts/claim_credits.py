"""
claim_credits.py — Run the upload-and-claim pipeline from the command line.

Usage:
    python scripts/claim_credits.py --file site.zip --preview-only
    python scripts/claim_credits.py --file site.zip --account 0xabc... \
        --start-date 2024-01-01 --end-date 2024-12-31
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

from pydantic import ValidationError as SchemaValidationError

from config import load_settings, DEFAULT_NUM_SAMPLES, DEFAULT_SPLIT_RATIO
from credit_claims.dependencies import build_claim_store, build_estimator, connect_ledger
from credit_claims.errors import ClaimError, LedgerWriteError, ValidationError
from credit_claims.geometry_utils import build_map_url, compute_centroid
from credit_claims.pipeline import ClaimPipeline, ClaimRequest
from credit_claims.schemas import EstimationOptions


def _print_error(e: ClaimError) -> int:
    stage = e.run.failed_stage.value if e.run else e.stage
    print(json.dumps({"error": e.message, "stage": stage}, indent=2))
    return 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Estimate a site's carbon stock and claim TCO2 credits")
    parser.add_argument("--file", required=True, help="ZIP/KMZ archive or .kml file")
    parser.add_argument("--account", help="Wallet address that will own the credits")
    parser.add_argument("--start-date", type=date.fromisoformat)
    parser.add_argument("--end-date", type=date.fromisoformat)
    parser.add_argument("--num-samples", type=int, default=DEFAULT_NUM_SAMPLES)
    parser.add_argument("--split-ratio", type=float, default=DEFAULT_SPLIT_RATIO)
    parser.add_argument("--no-export", action="store_true", help="Skip the Drive export")
    parser.add_argument("--preview-only", action="store_true", help="Parse the file and stop")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s")

    path = Path(args.file)
    content = path.read_bytes()

    if args.preview_only:
        try:
            site = ClaimPipeline(estimator=None, ledger=None).preview(path.name, content)
        except ClaimError as e:
            return _print_error(e)
        centroid = compute_centroid(site.polygon)
        print(json.dumps({
            "site_name": site.site_name,
            "polygon": [list(p) for p in site.polygon],
            "map_url": build_map_url(centroid),
        }, indent=2))
        return 0

    if not (args.account and args.start_date and args.end_date):
        parser.error("--account, --start-date and --end-date are required unless --preview-only")

    try:
        options = EstimationOptions(
            start_date=args.start_date,
            end_date=args.end_date,
            num_samples=args.num_samples,
            split_ratio=args.split_ratio,
            export_to_drive=not args.no_export,
        )
    except SchemaValidationError as e:
        message = "; ".join(err["msg"] for err in e.errors())
        return _print_error(ValidationError(message, stage="idle"))

    settings = load_settings()

    try:
        pipeline = ClaimPipeline(
            estimator=build_estimator(settings),
            ledger=connect_ledger(settings),
            claim_store=build_claim_store(settings),
        )
        outcome = pipeline.run(ClaimRequest(path.name, content, args.account, options))
    except LedgerWriteError as e:
        print(json.dumps({
            "error": e.message, "failed_at": e.failed_at,
            "succeeded": e.succeeded, "credit_ids": e.credit_ids,
        }, indent=2))
        return 1
    except ClaimError as e:
        return _print_error(e)

    print(json.dumps({
        "site_name": outcome.site.site_name,
        "tier": outcome.estimate.tier,
        "carbon_stock_tonnes": str(outcome.estimate.carbon_stock),
        "total_co2e_tonnes": str(outcome.total_co2e),
        "credits_allocated": outcome.allocation.credits_allocated,
        "credit_ids": outcome.allocation.credit_ids,
        "overlaps": outcome.overlaps,
    }, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
