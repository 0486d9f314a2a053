"""
claim_store.py — Supabase claim log and polygon overlap warnings.

Every finished (or partially finished) claim is written to the
`credit_claims` table:

    id, account, site_name, polygon_geojson, tier, carbon_stock,
    credits_requested, credits_allocated, credit_ids, status, created_at

Re-submitting the same land is not blocked; overlaps with earlier claims are
returned so the UI can warn the user.
"""

import json
import logging
from shapely.geometry import shape
from supabase import create_client, Client

from credit_claims.geometry_utils import to_shapely

logger = logging.getLogger(__name__)

CLAIMS_TABLE = "credit_claims"

# ──────────────────────────────────────────────────────────────
# Overlap threshold — share of the new polygon's area covered by
# an earlier claim before it is reported.  0.30 = 30%.
# ──────────────────────────────────────────────────────────────
OVERLAP_THRESHOLD = 0.30


class ClaimStore:
    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def from_credentials(cls, url: str, key: str) -> "ClaimStore":
        client = create_client(url, key)
        logger.info("Supabase client initialised (%s)", url)
        return cls(client)

    # ──────────────────────────────────────────────
    # Overlap detection
    # ──────────────────────────────────────────────

    def find_overlaps(self, polygon) -> list[dict]:
        """
        Compare a polygon against every logged claim.

        Each overlap dict:
            {
                "existing_claim_id": "uuid",
                "existing_site_name": "...",
                "existing_account": "0x...",
                "overlap_pct": 0.45,   # 45% of the new polygon is already claimed
            }
        """
        new_shape = to_shapely(polygon)
        new_area = new_shape.area
        if new_area == 0:
            return []

        result = (
            self.client.table(CLAIMS_TABLE)
            .select("id, account, site_name, polygon_geojson")
            .execute()
        )

        overlaps = []
        for existing in result.data or []:
            try:
                geojson = existing["polygon_geojson"]
                if isinstance(geojson, str):
                    geojson = json.loads(geojson)
                overlap_pct = new_shape.intersection(shape(geojson)).area / new_area
            except Exception as e:
                logger.warning("Error checking overlap with claim %s: %s", existing.get("id"), e)
                continue

            if overlap_pct >= OVERLAP_THRESHOLD:
                overlaps.append({
                    "existing_claim_id": str(existing["id"]),
                    "existing_site_name": existing.get("site_name") or "",
                    "existing_account": existing.get("account") or "",
                    "overlap_pct": round(overlap_pct, 4),
                })

        if overlaps:
            logger.warning(
                "Polygon overlaps %d earlier claim(s) by more than %.0f%%",
                len(overlaps), OVERLAP_THRESHOLD * 100,
            )
        return overlaps

    # ──────────────────────────────────────────────
    # Claim log
    # ──────────────────────────────────────────────

    def record_claim(
        self,
        account: str,
        site_name: str,
        polygon_geojson: dict,
        tier: str,
        carbon_stock,
        credits_requested: int,
        credit_ids: list,
        status: str,
    ) -> dict:
        row = {
            "account": account,
            "site_name": site_name,
            "polygon_geojson": json.dumps(polygon_geojson),
            "tier": tier,
            "carbon_stock": str(carbon_stock),
            "credits_requested": credits_requested,
            "credits_allocated": len(credit_ids),
            "credit_ids": credit_ids,
            "status": status,
        }
        result = self.client.table(CLAIMS_TABLE).insert(row).execute()
        claim = result.data[0]
        logger.info(
            "Logged claim %s: %s, %d/%d credit(s), status=%s",
            claim["id"], site_name, len(credit_ids), credits_requested, status,
        )
        return claim

    def list_claims(self, account: str | None = None, limit: int = 100) -> list[dict]:
        query = self.client.table(CLAIMS_TABLE).select("*")
        if account:
            query = query.eq("account", account)
        result = query.order("created_at", desc=True).limit(limit).execute()
        return result.data or []
