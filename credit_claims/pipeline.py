"""
pipeline.py — Upload-and-claim pipeline.

    Idle → Ingesting → Extracting → Estimating → Allocating → Done
                                                   ↘ Failed(stage, reason)

One run per user action. Each stage fails fast; nothing is retried, a caller
that wants another attempt starts a new run. Collaborators (estimation
client, ledger client, optional claim log) are passed in.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from credit_claims.allocation import (
    allocate_credits, compute_credit_count, compute_total_co2e,
)
from credit_claims.archive_service import read_markup
from credit_claims.errors import ClaimError, LedgerWriteError
from credit_claims.geometry_utils import polygon_to_geojson
from credit_claims.kml_parser import parse_kml
from credit_claims.ledger_service import to_checksum
from credit_claims.schemas import (
    AllocationResult, EstimationOptions, EstimationResult, SiteGeometry,
)

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    INGESTING = "ingesting"
    EXTRACTING = "extracting"
    ESTIMATING = "estimating"
    ALLOCATING = "allocating"
    DONE = "done"
    FAILED = "failed"


_NEXT_STAGE = {
    Stage.IDLE: Stage.INGESTING,
    Stage.INGESTING: Stage.EXTRACTING,
    Stage.EXTRACTING: Stage.ESTIMATING,
    Stage.ESTIMATING: Stage.ALLOCATING,
    Stage.ALLOCATING: Stage.DONE,
}


@dataclass
class PipelineRun:
    """State of one pipeline run, with every state it passed through."""
    state: Stage = Stage.IDLE
    history: list = field(default_factory=lambda: [Stage.IDLE])
    failed_stage: Stage | None = None
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (Stage.DONE, Stage.FAILED)

    def advance(self, to: Stage) -> None:
        if _NEXT_STAGE.get(self.state) != to:
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} → {to.value}")
        self.state = to
        self.history.append(to)

    def fail(self, reason: str) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Run already finished ({self.state.value})")
        self.failed_stage = self.state
        self.failure_reason = reason
        self.state = Stage.FAILED
        self.history.append(Stage.FAILED)


@dataclass
class ClaimRequest:
    filename: str
    content: bytes
    account: str
    options: EstimationOptions


@dataclass
class ClaimOutcome:
    site: SiteGeometry
    estimate: EstimationResult
    total_co2e: Decimal
    allocation: AllocationResult
    run: PipelineRun
    overlaps: list = field(default_factory=list)


class ClaimPipeline:
    def __init__(self, estimator, ledger, claim_store=None):
        self.estimator = estimator
        self.ledger = ledger
        self.claim_store = claim_store

    def preview(self, filename: str, content: bytes) -> SiteGeometry:
        """Ingest + extract only; no network calls."""
        return parse_kml(read_markup(filename, content))

    def run(self, request: ClaimRequest) -> ClaimOutcome:
        run = PipelineRun()
        try:
            account = to_checksum(request.account)

            run.advance(Stage.INGESTING)
            kml_text = read_markup(request.filename, request.content)

            run.advance(Stage.EXTRACTING)
            site = parse_kml(kml_text)

            run.advance(Stage.ESTIMATING)
            estimate = self.estimator.estimate(site.polygon, request.options)

            run.advance(Stage.ALLOCATING)
            allocation = allocate_credits(
                self.ledger, estimate, site.site_name, site.polygon, account,
            )
        except ClaimError as e:
            run.fail(e.message)
            e.run = run
            logger.warning("Claim failed while %s: %s", run.failed_stage.value, e.message)
            if isinstance(e, LedgerWriteError):
                self._record(
                    account, site, estimate,
                    compute_credit_count(estimate.carbon_stock), e.credit_ids, "partial",
                )
            raise
        except Exception as e:
            run.fail(str(e))
            logger.exception("Unexpected error while %s", run.failed_stage.value)
            raise

        run.advance(Stage.DONE)
        overlaps = self._find_overlaps(site)
        status = "allocated" if allocation.credits_requested else "no_credits"
        self._record(
            account, site, estimate, allocation.credits_requested, allocation.credit_ids, status,
        )
        return ClaimOutcome(
            site=site,
            estimate=estimate,
            total_co2e=compute_total_co2e(estimate.carbon_stock),
            allocation=allocation,
            run=run,
            overlaps=overlaps,
        )

    # ──────────────────────────────────────────────
    # Claim log (non-fatal)
    # ──────────────────────────────────────────────

    def _find_overlaps(self, site: SiteGeometry) -> list:
        if self.claim_store is None:
            return []
        try:
            return self.claim_store.find_overlaps(site.polygon)
        except Exception as e:
            logger.warning("Overlap check failed (non-fatal): %s", e)
            return []

    def _record(self, account, site, estimate, credits_requested, credit_ids, status) -> None:
        if self.claim_store is None:
            return
        try:
            self.claim_store.record_claim(
                account=account,
                site_name=site.site_name,
                polygon_geojson=polygon_to_geojson(site.polygon),
                tier=estimate.tier,
                carbon_stock=estimate.carbon_stock,
                credits_requested=credits_requested,
                credit_ids=list(credit_ids),
                status=status,
            )
        except Exception as e:
            logger.warning("Claim log write failed (non-fatal): %s", e)
