"""
estimation_service.py — Client for the remote carbon-stock estimation service.

The service samples satellite imagery over the polygon, fits its regression
model and answers with:

    {"carbonStock": float, "sequestration": float, "tier": "Gold"}

or, on failure, an error payload {"error": "..."} with a non-2xx status.

One request per call: no retries and no caching, every claim asks for a
fresh estimate.
"""

import logging
import requests as http_requests
from pydantic import ValidationError as SchemaValidationError

from credit_claims.errors import (
    ValidationError, EstimationServiceUnavailable, EstimationServiceError,
)
from credit_claims.schemas import EstimationOptions, EstimationRequest, EstimationResult

logger = logging.getLogger(__name__)


def _describe(exc: SchemaValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
        for err in exc.errors()
    )


def build_request(key_path: str, polygon, options: EstimationOptions) -> EstimationRequest:
    """Validate inputs before any network I/O."""
    try:
        return EstimationRequest(key_path=key_path, polygon=list(polygon), options=options)
    except SchemaValidationError as e:
        raise ValidationError(f"Invalid estimation request: {_describe(e)}") from e


def parse_result(payload) -> EstimationResult:
    if not isinstance(payload, dict):
        raise EstimationServiceError(
            f"Estimation service returned {type(payload).__name__}, expected an object"
        )
    try:
        return EstimationResult.model_validate(payload)
    except SchemaValidationError as e:
        raise EstimationServiceError(
            f"Malformed estimation response: {_describe(e)}"
        ) from e


class EstimationClient:
    """
    Synchronous client for POST /api/estimate-carbon.

    Timeouts are a transport concern and come from `timeout`.
    """

    def __init__(
        self,
        api_url: str,
        key_path: str,
        timeout: float = 600,
        session: http_requests.Session | None = None,
    ):
        self.api_url = api_url
        self.key_path = key_path
        self.timeout = timeout
        self.session = session or http_requests.Session()

    def estimate(self, polygon, options: EstimationOptions) -> EstimationResult:
        request = build_request(self.key_path, polygon, options)

        logger.info(
            "Requesting carbon estimate: %d vertices, %s → %s, samples=%d split=%.2f",
            len(request.polygon), options.start_date, options.end_date,
            options.num_samples, options.split_ratio,
        )
        try:
            resp = self.session.post(
                self.api_url, json=request.to_payload(), timeout=self.timeout,
            )
        except (http_requests.ConnectionError, http_requests.Timeout) as e:
            raise EstimationServiceUnavailable(
                f"Estimation service unreachable at {self.api_url}: {e}"
            ) from e
        except http_requests.RequestException as e:
            raise EstimationServiceUnavailable(f"Estimation request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not resp.ok:
            detail = payload.get("error") if isinstance(payload, dict) else None
            raise EstimationServiceError(
                f"Failed to fetch carbon estimation ({resp.status_code}): "
                f"{detail or resp.reason or 'no error message'}",
                status_code=resp.status_code,
            )
        if payload is None:
            raise EstimationServiceError(
                "Estimation service returned a non-JSON body", status_code=resp.status_code,
            )

        result = parse_result(payload)
        logger.info(
            "Estimate: stock=%s t, sequestration=%s t/yr, tier=%s",
            result.carbon_stock, result.sequestration, result.tier,
        )
        return result
