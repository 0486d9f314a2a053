"""
Unit tests for the estimation service client.

The requests.Session is mocked; no network calls are made.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from credit_claims.allocation import compute_credit_count
from credit_claims.errors import (
    ValidationError, EstimationServiceUnavailable, EstimationServiceError,
)
from credit_claims.estimation_service import EstimationClient
from credit_claims.schemas import EstimationOptions

POLYGON = [(10.0, 20.0), (11.0, 21.0), (12.0, 19.0)]


def make_response(status=200, payload=None, json_error=False, reason="OK"):
    resp = Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.reason = reason
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return Mock()


@pytest.fixture
def client(session):
    return EstimationClient(
        "http://estimator.test/api/estimate-carbon", "./key.json", timeout=30, session=session,
    )


class TestRequest:
    def test_posts_expected_payload(self, client, session, options):
        session.post.return_value = make_response(
            payload={"carbonStock": 5446.6, "sequestration": 120.3, "tier": "Gold"},
        )
        client.estimate(POLYGON, options)

        session.post.assert_called_once_with(
            "http://estimator.test/api/estimate-carbon",
            json={
                "keyPath": "./key.json",
                "coordinates": [[10.0, 20.0], [11.0, 21.0], [12.0, 19.0]],
                "options": {
                    "startDate": "2024-01-01",
                    "endDate": "2024-12-31",
                    "numSamples": 5000,
                    "splitRatio": 0.9,
                    "exportToGDrive": True,
                },
            },
            timeout=30,
        )

    def test_parses_result(self, client, session, options):
        session.post.return_value = make_response(
            payload={"carbonStock": 5446.6, "sequestration": 120.3, "tier": "Gold"},
        )
        result = client.estimate(POLYGON, options)
        assert result.carbon_stock == Decimal("5446.6")
        assert result.sequestration == Decimal("120.3")
        assert result.tier == "Gold"

    def test_no_retry_on_failure(self, client, session, options):
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(EstimationServiceUnavailable):
            client.estimate(POLYGON, options)
        assert session.post.call_count == 1

    def test_no_caching(self, client, session, options):
        session.post.return_value = make_response(payload={"carbonStock": 6000, "tier": "Gold"})
        client.estimate(POLYGON, options)
        client.estimate(POLYGON, options)
        assert session.post.call_count == 2

    def test_identical_inputs_give_identical_credit_counts(self, client, session, options):
        # the stub varies its stock estimate, the derived credit count stays put
        session.post.side_effect = [
            make_response(payload={"carbonStock": 6000, "tier": "Gold"}),
            make_response(payload={"carbonStock": 6001.5, "tier": "Gold"}),
        ]
        first = client.estimate(POLYGON, options)
        second = client.estimate(POLYGON, options)
        assert compute_credit_count(first.carbon_stock) == compute_credit_count(second.carbon_stock) == 1


class TestInputValidation:
    def test_too_few_vertices(self, client, session, options):
        with pytest.raises(ValidationError, match="polygon"):
            client.estimate(POLYGON[:2], options)
        session.post.assert_not_called()

    def test_start_after_end(self, client, session):
        # built without validation to reach the client's own check
        bad = EstimationOptions.model_construct(
            start_date=date(2024, 6, 1), end_date=date(2024, 1, 1),
            num_samples=5000, split_ratio=0.9, export_to_drive=True,
        )
        with pytest.raises(ValidationError, match="after end_date"):
            client.estimate(POLYGON, bad)
        session.post.assert_not_called()

    @pytest.mark.parametrize("field,value", [
        ("num_samples", 0), ("split_ratio", 0.0), ("split_ratio", 1.0), ("split_ratio", 1.5),
    ])
    def test_out_of_range_options(self, client, session, field, value):
        bad = EstimationOptions.model_construct(**{
            "start_date": date(2024, 1, 1), "end_date": date(2024, 12, 31),
            "num_samples": 5000, "split_ratio": 0.9, "export_to_drive": True,
            field: value,
        })
        with pytest.raises(ValidationError):
            client.estimate(POLYGON, bad)
        session.post.assert_not_called()


class TestServiceFailures:
    def test_timeout_is_unavailable(self, client, session, options):
        session.post.side_effect = requests.Timeout("read timed out")
        with pytest.raises(EstimationServiceUnavailable, match="unreachable"):
            client.estimate(POLYGON, options)

    def test_error_status_surfaces_message(self, client, session, options):
        session.post.return_value = make_response(
            status=500, payload={"error": "Earth Engine quota exceeded"}, reason="Internal Server Error",
        )
        with pytest.raises(EstimationServiceError) as exc_info:
            client.estimate(POLYGON, options)
        assert exc_info.value.status_code == 500
        assert "Earth Engine quota exceeded" in exc_info.value.message

    def test_error_status_without_json(self, client, session, options):
        session.post.return_value = make_response(status=502, json_error=True, reason="Bad Gateway")
        with pytest.raises(EstimationServiceError, match="Bad Gateway"):
            client.estimate(POLYGON, options)

    def test_non_json_success_body(self, client, session, options):
        session.post.return_value = make_response(json_error=True)
        with pytest.raises(EstimationServiceError, match="non-JSON"):
            client.estimate(POLYGON, options)

    @pytest.mark.parametrize("payload", [
        {"sequestration": 1.0, "tier": "Gold"},                       # no carbonStock
        {"carbonStock": 100.0, "sequestration": 1.0},                 # no tier
        {"carbonStock": -5.0, "tier": "Gold"},                        # negative stock
        {"carbonStock": "lots", "tier": "Gold"},                      # not a number
        {"carbonStock": True, "tier": "Gold"},                        # boolean
        {"carbonStock": 100.0, "tier": "Diamond"},                    # unknown tier
        [1, 2, 3],                                                    # not an object
    ])
    def test_malformed_payload(self, client, session, options, payload):
        session.post.return_value = make_response(payload=payload)
        with pytest.raises(EstimationServiceError):
            client.estimate(POLYGON, options)
