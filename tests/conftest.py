"""
Shared pytest fixtures.
"""

from datetime import date
from decimal import Decimal

import pytest

from credit_claims.schemas import EstimationOptions, EstimationResult

from tests.helpers import make_kml, make_zip


@pytest.fixture
def site_kml():
    return make_kml()


@pytest.fixture
def site_zip(site_kml):
    return make_zip({"site.kml": site_kml})


@pytest.fixture
def options():
    return EstimationOptions(start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))


@pytest.fixture
def gold_6000():
    """6000 t C → 22 020 t CO2e → one credit."""
    return EstimationResult(carbonStock=Decimal("6000"), sequestration=Decimal("120.3"), tier="Gold")
