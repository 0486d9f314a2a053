"""
Test helpers: in-memory KML/zip builders and fake collaborators.
"""

import io
import zipfile

from credit_claims.errors import LedgerError
from credit_claims.schemas import EstimationResult

ACCOUNT = "0x90f8bf6a479f320ead074411a4b0e7944ea8c9c1"

TRIANGLE_COORDS = "10.0,20.0,0\n11.0,21.0,0\n12.0,19.0,0"


def make_kml(name="Site A", coordinates=TRIANGLE_COORDS, namespace=True) -> str:
    xmlns = ' xmlns="http://www.opengis.net/kml/2.2"' if namespace else ""
    name_el = f"<name>{name}</name>" if name is not None else ""
    coords_el = (
        f"<coordinates>{coordinates}</coordinates>" if coordinates is not None else ""
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<kml{xmlns}>
  <Document>
    {name_el}
    <Placemark>
      <name>Boundary</name>
      <Polygon>
        <outerBoundaryIs>
          <LinearRing>
            {coords_el}
          </LinearRing>
        </outerBoundaryIs>
      </Polygon>
    </Placemark>
  </Document>
</kml>
"""


def make_zip(entries: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


class FakeEstimator:
    """Returns canned results in order (the last one repeats)."""

    def __init__(self, *results):
        self.results = [
            r if isinstance(r, EstimationResult) else EstimationResult.model_validate(r)
            for r in results
        ]
        self.calls = []

    def estimate(self, polygon, options):
        self.calls.append((tuple(polygon), options))
        return self.results[min(len(self.calls), len(self.results)) - 1]


class FakeLedger:
    """Counts calls; create_credit raises LedgerError on the indices in `fail_on`."""

    def __init__(self, registered=True, fail_on=()):
        self.registered = registered
        self.fail_on = set(fail_on)
        self.registration_checks = 0
        self.create_calls = []
        self.next_id = 100

    def is_account_registered(self, account):
        self.registration_checks += 1
        return self.registered

    def create_credit(self, account, tier, location, coordinates):
        self.create_calls.append((account, tier, location, list(coordinates)))
        if len(self.create_calls) in self.fail_on:
            raise LedgerError("execution reverted")
        self.next_id += 1
        return self.next_id

    @property
    def call_count(self):
        return self.registration_checks + len(self.create_calls)


class FakeClaimStore:
    def __init__(self, overlaps=()):
        self.overlaps = list(overlaps)
        self.records = []

    def find_overlaps(self, polygon):
        return list(self.overlaps)

    def record_claim(self, **row):
        self.records.append(row)
        return {"id": str(len(self.records)), **row}

    def list_claims(self, account=None, limit=100):
        rows = [r for r in self.records if account is None or r["account"] == account]
        return rows[:limit]
