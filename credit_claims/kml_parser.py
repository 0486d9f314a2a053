"""
kml_parser.py — Extract the site name and polygon boundary from a KML document.

Only one layout is accepted:

    kml / Document / name
    kml / Document / Placemark / Polygon / outerBoundaryIs / LinearRing / coordinates

Element lookups are namespace-agnostic so KML 2.2 files (default namespace)
and bare exports parse the same way. Every missing step fails closed with a
ParseError subclass.
"""

import logging
import math
import re
import xml.etree.ElementTree as ET

from credit_claims.errors import (
    ParseError, MissingCoordinates, MissingSiteName, InvalidCoordinateFormat,
)
from credit_claims.schemas import SiteGeometry, Coordinate

logger = logging.getLogger(__name__)

MIN_LONGITUDE, MAX_LONGITUDE = -180.0, 180.0
MIN_LATITUDE, MAX_LATITUDE = -90.0, 90.0

POLYGON_PATH = ("Polygon", "outerBoundaryIs", "LinearRing", "coordinates")
_COMMA_SPACING = re.compile(r"\s*,\s*")


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> ET.Element | None:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _walk(element: ET.Element, path) -> ET.Element | None:
    for name in path:
        element = _child(element, name)
        if element is None:
            return None
    return element


def _document(root: ET.Element) -> ET.Element | None:
    if _local(root.tag) == "kml":
        return _child(root, "Document")
    if _local(root.tag) == "Document":
        return root
    return None


def parse_coordinate_token(token: str) -> Coordinate:
    """Parse one "lng,lat[,alt]" tuple; altitude is ignored."""
    parts = token.split(",")
    if len(parts) < 2:
        raise InvalidCoordinateFormat(token, "expected lng,lat[,alt]")

    try:
        lng = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        raise InvalidCoordinateFormat(token, "longitude and latitude must be numbers") from None

    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise InvalidCoordinateFormat(token, "longitude and latitude must be finite")
    if not MIN_LONGITUDE <= lng <= MAX_LONGITUDE:
        raise InvalidCoordinateFormat(token, f"longitude {lng} outside [-180, 180]")
    if not MIN_LATITUDE <= lat <= MAX_LATITUDE:
        raise InvalidCoordinateFormat(token, f"latitude {lat} outside [-90, 90]")
    return lng, lat


def parse_coordinates(text: str) -> tuple[Coordinate, ...]:
    """
    Split a KML <coordinates> string into ordered (lng, lat) pairs.

    Tuples are separated by newlines and/or spaces; whitespace around the
    commas inside a tuple is ignored. Order and any repeated closing vertex
    are preserved.
    """
    tokens = _COMMA_SPACING.sub(",", text.strip()).split()
    if not tokens:
        raise MissingCoordinates()
    return tuple(parse_coordinate_token(token) for token in tokens)


def parse_kml(kml_text: str) -> SiteGeometry:
    """Parse KML text into a SiteGeometry (site name + polygon boundary)."""
    try:
        root = ET.fromstring(kml_text)
    except ET.ParseError as e:
        raise ParseError(f"KML is not well-formed XML: {e}") from e

    document = _document(root)
    if document is None:
        raise MissingCoordinates("Invalid KML structure: No Document element found")

    coords_el = None
    for placemark in _children(document, "Placemark"):
        coords_el = _walk(placemark, POLYGON_PATH)
        if coords_el is not None:
            break
    if coords_el is None or not (coords_el.text or "").strip():
        raise MissingCoordinates()

    name_el = _child(document, "name")
    site_name = (name_el.text or "").strip() if name_el is not None else ""
    if not site_name:
        raise MissingSiteName()

    polygon = parse_coordinates(coords_el.text)
    logger.info("Parsed site %r with %d vertices", site_name, len(polygon))
    return SiteGeometry(site_name=site_name, polygon=polygon)
