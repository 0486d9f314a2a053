"""
geometry_utils.py — Centroid, map link, GeoJSON and area helpers for site polygons.
"""

import logging
import geopandas as gpd
from shapely.geometry import Polygon, mapping

from config import SQ_M_PER_HECTARE

logger = logging.getLogger(__name__)


def compute_centroid(polygon) -> tuple[float, float]:
    """
    Arithmetic mean of all vertex longitudes and latitudes.

    Not the area-weighted centroid: a repeated closing vertex counts twice.
    Used only for the map-viewer link.
    """
    if not polygon:
        raise ValueError("Cannot compute the centroid of an empty polygon")
    n = len(polygon)
    lng = sum(p[0] for p in polygon) / n
    lat = sum(p[1] for p in polygon) / n
    return lng, lat


def build_map_url(centroid: tuple[float, float]) -> str:
    lng, lat = centroid
    return f"https://www.google.com/maps?q={lat},{lng}&z=10&layer=t"


def to_shapely(polygon) -> Polygon:
    """Build a 2D Shapely polygon from (lng, lat) pairs."""
    return Polygon([(lng, lat) for lng, lat in polygon])


def polygon_to_geojson(polygon) -> dict:
    return mapping(to_shapely(polygon))


def compute_area_sq_m(polygon) -> float:
    """
    Compute the area of a polygon in square metres.
    Re-projects WGS84 coordinates to an equal-area CRS.
    """
    gdf = gpd.GeoDataFrame(geometry=[to_shapely(polygon)], crs="EPSG:4326")
    gdf_proj = gdf.to_crs("EPSG:6933")  # World Cylindrical Equal Area
    return float(gdf_proj.geometry.iloc[0].area)


def compute_area_hectares(polygon) -> float | None:
    """Area for display; None when the ring is not a valid simple polygon."""
    if len(polygon) < 3:
        return None
    try:
        shape = to_shapely(polygon)
    except ValueError as e:
        # fewer than three distinct vertices once the ring is closed
        logger.info("Degenerate polygon, area not computed: %s", e)
        return None
    if shape.is_empty or not shape.is_valid:
        logger.info("Polygon is not a valid simple ring; area not computed")
        return None
    return round(compute_area_sq_m(polygon) / SQ_M_PER_HECTARE, 4)
