"""
H3 helpers used for the report proximity index.

Every report is stored with the H3 cell of its location (`zone_id`). A radius
search expands the centre cell into rings wide enough to cover the radius,
pulls the reports in those cells, then keeps the ones actually within range.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Tuple

import h3

# one store query per cell; 40 rings is 4921 cells
MAX_RINGS = 40


def point_to_hex(lat: float, lng: float, resolution: int = 7) -> str:
    """Return the H3 cell ID for (lat, lng) at the given resolution."""
    return h3.latlng_to_cell(lat, lng, resolution)


def distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return h3.great_circle_distance((lat1, lng1), (lat2, lng2), unit="m")


def rings_for(radius_m: float, resolution: int = 7) -> int:
    """Ring count covering `radius_m`. Over-estimated (edge length < centre spacing) so nothing on the rim is missed."""
    edge = h3.average_hexagon_edge_length(resolution, unit="m")
    return int(math.ceil(max(radius_m, 0.0) / edge)) + 1


def cells_within(lat: float, lng: float, radius_m: float, resolution: int = 7) -> List[str]:
    """
    All cells whose reports could lie within `radius_m` of the point.
    Raises ValueError when that takes more than MAX_RINGS rings.
    """
    k = rings_for(radius_m, resolution)
    if k > MAX_RINGS:
        raise ValueError(f"radius {radius_m} m needs {k} rings at resolution {resolution} (max {MAX_RINGS})")
    return list(h3.grid_disk(point_to_hex(lat, lng, resolution), k))


class SpatialIndex:
    def __init__(self, store, resolution: int = 7):
        self.store = store
        self.resolution = resolution

    def zone_for(self, longitude: float, latitude: float) -> str:
        return point_to_hex(latitude, longitude, self.resolution)

    def near_reports(self, longitude: float, latitude: float, radius_m: float) -> List[Tuple[Dict[str, Any], float]]:
        """(report item, distance in metres) pairs within the radius, closest first."""
        cells = cells_within(latitude, longitude, radius_m, self.resolution)
        hits = []
        for item in self.store.reports_in_zones(cells):
            r_lng, r_lat = item["location"]["coordinates"]
            d = distance_m(latitude, longitude, r_lat, r_lng)
            if d <= radius_m:
                hits.append((item, d))
        hits.sort(key=lambda pair: pair[1])
        return hits

    def near(self, longitude: float, latitude: float, radius_m: float) -> List[str]:
        return [item["id"] for item, _ in self.near_reports(longitude, latitude, radius_m)]
