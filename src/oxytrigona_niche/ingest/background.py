from __future__ import annotations

import logging
from typing import Optional

import geopandas as gpd
from shapely.geometry import MultiPoint
from shapely.geometry.base import BaseGeometry

from ..errors import InsufficientDataError

LOG = logging.getLogger(__name__)


def build_background(
	points: gpd.GeoDataFrame,
	buffer_size: float,
	land_mask: Optional[BaseGeometry] = None,
	name: str = "",
) -> BaseGeometry:
	"""Convex hull of a group's points, buffered and clipped to the land mask.

	One point yields a point hull and two points a segment; the buffer turns
	either into a polygon.
	"""
	if not buffer_size > 0:
		raise ValueError(f"Buffer size must be positive, got {buffer_size}")
	if points.empty:
		raise InsufficientDataError(
			f"Group {name!r} has no occurrences to build a background from.",
			groups=[name],
			stage="background",
		)

	hull = MultiPoint(list(points.geometry)).convex_hull
	region = hull.buffer(buffer_size)
	if land_mask is not None:
		region = region.intersection(land_mask)

	if region.is_empty or region.area <= 0:
		raise InsufficientDataError(
			f"Background of group {name!r} does not intersect the land mask.",
			groups=[name],
			stage="background",
		)

	LOG.info(
		"Background for %s: hull of %d points, buffer %.3f, area %.3f.",
		name or "group",
		len(points),
		buffer_size,
		region.area,
	)
	return region
