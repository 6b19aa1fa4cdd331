from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, cast

import geopandas as gpd
import pandas as pd
from shapely import make_valid
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

LOG = logging.getLogger(__name__)

GROUP_COLUMN = "group"
X_COLUMN = "longitude"
Y_COLUMN = "latitude"
OCCURRENCE_CRS = "EPSG:4326"
_EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def _read_table(in_path: Path, sheet: Optional[str]) -> pd.DataFrame:
	try:
		if in_path.suffix.lower() in _EXCEL_SUFFIXES:
			return pd.read_excel(in_path, sheet_name=sheet or 0, engine="openpyxl")
		return pd.read_csv(in_path)
	except Exception as exc:  # pragma: no cover - pandas/openpyxl internal errors
		raise RuntimeError(f"Failed to read occurrence table: {in_path}") from exc


def prepare_occurrences(
	table: pd.DataFrame,
	group_column: str = GROUP_COLUMN,
	x_column: str = X_COLUMN,
	y_column: str = Y_COLUMN,
	crs: str = OCCURRENCE_CRS,
) -> gpd.GeoDataFrame:
	"""Validate an occurrence table and return distinct points as a GeoDataFrame."""
	missing_columns = [c for c in (group_column, x_column, y_column) if c not in table.columns]
	if missing_columns:
		raise ValueError(f"Missing required columns: {', '.join(missing_columns)}")

	try:
		x_series = cast(pd.Series, pd.to_numeric(table[x_column], errors="raise"))
		y_series = cast(pd.Series, pd.to_numeric(table[y_column], errors="raise"))
	except (TypeError, ValueError) as exc:
		raise ValueError("Coordinate columns must contain numeric values.") from exc

	frame = pd.DataFrame(
		{
			GROUP_COLUMN: table[group_column].astype("string").str.strip(),
			X_COLUMN: x_series.astype(float),
			Y_COLUMN: y_series.astype(float),
		}
	)
	incomplete = frame.isna().any(axis=1)
	if incomplete.any():
		LOG.warning("Dropping %d occurrence rows with missing group or coordinates.", int(incomplete.sum()))
		frame = frame[~incomplete]

	n_rows = len(frame)
	frame = frame.drop_duplicates().reset_index(drop=True)
	if len(frame) < n_rows:
		LOG.info("Removed %d duplicate occurrence rows.", n_rows - len(frame))

	if frame.empty:
		raise ValueError("Occurrence table contains no usable records.")

	return gpd.GeoDataFrame(
		frame,
		geometry=gpd.points_from_xy(frame[X_COLUMN], frame[Y_COLUMN]),
		crs=crs,
	)


def load_occurrences(
	in_path: Path,
	group_column: str = GROUP_COLUMN,
	x_column: str = X_COLUMN,
	y_column: str = Y_COLUMN,
	sheet: Optional[str] = None,
) -> gpd.GeoDataFrame:
	"""Load occurrence records from a CSV or Excel file."""
	in_path = Path(in_path)
	if not in_path.exists():
		raise FileNotFoundError(f"Occurrence data not found: {in_path}")
	if not in_path.is_file():
		raise ValueError(f"Occurrence path is not a file: {in_path}")

	LOG.info("Loading occurrences from %s.", in_path)
	table = _read_table(in_path, sheet)
	points = prepare_occurrences(table, group_column, x_column, y_column)
	LOG.info(
		"Loaded %d distinct occurrences in %d groups.",
		len(points),
		points[GROUP_COLUMN].nunique(),
	)
	return points


def split_groups(points: gpd.GeoDataFrame, names: Optional[Sequence[str]] = None) -> Dict[str, gpd.GeoDataFrame]:
	"""Partition points by group label, in the requested (or first-seen) order."""
	labels: List[str] = list(names) if names else list(dict.fromkeys(points[GROUP_COLUMN]))
	missing = [name for name in labels if name not in set(points[GROUP_COLUMN])]
	if missing:
		LOG.warning("Groups without occurrence records: %s", ", ".join(missing))
	return {
		name: cast(gpd.GeoDataFrame, points[points[GROUP_COLUMN] == name].reset_index(drop=True))
		for name in labels
	}


def dissolve_mask(geometries: Sequence[BaseGeometry]) -> BaseGeometry:
	"""Union mask features into one valid geometry."""
	parts = []
	for geom in geometries:
		if geom is None or geom.is_empty:
			continue
		if not geom.is_valid:
			geom = make_valid(geom)
		parts.append(geom)
	if not parts:
		raise ValueError("Mask contains no usable geometries.")
	return unary_union(parts)


def load_land_mask(mask_path: Path, crs: str = OCCURRENCE_CRS) -> BaseGeometry:
	"""Read a vector file and return its features as a single geometry in ``crs``."""
	mask_path = Path(mask_path)
	if not mask_path.exists():
		raise FileNotFoundError(f"Mask file not found: {mask_path}")

	try:
		gdf = gpd.read_file(mask_path)
	except Exception as exc:  # pragma: no cover - geopandas internal errors
		raise RuntimeError(f"Failed to read mask dataset: {mask_path}") from exc
	if gdf.empty:
		raise ValueError(f"No features found in mask dataset: {mask_path}")
	if gdf.crs is None:
		raise ValueError(f"Mask dataset has no CRS defined: {mask_path}")

	gdf = gdf.to_crs(crs)
	return dissolve_mask(list(gdf.geometry))


def filter_to_domain(points: gpd.GeoDataFrame, mask: BaseGeometry) -> gpd.GeoDataFrame:
	"""Keep points intersecting ``mask``; points on its boundary are kept."""
	inside = points.intersects(mask)
	dropped = int((~inside).sum())
	if dropped:
		LOG.info("Dropped %d of %d occurrences outside the domain mask.", dropped, len(points))
	return cast(gpd.GeoDataFrame, points[inside].reset_index(drop=True))
