from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from openpyxl import Workbook

from ..groups import Group
from ..process.results import METRICS, NicheResults

LOG = logging.getLogger(__name__)

WORKBOOK_FILENAME = "niche_metrics.xlsx"
BACKGROUNDS_FILENAME = "backgrounds.gpkg"
NOT_COMPUTED = "not computed"


def _format_number(value: float) -> Optional[float]:
	if value is None or not np.isfinite(value):
		return None
	return round(float(value), 6)


def _matrix_rows(matrix: pd.DataFrame, names: Sequence[str]) -> List[list]:
	rows = []
	for row in names:
		cells: list = [row]
		for col in names:
			value = matrix.loc[row, col]
			if row == col:
				cells.append(None)
			elif np.isfinite(value):
				cells.append(_format_number(value))
			else:
				cells.append(NOT_COMPUTED)
		rows.append(cells)
	return rows


def write_workbook(results: NicheResults, destination: Path) -> None:
	"""One sheet per metric, then ordination and diagnostics sheets."""
	workbook = Workbook()
	sheet = workbook.active
	sheet.title = METRICS[0]
	for index, metric in enumerate(METRICS):
		if index:
			sheet = workbook.create_sheet(metric)
		sheet.append(["group", *results.groups])
		for cells in _matrix_rows(results.matrices[metric], results.groups):
			sheet.append(cells)

	if results.ordination is not None:
		sheet = workbook.create_sheet("loadings")
		loadings = results.ordination.loadings_table()
		sheet.append(["Variable", *loadings.columns])
		for variable, values in loadings.iterrows():
			sheet.append([variable, *(_format_number(v) for v in values)])

		sheet = workbook.create_sheet("eigenvalues")
		eigen = results.ordination.eigen_table()
		sheet.append(["Axis", *eigen.columns])
		for axis, values in eigen.iterrows():
			sheet.append([axis, *(_format_number(v) for v in values)])

	sheet = workbook.create_sheet("diagnostics")
	sheet.append(["Stage", "Groups", "Message"])
	for diagnostic in results.diagnostics:
		sheet.append([diagnostic.stage, ", ".join(diagnostic.groups), diagnostic.message])

	destination.parent.mkdir(parents=True, exist_ok=True)
	workbook.save(destination)
	LOG.info("Saved workbook %s", destination)


def write_csv_tables(results: NicheResults, out_dir: Path) -> List[Path]:
	out_dir = Path(out_dir)
	out_dir.mkdir(parents=True, exist_ok=True)
	written = []
	for metric in METRICS:
		path = out_dir / f"{metric}.csv"
		results.matrices[metric].to_csv(path, float_format="%.6f")
		written.append(path)
	if results.ordination is not None:
		for name, table in (
			("loadings", results.ordination.loadings_table()),
			("correlations", results.ordination.correlations()),
			("eigenvalues", results.ordination.eigen_table()),
		):
			path = out_dir / f"{name}.csv"
			table.to_csv(path, float_format="%.6f")
			written.append(path)
	path = out_dir / "diagnostics.csv"
	results.diagnostics_table().to_csv(path, index=False)
	written.append(path)
	return written


def write_group_samples(group: Group, out_dir: Path) -> None:
	"""Environmental samples with their ordination scores, one CSV per kind."""
	out_dir = Path(out_dir)
	out_dir.mkdir(parents=True, exist_ok=True)
	for kind, samples, scores in (
		("occurrence", group.occurrence_env, group.occurrence_scores),
		("background", group.background_env, group.background_scores),
	):
		if samples is None:
			continue
		table = samples.copy()
		if scores is not None:
			table["PC1"] = scores[:, 0]
			table["PC2"] = scores[:, 1]
		table.to_csv(out_dir / f"{group.name}_{kind}.csv", index=False)


def write_backgrounds(groups: Sequence[Group], destination: Path, crs: Optional[str] = None) -> None:
	with_background = [group for group in groups if group.background is not None]
	if not with_background:
		return
	gdf = gpd.GeoDataFrame(
		{
			"group": [group.name for group in with_background],
			"n_points": [group.n_points for group in with_background],
		},
		geometry=[group.background for group in with_background],
		crs=crs,
	)
	destination.parent.mkdir(parents=True, exist_ok=True)
	gdf.to_file(destination, driver="GPKG", layer="backgrounds")
	LOG.info("Saved background polygons: %s", destination.name)


def write_results(results: NicheResults, out_dir: Path, crs: Optional[str] = None) -> None:
	out_dir = Path(out_dir)
	write_csv_tables(results, out_dir / "tables")
	write_workbook(results, out_dir / WORKBOOK_FILENAME)
	for group in results.members:
		write_group_samples(group, out_dir / "samples")
	write_backgrounds(results.members, out_dir / BACKGROUNDS_FILENAME, crs)
