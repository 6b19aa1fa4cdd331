from __future__ import annotations

import json

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box

from oxytrigona_niche.cli import main


def _write_layers(directory, stack):
	directory.mkdir()
	for name, band in zip(stack.names, stack.data):
		with rasterio.open(
			directory / f"{name}.tif",
			"w",
			driver="GTiff",
			width=band.shape[1],
			height=band.shape[0],
			count=1,
			dtype="float32",
			crs="EPSG:4326",
			transform=stack.transform,
			nodata=-9999.0,
		) as dst:
			dst.write(np.where(np.isnan(band), -9999.0, band).astype("float32"), 1)


def _write_inputs(tmp_path, stack, clustered_points):
	_write_layers(tmp_path / "enviro", stack)
	occurrences = tmp_path / "occurrences.csv"
	table = pd.DataFrame(clustered_points.drop(columns="geometry"))
	table.rename(columns={"group": "species"}).to_csv(occurrences, index=False)
	mask = tmp_path / "mask.gpkg"
	gpd.GeoDataFrame({"name": ["land"]}, geometry=[box(-9, -9, 9, 9)], crs="EPSG:4326").to_file(mask, driver="GPKG")
	return occurrences, mask


def test_cli_end_to_end(tmp_path, stack, clustered_points):
	occurrences, mask = _write_inputs(tmp_path, stack, clustered_points)
	settings = tmp_path / "settings.json"
	settings.write_text(json.dumps({"buffer_size": 2.0, "resolution": 30}), encoding="utf-8")
	out_dir = tmp_path / "out"

	code = main(
		[
			"--occurrences", str(occurrences),
			"--mask", str(mask),
			"--enviro", str(tmp_path / "enviro"),
			"--output", str(out_dir),
			"--config", str(settings),
			"--group-column", "species",
			"--groups", "A", "B", "C",
			"--colors", "tab:orange", "tab:blue", "tab:green",
			"--rep", "9",
			"--seed", "5",
		]
	)

	assert code == 0
	overlap = pd.read_csv(out_dir / "tables" / "overlap.csv", index_col=0)
	assert list(overlap.index) == ["A", "B", "C"]
	assert overlap.loc["A", "B"] > overlap.loc["A", "C"]
	assert (out_dir / "niche_metrics.xlsx").exists()
	assert (out_dir / "backgrounds.gpkg").exists()
	assert (out_dir / "plots" / "ordination.png").exists()
	assert (out_dir / "plots" / "dynamics_C_A.png").exists()


def test_cli_reports_aborted_runs(tmp_path, stack, clustered_points):
	occurrences, mask = _write_inputs(tmp_path, stack, clustered_points)
	code = main(
		[
			"--occurrences", str(occurrences),
			"--mask", str(mask),
			"--enviro", str(tmp_path / "enviro" / "bio1.tif"), str(tmp_path / "enviro" / "bio12.tif"),
			"--output", str(tmp_path / "out"),
			"--group-column", "species",
			"--groups", "A",
			"--no-plots",
		]
	)
	assert code == 1


def test_cli_rejects_unmatched_colors(tmp_path, stack, clustered_points):
	occurrences, mask = _write_inputs(tmp_path, stack, clustered_points)
	code = main(
		[
			"--occurrences", str(occurrences),
			"--mask", str(mask),
			"--enviro", str(tmp_path / "enviro"),
			"--output", str(tmp_path / "out"),
			"--colors", "red",
		]
	)
	assert code == 2


def test_cli_rejects_invalid_settings(tmp_path, stack, clustered_points):
	occurrences, mask = _write_inputs(tmp_path, stack, clustered_points)
	code = main(
		[
			"--occurrences", str(occurrences),
			"--mask", str(mask),
			"--enviro", str(tmp_path / "enviro"),
			"--output", str(tmp_path / "out"),
			"--rep", "0",
		]
	)
	assert code == 2
	assert not (tmp_path / "out").exists()
