from __future__ import annotations

import os

os.environ.setdefault("MPLBACKEND", "Agg")

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from oxytrigona_niche.ingest.enviro import EnvironmentStack
from oxytrigona_niche.process.density import DensityGrid

CELL = 0.25
WEST, NORTH = -10.0, 10.0
SIZE = 80


def _cell_centres():
	cols = WEST + CELL * (np.arange(SIZE) + 0.5)
	rows = NORTH - CELL * (np.arange(SIZE) + 0.5)
	return np.meshgrid(cols, rows)


@pytest.fixture
def stack() -> EnvironmentStack:
	"""Two bands over [-10, 10]^2: temperature-like x and rainfall-like y."""
	xx, yy = _cell_centres()
	temperature = 20.0 + xx + 0.1 * np.sin(yy)
	rainfall = 1000.0 + 50.0 * yy + 5.0 * np.cos(xx)
	data = np.stack([temperature, rainfall]).astype(float)
	# A small lake of missing values in the north-west corner.
	data[:, :4, :4] = np.nan
	return EnvironmentStack(
		data=data,
		transform=from_origin(WEST, NORTH, CELL, CELL),
		crs=None,
		names=["bio1", "bio12"],
	)


@pytest.fixture
def land_mask():
	return box(-9.0, -9.0, 9.0, 9.0)


def make_points(rows) -> gpd.GeoDataFrame:
	frame = pd.DataFrame(rows, columns=["group", "longitude", "latitude"])
	return gpd.GeoDataFrame(
		frame,
		geometry=gpd.points_from_xy(frame["longitude"], frame["latitude"]),
		crs="EPSG:4326",
	)


@pytest.fixture
def clustered_points() -> gpd.GeoDataFrame:
	rng = np.random.default_rng(7)
	rows = []
	for name, (x, y) in (("A", (-5.0, -5.0)), ("B", (-4.5, -5.0)), ("C", (5.0, 5.0))):
		for lon, lat in rng.normal((x, y), 0.8, size=(25, 2)):
			rows.append((name, lon, lat))
	return make_points(rows)


def scenario_samples(seed: int = 1, n_occurrences: int = 60, n_background: int = 800):
	"""Groups A and B share a niche at (0, 0); C sits at (10, 10)."""
	rng = np.random.default_rng(seed)
	samples = {}
	for name, centre in (("A", (0.0, 0.0)), ("B", (0.0, 0.0)), ("C", (10.0, 10.0))):
		occurrences = rng.normal(centre, 0.1, size=(n_occurrences, 2))
		background = rng.uniform(-1.0, 11.0, size=(n_background, 2))
		samples[name] = (
			pd.DataFrame(occurrences, columns=["env1", "env2"]),
			pd.DataFrame(background, columns=["env1", "env2"]),
		)
	return samples


def make_grid(name, occupied, background=None, density=None, size=10) -> DensityGrid:
	"""Hand-built grid: uniform availability over ``background``."""
	axis = np.linspace(0.0, 1.0, size)
	occupied = np.asarray(occupied, dtype=bool)
	background = occupied.copy() if background is None else np.asarray(background, dtype=bool)
	availability = background / background.sum()
	if density is None:
		density = occupied.astype(float)
	density = np.where(occupied, density, 0.0)
	density = density / density.sum() if density.sum() > 0 else density
	return DensityGrid(
		name=name,
		x=axis,
		y=axis,
		availability=availability,
		background_mask=background,
		uncorrected=density,
		occupied=occupied,
		density=density,
	)


def block(rows, cols, size=10) -> np.ndarray:
	mask = np.zeros((size, size), dtype=bool)
	mask[rows, cols] = True
	return mask
