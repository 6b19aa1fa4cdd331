from __future__ import annotations

from typing import List, Optional, Sequence, Union
from pathlib import Path
from dataclasses import dataclass
import logging
import math

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.features import rasterize
from rasterio.transform import rowcol
from rasterio.warp import Resampling, reproject
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from ..errors import InsufficientDataError

LOG = logging.getLogger(__name__)

_RASTER_EXTENSIONS = {".tif", ".tiff", ".asc", ".img", ".nc", ".bil"}
_TRANSFORM_TOL = 1e-6


@dataclass(frozen=True)
class EnvironmentStack:
	"""Co-registered environmental bands held in memory.

	``data`` has shape (bands, rows, cols); nodata cells are NaN.
	"""

	data: np.ndarray
	transform: Affine
	crs: Optional[CRS]
	names: List[str]

	def __post_init__(self) -> None:
		if self.data.ndim != 3:
			raise ValueError(f"Environment data must be 3-dimensional, got shape {self.data.shape}")
		if len(self.names) != self.data.shape[0]:
			raise ValueError("Band names do not match the number of bands.")
		if len(set(self.names)) != len(self.names):
			raise ValueError("Band names must be unique.")

	@property
	def height(self) -> int:
		return self.data.shape[1]

	@property
	def width(self) -> int:
		return self.data.shape[2]


def collect_rasters(enviro_dir: Path) -> List[Path]:
	enviro_dir = Path(enviro_dir)
	if not enviro_dir.exists():
		raise FileNotFoundError(f"Enviro directory not found: {enviro_dir}")
	if not enviro_dir.is_dir():
		raise NotADirectoryError(f"Enviro path is not a directory: {enviro_dir}")
	paths = [
		p for p in enviro_dir.iterdir()
		if p.is_file() and p.suffix.lower() in _RASTER_EXTENSIONS
	]
	if not paths:
		raise ValueError(f"No raster files found in {enviro_dir}")
	return sorted(paths)


def _band_names(path: Path, src) -> List[str]:
	if src.count == 1:
		return [path.stem]
	names = []
	for index, description in enumerate(src.descriptions, start=1):
		names.append(description or f"{path.stem}_{index}")
	return names


def _same_grid(transform: Affine, other: Affine) -> bool:
	return all(
		math.isclose(a, b, abs_tol=_TRANSFORM_TOL)
		for a, b in zip(transform.to_gdal(), other.to_gdal())
	)


def _read_bands(src) -> np.ndarray:
	data = src.read(masked=True).astype(np.float64)
	return np.ma.filled(data, np.nan)


def load_environment(paths: Sequence[Path]) -> EnvironmentStack:
	"""Read rasters into one stack aligned to the grid of the first layer.

	Layers on a different grid or CRS are reprojected with bilinear resampling.
	"""
	if not paths:
		raise ValueError("No environmental layers were provided.")

	bands: List[np.ndarray] = []
	names: List[str] = []
	ref_transform: Optional[Affine] = None
	ref_crs: Optional[CRS] = None
	ref_shape = (0, 0)

	for index, path in enumerate(paths, start=1):
		path = Path(path)
		if not path.is_file():
			raise FileNotFoundError(f"Environmental layer not found: {path}")
		LOG.info("Reading environmental layer %d/%d from %s.", index, len(paths), path)

		with rasterio.open(path) as src:
			if ref_transform is None:
				ref_transform, ref_crs, ref_shape = src.transform, src.crs, (src.height, src.width)
				data = _read_bands(src)
			elif (src.height, src.width) == ref_shape and _same_grid(src.transform, ref_transform) and src.crs == ref_crs:
				data = _read_bands(src)
			else:
				if src.crs is None or ref_crs is None:
					raise ValueError(f"Cannot align raster without CRS: {path}")
				LOG.warning("Reprojecting %s onto the reference grid.", path.name)
				data = np.full((src.count, *ref_shape), np.nan, dtype=np.float64)
				for band in range(1, src.count + 1):
					reproject(
						source=rasterio.band(src, band),
						destination=data[band - 1],
						src_transform=src.transform,
						src_crs=src.crs,
						dst_transform=ref_transform,
						dst_crs=ref_crs,
						resampling=Resampling.bilinear,
						src_nodata=src.nodata,
						dst_nodata=np.nan,
					)
			bands.append(data)
			names.extend(_band_names(path, src))

	return EnvironmentStack(
		data=np.concatenate(bands, axis=0),
		transform=ref_transform,
		crs=ref_crs,
		names=names,
	)


def _drop_incomplete(values: np.ndarray, names: List[str], label: str) -> pd.DataFrame:
	frame = pd.DataFrame(values, columns=names)
	incomplete = frame.isna().any(axis=1)
	if incomplete.any():
		LOG.info("Excluded %d of %d %s rows with missing values.", int(incomplete.sum()), len(frame), label)
	return frame[~incomplete].reset_index(drop=True)


def sample_points(stack: EnvironmentStack, points: gpd.GeoDataFrame) -> pd.DataFrame:
	"""Band values at each point; points outside the raster count as missing."""
	values = np.full((len(points), len(stack.names)), np.nan)
	if len(points):
		rows, cols = rowcol(stack.transform, points.geometry.x.to_numpy(), points.geometry.y.to_numpy())
		rows = np.asarray(rows)
		cols = np.asarray(cols)
		inside = (rows >= 0) & (rows < stack.height) & (cols >= 0) & (cols < stack.width)
		values[inside] = stack.data[:, rows[inside], cols[inside]].T
	return _drop_incomplete(values, stack.names, "occurrence")


def sample_region(stack: EnvironmentStack, region: BaseGeometry) -> pd.DataFrame:
	"""Band values of every raster cell whose centre lies inside ``region``."""
	mask = rasterize(
		[(mapping(region), 1)],
		out_shape=(stack.height, stack.width),
		transform=stack.transform,
		fill=0,
		dtype="uint8",
		all_touched=False,
	)
	inside = mask.astype(bool)
	values = stack.data[:, inside].T
	return _drop_incomplete(values, stack.names, "background")


def sample_environment(
	stack: EnvironmentStack,
	target: Union[gpd.GeoDataFrame, BaseGeometry],
	name: str = "",
) -> pd.DataFrame:
	"""Extract complete environmental rows at points or inside a polygon."""
	if isinstance(target, gpd.GeoDataFrame):
		samples, stage = sample_points(stack, target), "occurrence sampling"
	else:
		samples, stage = sample_region(stack, target), "background sampling"
	if samples.empty:
		raise InsufficientDataError(
			f"Group {name!r} has no complete environmental samples ({stage}).",
			groups=[name],
			stage=stage,
		)
	return samples
