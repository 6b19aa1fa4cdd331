from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from shapely.geometry.base import BaseGeometry

if TYPE_CHECKING:
	from .process.density import DensityGrid


@dataclass(frozen=True)
class Group:
	"""One compared entity with everything derived for it.

	Later stages attach their outputs with ``dataclasses.replace`` so a
	group's background, samples, scores and grid always travel together.
	"""

	name: str
	points: gpd.GeoDataFrame
	color: Optional[str] = None
	background: Optional[BaseGeometry] = None
	occurrence_env: Optional[pd.DataFrame] = None
	background_env: Optional[pd.DataFrame] = None
	occurrence_scores: Optional[np.ndarray] = None
	background_scores: Optional[np.ndarray] = None
	grid: Optional["DensityGrid"] = None

	@property
	def n_points(self) -> int:
		return len(self.points)

	@property
	def is_sampled(self) -> bool:
		return self.occurrence_env is not None and self.background_env is not None
