from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from ..errors import DegenerateOrdinationError, DimensionMismatchError

LOG = logging.getLogger(__name__)

OCCURRENCE_WEIGHT = 0.0
BACKGROUND_WEIGHT = 1.0
_VARIANCE_TOL = 1e-12


@dataclass(frozen=True)
class Ordination:
	"""Weighted principal component analysis shared by all groups.

	``scores`` holds the projected input rows in pooled order: the
	occurrence tables first, then the background tables, each in the order
	they were passed to :func:`fit_ordination`.
	"""

	variables: List[str]
	dropped: List[str]
	center: np.ndarray
	scale: np.ndarray
	eigenvalues: np.ndarray
	loadings: np.ndarray
	scores: np.ndarray

	@property
	def n_axes(self) -> int:
		return self.loadings.shape[1]

	@property
	def explained_variance(self) -> np.ndarray:
		return self.eigenvalues / self.eigenvalues.sum()

	@property
	def axis_names(self) -> List[str]:
		return [f"PC{index}" for index in range(1, self.n_axes + 1)]

	def transform(self, samples: pd.DataFrame) -> np.ndarray:
		"""Project new samples onto the retained axes."""
		missing = [name for name in self.variables if name not in samples.columns]
		if missing:
			raise DimensionMismatchError(
				f"Samples lack ordination variables: {', '.join(missing)}",
				stage="ordination",
			)
		values = samples[self.variables].to_numpy(dtype=float)
		return ((values - self.center) / self.scale) @ self.loadings[:, : self.n_axes]

	def correlations(self) -> pd.DataFrame:
		"""Correlation of each variable with each axis (correlation circle)."""
		values = self.loadings * np.sqrt(self.eigenvalues[: self.n_axes])
		return pd.DataFrame(values, index=self.variables, columns=self.axis_names)

	def loadings_table(self) -> pd.DataFrame:
		return pd.DataFrame(self.loadings, index=self.variables, columns=self.axis_names)

	def eigen_table(self) -> pd.DataFrame:
		return pd.DataFrame(
			{
				"eigenvalue": self.eigenvalues,
				"explained_variance": self.explained_variance,
				"cumulative": np.cumsum(self.explained_variance),
			},
			index=[f"PC{index}" for index in range(1, len(self.eigenvalues) + 1)],
		)


def _check_columns(tables: Sequence[pd.DataFrame]) -> List[str]:
	columns = list(tables[0].columns)
	for table in tables[1:]:
		if list(table.columns) != columns:
			raise DimensionMismatchError(
				f"Environmental samples differ in columns: {list(table.columns)} != {columns}",
				stage="ordination",
			)
	return columns


def pool_samples(
	occurrence_samples: Sequence[pd.DataFrame],
	background_samples: Sequence[pd.DataFrame],
) -> Tuple[pd.DataFrame, np.ndarray]:
	"""Stack all sample tables and return them with their row weights."""
	tables = list(occurrence_samples) + list(background_samples)
	if not tables:
		raise DegenerateOrdinationError("No samples were provided for the ordination.", stage="ordination")
	_check_columns(tables)
	pooled = pd.concat(tables, ignore_index=True)
	n_occurrence = sum(len(table) for table in occurrence_samples)
	weights = np.full(len(pooled), BACKGROUND_WEIGHT)
	weights[:n_occurrence] = OCCURRENCE_WEIGHT
	return pooled, weights


def _orient(vectors: np.ndarray) -> np.ndarray:
	# Largest absolute loading of every axis made positive.
	rows = np.argmax(np.abs(vectors), axis=0)
	signs = np.sign(vectors[rows, np.arange(vectors.shape[1])])
	signs[signs == 0] = 1.0
	return vectors * signs


def fit_ordination(
	occurrence_samples: Sequence[pd.DataFrame],
	background_samples: Sequence[pd.DataFrame],
	n_axes: int = 2,
) -> Ordination:
	"""Fit one PCA over pooled samples, axes defined by background rows only.

	Variables are standardised with the weighted mean and weighted
	population variance; constant variables are dropped.
	"""
	pooled, weights = pool_samples(occurrence_samples, background_samples)
	if weights.sum() <= 0:
		raise DegenerateOrdinationError("The ordination has no background rows.", stage="ordination")

	values = pooled.to_numpy(dtype=float)
	if not np.all(np.isfinite(values)):
		raise ValueError("Environmental samples contain missing or infinite values.")

	w = weights / weights.sum()
	center = w @ values
	variance = w @ (values - center) ** 2
	keep = variance > _VARIANCE_TOL * np.maximum(1.0, np.abs(center) ** 2)
	variables = [name for name, kept in zip(pooled.columns, keep) if kept]
	dropped = [name for name, kept in zip(pooled.columns, keep) if not kept]
	if dropped:
		LOG.warning("Dropping constant variables from the ordination: %s", ", ".join(dropped))
	if len(variables) < n_axes:
		raise DegenerateOrdinationError(
			f"Only {len(variables)} non-constant variables remain; {n_axes} axes are required.",
			stage="ordination",
		)

	center = center[keep]
	scale = np.sqrt(variance[keep])
	standardized = (values[:, keep] - center) / scale
	correlation = (standardized * w[:, None]).T @ standardized

	eigenvalues, vectors = np.linalg.eigh(correlation)
	order = np.argsort(eigenvalues)[::-1]
	eigenvalues = np.clip(eigenvalues[order], 0.0, None)
	vectors = _orient(vectors[:, order])
	if eigenvalues[n_axes - 1] <= _VARIANCE_TOL:
		raise DegenerateOrdinationError(
			f"Fewer than {n_axes} axes carry variance.",
			stage="ordination",
		)

	loadings = vectors[:, :n_axes]
	scores = standardized @ loadings
	ordination = Ordination(
		variables=variables,
		dropped=dropped,
		center=center,
		scale=scale,
		eigenvalues=eigenvalues,
		loadings=loadings,
		scores=scores,
	)
	LOG.info(
		"Ordination over %d rows (%d background): %s explain %.1f%% of variance.",
		len(values),
		int(np.count_nonzero(weights)),
		" + ".join(ordination.axis_names),
		100.0 * ordination.explained_variance[:n_axes].sum(),
	)
	return ordination


def split_scores(ordination: Ordination, sizes: Sequence[int]) -> List[np.ndarray]:
	"""Cut pooled scores back into per-table blocks of the given row counts."""
	if sum(sizes) != len(ordination.scores):
		raise ValueError("Block sizes do not add up to the number of scored rows.")
	bounds = np.cumsum([0, *sizes])
	return [ordination.scores[start:end] for start, end in zip(bounds[:-1], bounds[1:])]
