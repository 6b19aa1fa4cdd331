from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Union
import logging

import numpy as np
from scipy.stats import gaussian_kde, multivariate_normal

from ..errors import EmptyGridOverlapError, InsufficientDataError

LOG = logging.getLogger(__name__)

Bandwidth = Union[str, float]
Axes = Tuple[np.ndarray, np.ndarray]

_KERNEL_CHUNK = 64


@dataclass(frozen=True)
class DensityGrid:
	"""Availability and occurrence densities of one group in ordination space.

	Arrays are indexed ``[x_index, y_index]`` over the shared axes.
	``density`` sums to 1 over ``occupied``; ``availability`` sums to 1 over
	the whole grid.
	"""

	name: str
	x: np.ndarray
	y: np.ndarray
	availability: np.ndarray
	background_mask: np.ndarray
	uncorrected: np.ndarray
	occupied: np.ndarray
	density: np.ndarray

	@property
	def resolution(self) -> int:
		return len(self.x)

	@property
	def is_empty(self) -> bool:
		return not self.occupied.any()


def grid_axes(background_scores: Sequence[np.ndarray], resolution: int) -> Axes:
	"""Axes of an R x R grid spanning all groups' pooled background scores."""
	pooled = np.vstack([np.asarray(block)[:, :2] for block in background_scores])
	if pooled.size == 0:
		raise InsufficientDataError("No background scores to span the density grid.", stage="density grid")
	lower = pooled.min(axis=0)
	upper = pooled.max(axis=0)
	flat = upper <= lower
	lower = np.where(flat, lower - 0.5, lower)
	upper = np.where(flat, upper + 0.5, upper)
	return (
		np.linspace(lower[0], upper[0], resolution),
		np.linspace(lower[1], upper[1], resolution),
	)


def _isotropic_density(scores: np.ndarray, nodes: np.ndarray, bandwidth: float) -> np.ndarray:
	kernel = multivariate_normal(mean=np.zeros(2), cov=float(bandwidth) ** 2 * np.eye(2))
	values = np.zeros(len(nodes))
	for start in range(0, len(scores), _KERNEL_CHUNK):
		chunk = scores[start:start + _KERNEL_CHUNK]
		offsets = nodes[None, :, :] - chunk[:, None, :]
		values += np.atleast_2d(kernel.pdf(offsets)).reshape(len(chunk), len(nodes)).sum(axis=0)
	return values / len(scores)


def kernel_density(
	scores: np.ndarray,
	axes: Axes,
	bandwidth: Bandwidth = "scott",
	name: str = "",
	label: str = "",
	mode: str = "relative",
) -> np.ndarray:
	"""Gaussian kernel density of 2-D scores evaluated on the grid nodes.

	In "relative" mode ``bandwidth`` goes to ``gaussian_kde`` and scales the
	sample covariance, so at least three points off a line are needed. In
	"absolute" mode it is the standard deviation of an isotropic kernel.
	"""
	x, y = axes
	xx, yy = np.meshgrid(x, y, indexing="ij")
	nodes = np.column_stack([xx.ravel(), yy.ravel()])
	scores = np.asarray(scores, dtype=float).reshape(-1, 2)

	def insufficient(reason: str) -> InsufficientDataError:
		return InsufficientDataError(
			f"Cannot estimate the {label} density of group {name!r} from {len(scores)} rows: {reason}",
			groups=[name],
			stage="density grid",
		)

	if len(scores) == 0:
		raise insufficient("no rows")
	if mode == "absolute":
		values = _isotropic_density(scores, nodes, bandwidth)
	else:
		if len(scores) < 3 or np.linalg.matrix_rank(np.cov(scores.T)) < 2:
			raise insufficient("the sample covariance is singular; use an absolute bandwidth")
		try:
			kde = gaussian_kde(scores.T, bw_method=bandwidth)
			values = kde(nodes.T)
		except (np.linalg.LinAlgError, ValueError) as exc:
			raise insufficient(str(exc)) from exc
	if not np.isfinite(values).all():
		raise insufficient("the kernel density is not finite")
	return values.reshape(xx.shape)


def _normalize(values: np.ndarray) -> np.ndarray:
	total = values.sum()
	if total <= 0:
		return np.zeros_like(values, dtype=float)
	return values / total


def _relative_support(values: np.ndarray, threshold: float) -> np.ndarray:
	peak = values.max()
	if not peak > 0:
		return np.zeros(values.shape, dtype=bool)
	return values / peak > threshold


def estimate_density_grid(
	background_scores: np.ndarray,
	occurrence_scores: np.ndarray,
	axes: Axes,
	bandwidth: Bandwidth = "scott",
	threshold: float = 1e-3,
	name: str = "",
	bandwidth_mode: str = "relative",
) -> DensityGrid:
	"""Build a group's availability and background-corrected occurrence density."""
	availability = _normalize(kernel_density(background_scores, axes, bandwidth, name, "background", bandwidth_mode))
	background_mask = _relative_support(availability, threshold)

	uncorrected = kernel_density(occurrence_scores, axes, bandwidth, name, "occurrence", bandwidth_mode)
	# Smoothing can leak occurrence mass outside the group's own background.
	uncorrected = _normalize(np.where(background_mask, uncorrected, 0.0))
	occupied = _relative_support(uncorrected, threshold)
	if not occupied.any():
		raise EmptyGridOverlapError(
			f"Occurrence density of group {name!r} has no support inside its background.",
			groups=[name],
			stage="density grid",
		)

	corrected = np.zeros_like(uncorrected)
	corrected[occupied] = uncorrected[occupied] / availability[occupied]
	density = _normalize(corrected)

	x, y = axes
	LOG.info(
		"Density grid for %s: %d occupied and %d available of %d cells.",
		name or "group",
		int(occupied.sum()),
		int(background_mask.sum()),
		occupied.size,
	)
	return DensityGrid(
		name=name,
		x=x,
		y=y,
		availability=availability,
		background_mask=background_mask,
		uncorrected=uncorrected,
		occupied=occupied,
		density=density,
	)
