from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from multiprocessing import Pool, cpu_count
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..errors import DimensionMismatchError, EmptyGridOverlapError, NicheError
from .density import DensityGrid

LOG = logging.getLogger(__name__)

_AXIS_TOL = 1e-9
_D_TOL = 1e-12


@dataclass(frozen=True)
class SimilarityResult:
	observed: float
	simulated: np.ndarray
	p_value: float


@dataclass(frozen=True)
class DynamicIndices:
	expansion: float
	stability: float
	unfilling: float


@dataclass(frozen=True)
class PairResult:
	"""Metrics of one unordered pair; ``*_ij`` fields read "first towards second"."""

	i: int
	j: int
	names: Tuple[str, str]
	overlap: float = float("nan")
	hellinger: float = float("nan")
	similarity_ij: Optional[SimilarityResult] = None
	similarity_ji: Optional[SimilarityResult] = None
	dynamics_ij: Optional[DynamicIndices] = None
	dynamics_ji: Optional[DynamicIndices] = None
	errors: List[str] = field(default_factory=list)

	@property
	def ok(self) -> bool:
		return not self.errors


def schoeners_d(dist1: np.ndarray, dist2: np.ndarray) -> float:
	if dist1.size != dist2.size:
		raise ValueError("Distribution lengths do not match for Schoener's D.")
	return float(np.clip(1.0 - 0.5 * np.abs(dist1 - dist2).sum(), 0.0, 1.0))


def hellinger_i(dist1: np.ndarray, dist2: np.ndarray) -> float:
	if dist1.size != dist2.size:
		raise ValueError("Distribution lengths do not match for Hellinger's I.")
	return float(np.clip(1.0 - 0.5 * ((np.sqrt(dist1) - np.sqrt(dist2)) ** 2).sum(), 0.0, 1.0))


def _check_pair(grid1: DensityGrid, grid2: DensityGrid) -> None:
	names = [grid1.name, grid2.name]
	if grid1.density.shape != grid2.density.shape:
		raise DimensionMismatchError(
			f"Density grids differ in shape: {grid1.density.shape} != {grid2.density.shape}",
			groups=names,
			stage="niche metrics",
		)
	if not (np.allclose(grid1.x, grid2.x, atol=_AXIS_TOL) and np.allclose(grid1.y, grid2.y, atol=_AXIS_TOL)):
		raise DimensionMismatchError(
			"Density grids do not share their ordination axes.",
			groups=names,
			stage="niche metrics",
		)
	for grid in (grid1, grid2):
		if grid.is_empty:
			raise EmptyGridOverlapError(
				f"Density grid of group {grid.name!r} has an empty occupied domain.",
				groups=names,
				stage="niche metrics",
			)


def niche_overlap(grid1: DensityGrid, grid2: DensityGrid) -> Tuple[float, float]:
	"""Schoener's D and Hellinger's I between two occurrence densities."""
	_check_pair(grid1, grid2)
	return schoeners_d(grid1.density, grid2.density), hellinger_i(grid1.density, grid2.density)


def _shift(values: np.ndarray, dx: int, dy: int) -> np.ndarray:
	nx, ny = values.shape
	shifted = np.zeros_like(values)
	shifted[max(0, dx):min(nx, nx + dx), max(0, dy):min(ny, ny + dy)] = values[
		max(0, -dx):min(nx, nx - dx), max(0, -dy):min(ny, ny - dy)
	]
	return shifted


def random_shift(grid: DensityGrid, rng: np.random.Generator) -> np.ndarray:
	"""Move the density peak to a background cell drawn by availability.

	The shifted surface is cut to the group's background and renormalised.
	"""
	weights = np.where(grid.background_mask, grid.availability, 0.0).ravel()
	target = rng.choice(weights.size, p=weights / weights.sum())
	tx, ty = np.unravel_index(target, grid.density.shape)
	cx, cy = np.unravel_index(int(np.argmax(grid.density)), grid.density.shape)
	shifted = _shift(grid.density, int(tx - cx), int(ty - cy))
	shifted[~grid.background_mask] = 0.0
	total = shifted.sum()
	return shifted / total if total > 0 else shifted


def similarity_test(
	moved: DensityGrid,
	fixed: DensityGrid,
	rep: int,
	rng: np.random.Generator,
	alternative: str = "greater",
) -> SimilarityResult:
	"""One-sided niche similarity test of ``moved`` towards ``fixed``.

	``moved`` is relocated at random within its own background ``rep`` times
	while ``fixed`` stays put.
	"""
	_check_pair(moved, fixed)
	observed = schoeners_d(moved.density, fixed.density)
	simulated = np.array([schoeners_d(random_shift(moved, rng), fixed.density) for _ in range(rep)])
	if alternative == "greater":
		extreme = int(np.count_nonzero(simulated >= observed - _D_TOL))
	elif alternative == "lower":
		extreme = int(np.count_nonzero(simulated <= observed + _D_TOL))
	else:
		raise ValueError(f"Unknown alternative: {alternative!r}")
	return SimilarityResult(observed=observed, simulated=simulated, p_value=(extreme + 1) / (rep + 1))


def dynamic_indices(grid1: DensityGrid, grid2: DensityGrid) -> DynamicIndices:
	"""Expansion, stability and unfilling of ``grid1``'s niche relative to ``grid2``.

	Stability and expansion are shares of ``grid1``'s density; unfilling is
	the share of ``grid2``'s density available to ``grid1`` but unoccupied by it.
	"""
	_check_pair(grid1, grid2)
	p1, p2 = grid1.density, grid2.density
	stability = float(p1[grid1.occupied & grid2.occupied].sum())
	expansion = float(p1[grid1.occupied & ~grid2.background_mask].sum())

	available = grid2.occupied & grid1.background_mask
	reachable = float(p2[available].sum())
	unfilled = float(p2[available & ~grid1.occupied].sum())
	unfilling = unfilled / reachable if reachable > 0 else 0.0
	return DynamicIndices(expansion=expansion, stability=stability, unfilling=unfilling)


def pair_rng(seed: int, i: int, j: int) -> np.random.Generator:
	"""Private random stream of one test direction."""
	return np.random.default_rng([seed, i, j])


def compare_pair(
	task: Tuple[int, int, DensityGrid, DensityGrid, int, int, str]
) -> PairResult:
	i, j, grid_i, grid_j, rep, seed, alternative = task
	names = (grid_i.name, grid_j.name)
	LOG.info("Comparing niches %s and %s.", *names)
	try:
		overlap, hellinger = niche_overlap(grid_i, grid_j)
		return PairResult(
			i=i,
			j=j,
			names=names,
			overlap=overlap,
			hellinger=hellinger,
			similarity_ij=similarity_test(grid_i, grid_j, rep, pair_rng(seed, i, j), alternative),
			similarity_ji=similarity_test(grid_j, grid_i, rep, pair_rng(seed, j, i), alternative),
			dynamics_ij=dynamic_indices(grid_i, grid_j),
			dynamics_ji=dynamic_indices(grid_j, grid_i),
		)
	except NicheError as exc:
		LOG.error("Niche metrics for %s / %s not computed: %s", names[0], names[1], exc)
		return PairResult(i=i, j=j, names=names, errors=[f"{type(exc).__name__}: {exc}"])


def compare_groups(
	grids: Sequence[Optional[DensityGrid]],
	rep: int = 100,
	seed: int = 0,
	alternative: str = "greater",
	processes: int = 1,
) -> List[PairResult]:
	"""Metrics for every unordered pair of available grids, in (i, j) order.

	``grids`` follows group declaration order; ``None`` marks a group whose
	grid could not be built and is skipped.
	"""
	tasks = [
		(i, j, grids[i], grids[j], rep, seed, alternative)
		for i, j in combinations(range(len(grids)), 2)
		if grids[i] is not None and grids[j] is not None
	]
	if not tasks:
		return []

	available = cpu_count() or 1
	workers = min(len(tasks), processes, available)
	if workers > 1:
		with Pool(processes=workers) as pool:
			results = pool.map(compare_pair, tasks)
	else:
		results = [compare_pair(task) for task in tasks]
	return sorted(results, key=lambda result: (result.i, result.j))
