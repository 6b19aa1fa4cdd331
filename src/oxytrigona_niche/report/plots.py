from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence
import logging

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap

from ..groups import Group
from ..process.density import DensityGrid
from ..process.ordination import Ordination

LOG = logging.getLogger(__name__)

_DYNAMICS_COLORS = ListedColormap(["#ffffff", "#2e7d32", "#1565c0", "#c62828"])
_DYNAMICS_LABELS = ("stability", "unfilling", "expansion")


def _save(fig, output_path: Path) -> Path:
	output_path.parent.mkdir(parents=True, exist_ok=True)
	fig.tight_layout()
	fig.savefig(output_path, dpi=300)
	plt.close(fig)
	LOG.info("Saved %s", output_path)
	return output_path


def _extent(grid: DensityGrid) -> List[float]:
	return [float(grid.x[0]), float(grid.x[-1]), float(grid.y[0]), float(grid.y[-1])]


def plot_ordination(ordination: Ordination, groups: Sequence[Group], output_path: Path) -> Path:
	"""Group scores in PCA space next to the variable correlation circle."""
	fig, (ax_scores, ax_circle) = plt.subplots(1, 2, figsize=(11, 5))
	explained = ordination.explained_variance

	for group in groups:
		if group.background_scores is not None:
			ax_scores.scatter(
				group.background_scores[:, 0],
				group.background_scores[:, 1],
				s=2,
				color="lightgrey",
				alpha=0.3,
				rasterized=True,
			)
	for group in groups:
		if group.occurrence_scores is not None:
			ax_scores.scatter(
				group.occurrence_scores[:, 0],
				group.occurrence_scores[:, 1],
				s=12,
				color=group.color,
				label=group.name,
				edgecolor="black",
				linewidth=0.3,
			)
	ax_scores.set_xlabel(f"PC1 ({100 * explained[0]:.1f}%)")
	ax_scores.set_ylabel(f"PC2 ({100 * explained[1]:.1f}%)")
	ax_scores.legend()
	ax_scores.grid(True, linestyle="--", alpha=0.3)

	correlations = ordination.correlations()
	ax_circle.add_patch(plt.Circle((0, 0), 1.0, fill=False, color="grey"))
	for variable, (pc1, pc2) in correlations.iterrows():
		ax_circle.arrow(0, 0, pc1, pc2, head_width=0.02, length_includes_head=True, color="black")
		ax_circle.text(pc1 * 1.08, pc2 * 1.08, str(variable), fontsize=7, ha="center", va="center")
	ax_circle.set_xlim(-1.15, 1.15)
	ax_circle.set_ylim(-1.15, 1.15)
	ax_circle.set_aspect("equal")
	ax_circle.axhline(0, color="grey", linewidth=0.5)
	ax_circle.axvline(0, color="grey", linewidth=0.5)
	ax_circle.set_title("Correlation circle")

	return _save(fig, output_path)


def plot_density_grid(grid: DensityGrid, output_path: Path, title: Optional[str] = None) -> Path:
	"""Corrected occurrence density with the background support outlined."""
	fig, ax = plt.subplots(figsize=(5, 5))
	image = ax.imshow(
		np.ma.masked_where(~grid.occupied, grid.density).T,
		origin="lower",
		extent=_extent(grid),
		aspect="auto",
		cmap="viridis",
	)
	ax.contour(
		grid.x,
		grid.y,
		grid.background_mask.T.astype(float),
		levels=[0.5],
		colors="black",
		linestyles="--",
		linewidths=1.0,
	)
	fig.colorbar(image, ax=ax, label="Occurrence density")
	ax.set_xlabel("PC1")
	ax.set_ylabel("PC2")
	ax.set_title(title or grid.name)
	return _save(fig, output_path)


def dynamics_categories(grid1: DensityGrid, grid2: DensityGrid) -> np.ndarray:
	"""Cell classes of ``grid1`` relative to ``grid2``.

	0 empty, 1 stability, 2 unfilling (``grid2`` only, available to
	``grid1``), 3 expansion (``grid1`` only, outside ``grid2``'s background).
	"""
	categories = np.zeros(grid1.occupied.shape, dtype=int)
	categories[grid2.occupied & grid1.background_mask & ~grid1.occupied] = 2
	categories[grid1.occupied & ~grid2.background_mask] = 3
	categories[grid1.occupied & grid2.occupied] = 1
	return categories


def plot_dynamics(grid1: DensityGrid, grid2: DensityGrid, output_path: Path) -> Path:
	fig, ax = plt.subplots(figsize=(5, 5))
	ax.imshow(
		dynamics_categories(grid1, grid2).T,
		origin="lower",
		extent=_extent(grid1),
		aspect="auto",
		cmap=_DYNAMICS_COLORS,
		vmin=0,
		vmax=3,
		interpolation="nearest",
	)
	for mask, style in ((grid1.background_mask, "-"), (grid2.background_mask, "--")):
		ax.contour(grid1.x, grid1.y, mask.T.astype(float), levels=[0.5], colors="black", linestyles=style, linewidths=1.0)
	handles = [
		plt.Rectangle((0, 0), 1, 1, color=_DYNAMICS_COLORS(index + 1))
		for index in range(len(_DYNAMICS_LABELS))
	]
	ax.legend(handles, _DYNAMICS_LABELS, loc="upper right", fontsize=8)
	ax.set_xlabel("PC1")
	ax.set_ylabel("PC2")
	ax.set_title(f"{grid1.name} relative to {grid2.name}")
	return _save(fig, output_path)


def plot_results(groups: Sequence[Group], ordination: Optional[Ordination], out_dir: Path) -> List[Path]:
	out_dir = Path(out_dir)
	written: List[Path] = []
	if ordination is not None:
		written.append(plot_ordination(ordination, groups, out_dir / "ordination.png"))
	grids = [group.grid for group in groups if group.grid is not None]
	for grid in grids:
		written.append(plot_density_grid(grid, out_dir / f"density_{grid.name}.png"))
	for grid1 in grids:
		for grid2 in grids:
			if grid1 is not grid2:
				written.append(plot_dynamics(grid1, grid2, out_dir / f"dynamics_{grid1.name}_{grid2.name}.png"))
	return written
