from __future__ import annotations

import logging
import argparse
from pathlib import Path
from typing import List, Optional

from .config import load_config, parse_bandwidth
from .errors import NicheError
from .ingest.enviro import collect_rasters, load_environment
from .ingest.occurrences import (
	GROUP_COLUMN,
	X_COLUMN,
	Y_COLUMN,
	OCCURRENCE_CRS,
	load_land_mask,
	load_occurrences,
)
from .pipeline import run_comparison
from .report.plots import plot_results
from .report.tables import write_results

LOG = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="oxytrigona-niche",
		description="Compare ecological niches of occurrence groups in a shared PCA space",
	)
	p.add_argument("--occurrences", type=str, required=True, help="Occurrence table (.csv or .xlsx)")
	p.add_argument("--mask", type=str, required=True, help="Land/domain mask vector file")
	p.add_argument("--enviro", nargs="+", type=str, required=True, help="Environmental rasters or a directory of rasters")
	p.add_argument("--output", type=str, required=True, help="Output directory")
	p.add_argument("--config", type=str, default=None, help="Optional JSON settings file")
	p.add_argument("--groups", nargs="+", metavar="NAME", default=None, help="Groups to compare, in table order (default: all)")
	p.add_argument("--colors", nargs="+", metavar="COLOR", default=None, help="Plot colours matching --groups")
	p.add_argument("--group-column", type=str, default=GROUP_COLUMN, help="Group label column")
	p.add_argument("--x-column", type=str, default=X_COLUMN, help="Longitude column")
	p.add_argument("--y-column", type=str, default=Y_COLUMN, help="Latitude column")
	p.add_argument("--sheet", type=str, default=None, help="Excel sheet name (default: first sheet)")
	p.add_argument("--buffer", type=float, default=None, help="Background buffer size in CRS units")
	p.add_argument("--resolution", type=int, default=None, help="Density grid cells per axis")
	p.add_argument("--rep", type=int, default=None, help="Similarity test repetitions")
	p.add_argument("--seed", type=int, default=None, help="Random seed")
	p.add_argument("--bandwidth", type=str, default=None, help="Kernel bandwidth rule (scott, silverman) or factor")
	p.add_argument("--bandwidth-mode", choices=["relative", "absolute"], default=None, help="Bandwidth as covariance factor or absolute kernel sd")
	p.add_argument("--alternative", choices=["greater", "lower"], default=None, help="Similarity test direction")
	p.add_argument("--processes", type=int, default=None, help="Worker processes for pairwise metrics")
	p.add_argument("--no-plots", action="store_true", help="Skip PNG output")
	p.add_argument("--verbose", action="store_true", help="Debug logging")
	return p


def _ensure_dir(p: Path) -> Path:
	path = Path(p)
	path.mkdir(parents=True, exist_ok=True)
	return path


def _raster_paths(values: List[str]) -> List[Path]:
	paths: List[Path] = []
	for value in values:
		path = Path(value)
		paths.extend(collect_rasters(path) if path.is_dir() else [path])
	return paths


def main(argv: Optional[list[str]] = None) -> int:
	ns = _build_parser().parse_args(argv)

	logging.basicConfig(
		level=logging.DEBUG if ns.verbose else logging.INFO,
		format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)

	try:
		config = load_config(Path(ns.config) if ns.config else None).updated(
			buffer_size=ns.buffer,
			resolution=ns.resolution,
			rep=ns.rep,
			seed=ns.seed,
			bandwidth=parse_bandwidth(ns.bandwidth) if ns.bandwidth is not None else None,
			bandwidth_mode=ns.bandwidth_mode,
			alternative=ns.alternative,
			processes=ns.processes,
		)
	except NicheError as exc:
		LOG.error("Invalid settings: %s", exc)
		return 2
	colors = None
	if ns.colors:
		if not ns.groups or len(ns.colors) != len(ns.groups):
			LOG.error("--colors needs one colour per name in --groups.")
			return 2
		colors = dict(zip(ns.groups, ns.colors))

	out_dir = _ensure_dir(Path(ns.output))
	points = load_occurrences(Path(ns.occurrences), ns.group_column, ns.x_column, ns.y_column, ns.sheet)
	stack = load_environment(_raster_paths(ns.enviro))
	crs = stack.crs.to_string() if stack.crs is not None else OCCURRENCE_CRS
	if crs != OCCURRENCE_CRS:
		points = points.to_crs(crs)
	land_mask = load_land_mask(Path(ns.mask), crs)

	try:
		results = run_comparison(points, stack, config, land_mask, ns.groups, colors)
	except NicheError as exc:
		LOG.error("Niche comparison aborted (%s): %s", exc.stage or "pipeline", exc)
		return 1

	write_results(results, out_dir, crs)
	if not ns.no_plots:
		plot_results(results.members, results.ordination, out_dir / "plots")

	for diagnostic in results.diagnostics:
		LOG.warning("Not computed [%s] %s: %s", diagnostic.stage, ", ".join(diagnostic.groups), diagnostic.message)
	LOG.info("Niche overlap (D):\n%s", results.overlap.round(3).to_string())
	return 0


if __name__ == "__main__":
	raise SystemExit(main())
