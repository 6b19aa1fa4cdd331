"""Orchestration of the niche comparison: assemble, ordinate, grid, compare."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import geopandas as gpd
import pandas as pd
from shapely.geometry.base import BaseGeometry

from .config import NicheConfig
from .errors import ConfigurationError, InsufficientDataError, NicheError
from .groups import Group
from .ingest.background import build_background
from .ingest.enviro import EnvironmentStack, sample_environment
from .ingest.occurrences import filter_to_domain, split_groups
from .process.density import estimate_density_grid, grid_axes
from .process.metrics import compare_groups
from .process.ordination import Ordination, fit_ordination, split_scores
from .process.results import Diagnostic, NicheResults, build_matrices

LOG = logging.getLogger(__name__)


def _require_pairs(names: Sequence[str]) -> None:
	if len(names) < 2:
		raise ConfigurationError(
			f"Pairwise niche metrics need at least 2 groups, got {len(names)}.",
			groups=names,
			stage="config",
		)
	if len(set(names)) != len(names):
		raise ConfigurationError("Group names must be unique.", groups=names, stage="config")


def _diagnostic(exc: NicheError, default_groups: Sequence[str], default_stage: str) -> Diagnostic:
	return Diagnostic(
		stage=exc.stage or default_stage,
		groups=exc.groups or tuple(default_groups),
		message=f"{type(exc).__name__}: {exc}",
	)


def assemble_group(
	name: str,
	points: gpd.GeoDataFrame,
	stack: EnvironmentStack,
	buffer_size: float,
	land_mask: Optional[BaseGeometry] = None,
	color: Optional[str] = None,
) -> Group:
	"""Domain filter, background polygon and environmental samples of one group."""
	if land_mask is not None:
		points = filter_to_domain(points, land_mask)
	if points.empty:
		raise InsufficientDataError(
			f"Group {name!r} has no occurrences inside the domain.",
			groups=[name],
			stage="domain filter",
		)
	background = build_background(points, buffer_size, land_mask, name=name)
	occurrence_env = sample_environment(stack, points, name=name)
	background_env = sample_environment(stack, background, name=name)
	LOG.info(
		"Assembled %s: %d occurrence samples, %d background samples.",
		name,
		len(occurrence_env),
		len(background_env),
	)
	return Group(
		name=name,
		points=points,
		color=color,
		background=background,
		occurrence_env=occurrence_env,
		background_env=background_env,
	)


def ordinate_groups(groups: Sequence[Group], n_axes: int = 2) -> Tuple[Ordination, List[Group]]:
	"""Fit the shared ordination and attach every group's scores."""
	ordination = fit_ordination(
		[group.occurrence_env for group in groups],
		[group.background_env for group in groups],
		n_axes=n_axes,
	)
	sizes = [len(group.occurrence_env) for group in groups] + [len(group.background_env) for group in groups]
	blocks = split_scores(ordination, sizes)
	n = len(groups)
	scored = [
		replace(group, occurrence_scores=blocks[index], background_scores=blocks[n + index])
		for index, group in enumerate(groups)
	]
	return ordination, scored


def compare_sampled_groups(
	groups: Sequence[Group],
	config: NicheConfig,
	names: Optional[Sequence[str]] = None,
	diagnostics: Optional[List[Diagnostic]] = None,
) -> NicheResults:
	"""Run ordination, density grids and pairwise metrics for sampled groups.

	``names`` is the declared group order used to label the result tables;
	groups missing from ``groups`` appear as rows of NaN.
	"""
	names = list(names) if names is not None else [group.name for group in groups]
	diagnostics = list(diagnostics or [])
	_require_pairs(names)
	if len(groups) < 2:
		raise InsufficientDataError(
			f"Only {len(groups)} of {len(names)} groups could be assembled.",
			groups=[group.name for group in groups],
			stage="assembly",
		)

	ordination, scored = ordinate_groups(groups, config.n_axes)
	axes = grid_axes([group.background_scores for group in scored], config.resolution)

	by_name: Dict[str, Group] = {}
	for group in scored:
		try:
			grid = estimate_density_grid(
				group.background_scores,
				group.occurrence_scores,
				axes,
				bandwidth=config.bandwidth,
				bandwidth_mode=config.bandwidth_mode,
				threshold=config.threshold,
				name=group.name,
			)
		except NicheError as exc:
			LOG.error("Density grid for %s not computed: %s", group.name, exc)
			diagnostics.append(_diagnostic(exc, [group.name], "density grid"))
			by_name[group.name] = group
			continue
		by_name[group.name] = replace(group, grid=grid)

	grids = [by_name[name].grid if name in by_name else None for name in names]
	pairs = compare_groups(
		grids,
		rep=config.rep,
		seed=config.seed,
		alternative=config.alternative,
		processes=config.processes,
	)
	for pair in pairs:
		for message in pair.errors:
			diagnostics.append(Diagnostic(stage="niche metrics", groups=pair.names, message=message))

	return NicheResults(
		groups=names,
		matrices=build_matrices(names, pairs),
		ordination=ordination,
		members=[by_name[name] for name in names if name in by_name],
		diagnostics=diagnostics,
	)


def run_comparison(
	points: gpd.GeoDataFrame,
	stack: EnvironmentStack,
	config: NicheConfig,
	land_mask: Optional[BaseGeometry] = None,
	names: Optional[Sequence[str]] = None,
	colors: Optional[Mapping[str, str]] = None,
) -> NicheResults:
	"""Full comparison from occurrence points and an environmental stack."""
	partitions = split_groups(points, names)
	names = list(partitions)
	_require_pairs(names)

	groups: List[Group] = []
	diagnostics: List[Diagnostic] = []
	for name, group_points in partitions.items():
		try:
			groups.append(
				assemble_group(
					name,
					group_points,
					stack,
					config.buffer_size,
					land_mask,
					color=(colors or {}).get(name),
				)
			)
		except NicheError as exc:
			LOG.error("Group %s not assembled: %s", name, exc)
			diagnostics.append(_diagnostic(exc, [name], "assembly"))

	return compare_sampled_groups(groups, config, names, diagnostics)


def groups_from_samples(samples: Mapping[str, Tuple[pd.DataFrame, pd.DataFrame]]) -> List[Group]:
	"""Groups built directly from (occurrence, background) environment tables.

	Rows with missing values are excluded, as in raster sampling.
	"""
	groups = []
	for name, (occurrence_env, background_env) in samples.items():
		occurrence_env = occurrence_env.dropna().reset_index(drop=True)
		background_env = background_env.dropna().reset_index(drop=True)
		if occurrence_env.empty or background_env.empty:
			raise InsufficientDataError(
				f"Group {name!r} has no complete occurrence or background samples.",
				groups=[name],
				stage="assembly",
			)
		groups.append(
			Group(
				name=name,
				points=gpd.GeoDataFrame(geometry=gpd.GeoSeries([])),
				occurrence_env=occurrence_env,
				background_env=background_env,
			)
		)
	return groups
