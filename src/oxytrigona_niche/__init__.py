"""Niche overlap, similarity and dynamics between occurrence groups."""
from __future__ import annotations

from .config import NicheConfig, load_config
from .errors import (
	ConfigurationError,
	DegenerateOrdinationError,
	DimensionMismatchError,
	EmptyGridOverlapError,
	InsufficientDataError,
	NicheError,
)
from .groups import Group
from .pipeline import compare_sampled_groups, groups_from_samples, run_comparison

__all__ = [
	"ConfigurationError",
	"DegenerateOrdinationError",
	"DimensionMismatchError",
	"EmptyGridOverlapError",
	"Group",
	"InsufficientDataError",
	"NicheConfig",
	"NicheError",
	"compare_sampled_groups",
	"groups_from_samples",
	"load_config",
	"run_comparison",
]

__version__ = "0.1.0"
