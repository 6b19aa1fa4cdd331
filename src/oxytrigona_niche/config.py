from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .errors import ConfigurationError

LOG = logging.getLogger(__name__)

Bandwidth = Union[str, float]

_BANDWIDTH_RULES = ("scott", "silverman")
_ALTERNATIVES = ("greater", "lower")
_BANDWIDTH_MODES = ("relative", "absolute")


@dataclass(frozen=True)
class NicheConfig:
	"""Scalar settings of one niche comparison run.

	Parameters
	----------
	buffer_size : float
		Distance added around each group's convex hull, in CRS units.
	resolution : int
		Number of grid cells along each ordination axis.
	rep : int
		Repetitions of the niche similarity randomisation.
	seed : int
		Root seed of the per pair-direction random streams.
	bandwidth : str or float
		Kernel bandwidth rule ("scott", "silverman") or a scalar. A scalar is a
		factor on the data covariance, or the kernel standard deviation in
		ordination units when ``bandwidth_mode`` is "absolute".
	bandwidth_mode : str
		"relative" scales each sample's own covariance; "absolute" uses an
		isotropic kernel, which also smooths one or two points.
	threshold : float
		Relative density (to the grid maximum) below which a cell is empty.
	alternative : str
		"greater" tests for more similar niches than random, "lower" for less.
	n_axes : int
		Ordination axes retained; the density grids need exactly two.
	processes : int
		Worker processes for pairwise metrics (1 = run in-process).
	"""

	buffer_size: float = 1.0
	resolution: int = 100
	rep: int = 100
	seed: int = 0
	bandwidth: Bandwidth = "scott"
	bandwidth_mode: str = "relative"
	threshold: float = 1e-3
	alternative: str = "greater"
	n_axes: int = 2
	processes: int = 1

	def __post_init__(self) -> None:
		if not self.buffer_size > 0:
			raise ConfigurationError(f"buffer_size must be positive, got {self.buffer_size}", stage="config")
		if int(self.resolution) != self.resolution or self.resolution < 2:
			raise ConfigurationError(f"resolution must be an integer >= 2, got {self.resolution}", stage="config")
		if int(self.rep) != self.rep or self.rep < 1:
			raise ConfigurationError(f"rep must be a positive integer, got {self.rep}", stage="config")
		if int(self.seed) != self.seed or self.seed < 0:
			raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed}", stage="config")
		if self.bandwidth_mode not in _BANDWIDTH_MODES:
			raise ConfigurationError(
				f"bandwidth_mode must be one of {', '.join(_BANDWIDTH_MODES)}, got {self.bandwidth_mode!r}",
				stage="config",
			)
		if isinstance(self.bandwidth, str):
			if self.bandwidth_mode == "absolute":
				raise ConfigurationError("An absolute bandwidth must be a positive number.", stage="config")
			if self.bandwidth not in _BANDWIDTH_RULES:
				raise ConfigurationError(
					f"bandwidth must be one of {', '.join(_BANDWIDTH_RULES)} or a positive number",
					stage="config",
				)
		elif not float(self.bandwidth) > 0:
			raise ConfigurationError(f"bandwidth factor must be positive, got {self.bandwidth}", stage="config")
		if not 0 <= self.threshold < 1:
			raise ConfigurationError(f"threshold must lie in [0, 1), got {self.threshold}", stage="config")
		if self.alternative not in _ALTERNATIVES:
			raise ConfigurationError(
				f"alternative must be one of {', '.join(_ALTERNATIVES)}, got {self.alternative!r}",
				stage="config",
			)
		if self.n_axes != 2:
			raise ConfigurationError("Density grids are two-dimensional; n_axes must be 2.", stage="config")
		if self.processes < 1:
			raise ConfigurationError(f"processes must be >= 1, got {self.processes}", stage="config")

	def updated(self, **overrides: Any) -> "NicheConfig":
		"""Return a copy with the given non-None settings replaced."""
		changes = {key: value for key, value in overrides.items() if value is not None}
		return replace(self, **changes)


def parse_bandwidth(value: Any) -> Bandwidth:
	if isinstance(value, str):
		try:
			return float(value)
		except ValueError:
			return value.strip().lower()
	return value


def config_from_mapping(data: Mapping[str, Any]) -> NicheConfig:
	known = {field.name for field in fields(NicheConfig)}
	unknown = sorted(set(data) - known)
	if unknown:
		raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}", stage="config")
	values = dict(data)
	if "bandwidth" in values:
		values["bandwidth"] = parse_bandwidth(values["bandwidth"])
	try:
		return NicheConfig(**values)
	except TypeError as exc:
		raise ConfigurationError(f"Invalid configuration values: {exc}", stage="config") from exc


def load_config(config_path: Optional[Path]) -> NicheConfig:
	"""Read settings from a JSON object; defaults apply when no file is given."""
	if config_path is None:
		return NicheConfig()

	config_path = Path(config_path)
	if not config_path.exists():
		raise FileNotFoundError(f"Configuration file not found: {config_path}")
	if not config_path.is_file():
		raise ValueError(f"Configuration path is not a file: {config_path}")

	try:
		data = json.loads(config_path.read_text(encoding="utf-8"))
	except json.JSONDecodeError as exc:
		raise ValueError(f"Configuration file is not valid JSON: {config_path}") from exc

	if not isinstance(data, dict):
		raise ValueError("Configuration JSON must be an object mapping settings to values.")

	LOG.info("Loaded configuration from %s.", config_path)
	return config_from_mapping(data)
