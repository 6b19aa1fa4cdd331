from __future__ import annotations

from typing import Optional, Sequence


class NicheError(Exception):
	"""Base class for failures of the niche comparison pipeline."""

	def __init__(
		self,
		message: str,
		groups: Optional[Sequence[str]] = None,
		stage: Optional[str] = None,
	) -> None:
		super().__init__(message)
		self.groups = tuple(groups or ())
		self.stage = stage


class ConfigurationError(NicheError):
	"""Raised when settings or the requested group set are invalid."""


class InsufficientDataError(NicheError):
	"""Raised when a group has no usable samples after filtering."""


class DegenerateOrdinationError(NicheError):
	"""Raised when fewer than two variance axes can be retained."""


class EmptyGridOverlapError(NicheError):
	"""Raised when a density grid has an empty occupied domain."""


class DimensionMismatchError(NicheError):
	"""Raised when environmental sample tables do not share their columns."""
