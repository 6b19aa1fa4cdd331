from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..groups import Group
from .metrics import PairResult
from .ordination import Ordination

METRICS = ("overlap", "hellinger", "similarity", "expansion", "stability", "unfilling")


@dataclass(frozen=True)
class Diagnostic:
	stage: str
	groups: Tuple[str, ...]
	message: str


@dataclass
class NicheResults:
	"""Result tables of one run, labelled by group name in declaration order.

	``similarity``, ``expansion``, ``stability`` and ``unfilling`` are read
	row towards column: the cell (A, B) holds the value of A's niche
	relative to B.
	"""

	groups: List[str]
	matrices: Dict[str, pd.DataFrame]
	ordination: Optional[Ordination] = None
	members: List[Group] = field(default_factory=list)
	diagnostics: List[Diagnostic] = field(default_factory=list)

	def __getattr__(self, name: str) -> pd.DataFrame:
		matrices = self.__dict__.get("matrices", {})
		if name in matrices:
			return matrices[name]
		raise AttributeError(name)

	def diagnostics_table(self) -> pd.DataFrame:
		return pd.DataFrame(
			[
				{"stage": d.stage, "groups": ", ".join(d.groups), "message": d.message}
				for d in self.diagnostics
			],
			columns=["stage", "groups", "message"],
		)


def empty_matrix(names: Sequence[str]) -> pd.DataFrame:
	return pd.DataFrame(
		np.full((len(names), len(names)), np.nan),
		index=list(names),
		columns=list(names),
	)


def build_matrices(names: Sequence[str], pairs: Sequence[PairResult]) -> Dict[str, pd.DataFrame]:
	"""Fill n x n metric tables from pair results; everything else stays NaN."""
	matrices = {metric: empty_matrix(names) for metric in METRICS}
	for pair in pairs:
		if not pair.ok:
			continue
		a, b = names[pair.i], names[pair.j]
		for metric in ("overlap", "hellinger"):
			value = getattr(pair, metric)
			matrices[metric].loc[a, b] = value
			matrices[metric].loc[b, a] = value
		for row, col, similarity, dynamics in (
			(a, b, pair.similarity_ij, pair.dynamics_ij),
			(b, a, pair.similarity_ji, pair.dynamics_ji),
		):
			if similarity is not None:
				matrices["similarity"].loc[row, col] = similarity.p_value
			if dynamics is not None:
				matrices["expansion"].loc[row, col] = dynamics.expansion
				matrices["stability"].loc[row, col] = dynamics.stability
				matrices["unfilling"].loc[row, col] = dynamics.unfilling
	return matrices
