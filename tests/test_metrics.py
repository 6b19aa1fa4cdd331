from __future__ import annotations

import numpy as np
import pytest

from conftest import block, make_grid
from oxytrigona_niche.errors import DimensionMismatchError, EmptyGridOverlapError
from oxytrigona_niche.process.metrics import (
	compare_groups,
	compare_pair,
	dynamic_indices,
	hellinger_i,
	niche_overlap,
	pair_rng,
	random_shift,
	schoeners_d,
	similarity_test,
)

EVERYWHERE = np.ones((10, 10), dtype=bool)


def test_schoeners_d_bounds():
	p = np.array([0.5, 0.5, 0.0])
	q = np.array([0.0, 0.0, 1.0])
	assert schoeners_d(p, p) == pytest.approx(1.0)
	assert schoeners_d(p, q) == pytest.approx(0.0)
	assert hellinger_i(p, p) == pytest.approx(1.0)
	assert hellinger_i(p, q) == pytest.approx(0.0)
	with pytest.raises(ValueError):
		schoeners_d(p, q[:2])


def test_identical_grids():
	occupied = block(slice(2, 5), slice(2, 6))
	grid = make_grid("A", occupied, EVERYWHERE)
	twin = make_grid("B", occupied, EVERYWHERE)
	d, i = niche_overlap(grid, twin)
	assert d == pytest.approx(1.0)
	assert i == pytest.approx(1.0)
	dynamics = dynamic_indices(grid, twin)
	assert dynamics.expansion == 0.0
	assert dynamics.stability == pytest.approx(1.0)
	assert dynamics.unfilling == 0.0


def test_disjoint_grids():
	first = make_grid("A", block(slice(0, 3), slice(0, 3)), EVERYWHERE)
	second = make_grid("B", block(slice(6, 9), slice(6, 9)), EVERYWHERE)
	d, _ = niche_overlap(first, second)
	assert d == pytest.approx(0.0)
	dynamics = dynamic_indices(first, second)
	assert dynamics.stability == 0.0
	assert dynamics.expansion == 0.0
	assert dynamics.unfilling == pytest.approx(1.0)


def test_overlap_is_symmetric():
	rng = np.random.default_rng(5)
	first = make_grid("A", block(slice(1, 7), slice(1, 7)), EVERYWHERE, rng.random((10, 10)))
	second = make_grid("B", block(slice(3, 9), slice(2, 8)), EVERYWHERE, rng.random((10, 10)))
	d_ab, i_ab = niche_overlap(first, second)
	d_ba, i_ba = niche_overlap(second, first)
	assert 0.0 <= d_ab <= 1.0
	assert d_ab == pytest.approx(d_ba)
	assert i_ab == pytest.approx(i_ba)


def test_dynamic_index_decomposition():
	# A occupies columns 0-5, B occupies columns 4-9; B's background stops at column 2.
	first = make_grid("A", block(slice(0, 10), slice(0, 6)), EVERYWHERE)
	second_background = block(slice(0, 10), slice(2, 10))
	second = make_grid("B", block(slice(0, 10), slice(4, 10)), second_background)

	forward = dynamic_indices(first, second)
	assert forward.stability == pytest.approx(2 / 6)
	assert forward.expansion == pytest.approx(2 / 6)
	assert forward.expansion + forward.stability <= 1.0
	# B's cells in columns 6-9 are available to A but unoccupied by it.
	assert forward.unfilling == pytest.approx(4 / 6)

	backward = dynamic_indices(second, first)
	assert backward.stability == pytest.approx(2 / 6)
	assert backward.expansion == 0.0
	# A's cells in columns 2-3 lie in B's background but B left them empty.
	assert backward.unfilling == pytest.approx(0.5)


def test_expansion_and_stability_cover_everything_outside_other_background():
	first = make_grid("A", block(slice(0, 10), slice(0, 4)), EVERYWHERE)
	second = make_grid("B", block(slice(0, 10), slice(2, 6)), block(slice(0, 10), slice(2, 10)))
	dynamics = dynamic_indices(first, second)
	assert dynamics.expansion + dynamics.stability == pytest.approx(1.0)


def test_unfilling_without_reachable_niche():
	first = make_grid("A", block(slice(0, 3), slice(0, 3)), block(slice(0, 5), slice(0, 5)))
	second = make_grid("B", block(slice(7, 10), slice(7, 10)), EVERYWHERE)
	assert dynamic_indices(first, second).unfilling == 0.0


def test_empty_grid_is_an_error():
	empty = make_grid("A", np.zeros((10, 10), dtype=bool), EVERYWHERE)
	other = make_grid("B", block(slice(0, 3), slice(0, 3)), EVERYWHERE)
	with pytest.raises(EmptyGridOverlapError) as excinfo:
		niche_overlap(empty, other)
	assert set(excinfo.value.groups) == {"A", "B"}


def test_grids_must_share_resolution():
	small = make_grid("A", block(slice(0, 3), slice(0, 3), size=5), np.ones((5, 5), dtype=bool), size=5)
	other = make_grid("B", block(slice(0, 3), slice(0, 3)), EVERYWHERE)
	with pytest.raises(DimensionMismatchError):
		niche_overlap(small, other)


def test_random_shift_stays_in_background():
	background = block(slice(0, 10), slice(0, 5))
	grid = make_grid("A", block(slice(4, 6), slice(1, 3)), background)
	rng = np.random.default_rng(0)
	for _ in range(20):
		shifted = random_shift(grid, rng)
		assert shifted.sum() == pytest.approx(1.0)
		assert shifted[~background].sum() == 0.0


def test_similarity_test_reproducible():
	first = make_grid("A", block(slice(2, 4), slice(2, 4)), EVERYWHERE)
	second = make_grid("B", block(slice(2, 4), slice(2, 4)), EVERYWHERE)
	one = similarity_test(first, second, 49, pair_rng(3, 0, 1))
	two = similarity_test(first, second, 49, pair_rng(3, 0, 1))
	assert one.p_value == two.p_value
	assert np.array_equal(one.simulated, two.simulated)
	assert one.observed == pytest.approx(1.0)
	assert 1 / 50 <= one.p_value <= 1.0
	assert len(one.simulated) == 49


def test_similarity_alternatives():
	first = make_grid("A", block(slice(0, 2), slice(0, 2)), EVERYWHERE)
	second = make_grid("B", block(slice(8, 10), slice(8, 10)), EVERYWHERE)
	greater = similarity_test(first, second, 19, pair_rng(0, 0, 1), "greater")
	lower = similarity_test(first, second, 19, pair_rng(0, 0, 1), "lower")
	assert greater.p_value == pytest.approx(1.0)
	assert lower.p_value <= greater.p_value
	with pytest.raises(ValueError):
		similarity_test(first, second, 5, pair_rng(0, 0, 1), "sideways")


def _grids():
	rng = np.random.default_rng(9)
	return [
		make_grid("A", block(slice(1, 6), slice(1, 6)), EVERYWHERE, rng.random((10, 10))),
		make_grid("B", block(slice(3, 8), slice(2, 7)), EVERYWHERE, rng.random((10, 10))),
		make_grid("C", block(slice(6, 10), slice(6, 10)), EVERYWHERE, rng.random((10, 10))),
	]


def test_compare_groups_covers_every_pair():
	results = compare_groups(_grids(), rep=9, seed=1)
	assert [(r.i, r.j) for r in results] == [(0, 1), (0, 2), (1, 2)]
	assert all(r.ok for r in results)
	for result in results:
		assert result.similarity_ij is not None and result.similarity_ji is not None
		assert result.dynamics_ij is not None and result.dynamics_ji is not None
		assert 0.0 <= result.overlap <= 1.0


def test_pair_results_do_not_depend_on_order():
	grids = _grids()
	together = compare_groups(grids, rep=9, seed=4)
	alone = compare_pair((1, 2, grids[1], grids[2], 9, 4, "greater"))
	assert together[2].overlap == alone.overlap
	assert together[2].similarity_ij.p_value == alone.similarity_ij.p_value
	assert np.array_equal(together[2].similarity_ji.simulated, alone.similarity_ji.simulated)


def test_failed_pairs_are_reported_not_raised():
	grids = _grids()
	grids[1] = make_grid("B", np.zeros((10, 10), dtype=bool), EVERYWHERE)
	results = compare_groups(grids + [None], rep=5, seed=0)
	assert [(r.i, r.j) for r in results] == [(0, 1), (0, 2), (1, 2)]
	assert not results[0].ok and "EmptyGridOverlapError" in results[0].errors[0]
	assert np.isnan(results[0].overlap)
	assert results[1].ok
