from .density import DensityGrid, estimate_density_grid, grid_axes
from .metrics import compare_groups, dynamic_indices, niche_overlap, similarity_test
from .ordination import Ordination, fit_ordination
from .results import Diagnostic, NicheResults
