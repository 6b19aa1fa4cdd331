from .plots import plot_results
from .tables import write_results
