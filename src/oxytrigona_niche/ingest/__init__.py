from .background import build_background
from .enviro import EnvironmentStack, load_environment, sample_environment
from .occurrences import filter_to_domain, load_land_mask, load_occurrences, split_groups
