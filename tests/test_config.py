from __future__ import annotations

import json

import pytest

from oxytrigona_niche.config import NicheConfig, config_from_mapping, load_config
from oxytrigona_niche.errors import ConfigurationError


def test_defaults():
	config = load_config(None)
	assert config == NicheConfig()
	assert config.resolution == 100
	assert config.rep == 100
	assert config.bandwidth == "scott"


@pytest.mark.parametrize(
	"settings",
	[
		{"buffer_size": 0},
		{"buffer_size": -1.5},
		{"resolution": 1},
		{"rep": 0},
		{"bandwidth": "gauss"},
		{"bandwidth": -0.2},
		{"threshold": 1.0},
		{"alternative": "two-sided"},
		{"n_axes": 3},
		{"processes": 0},
		{"seed": -1},
		{"bandwidth_mode": "fixed"},
		{"bandwidth": "scott", "bandwidth_mode": "absolute"},
	],
)
def test_invalid_settings(settings):
	with pytest.raises(ConfigurationError):
		NicheConfig(**settings)


def test_load_json(tmp_path):
	path = tmp_path / "settings.json"
	path.write_text(json.dumps({"buffer_size": 2.5, "rep": 19, "bandwidth": "0.4"}), encoding="utf-8")
	config = load_config(path)
	assert config.buffer_size == 2.5
	assert config.rep == 19
	assert config.bandwidth == pytest.approx(0.4)


def test_unknown_keys_rejected():
	with pytest.raises(ConfigurationError, match="Unknown configuration keys: colour"):
		config_from_mapping({"colour": "red"})


def test_missing_and_malformed_files(tmp_path):
	with pytest.raises(FileNotFoundError):
		load_config(tmp_path / "absent.json")
	path = tmp_path / "broken.json"
	path.write_text("{not json", encoding="utf-8")
	with pytest.raises(ValueError, match="not valid JSON"):
		load_config(path)
	path.write_text("[1, 2]", encoding="utf-8")
	with pytest.raises(ValueError, match="must be an object"):
		load_config(path)


def test_updated_ignores_unset_overrides():
	config = NicheConfig(rep=10).updated(rep=None, seed=3, bandwidth="silverman")
	assert config.rep == 10
	assert config.seed == 3
	assert config.bandwidth == "silverman"
