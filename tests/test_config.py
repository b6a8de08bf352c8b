"""Tests for PackerConfig validation and preset modes."""

import dataclasses

import pytest

from bedpacker.config import PackerConfig
from bedpacker.exceptions import ConfigurationError


class TestPackerConfig:

    def test_defaults(self):
        config = PackerConfig()
        assert config.intra_group_attraction == 0.3
        assert config.inter_group_repulsion == 0.2
        assert config.collision_strength == 0.8
        assert config.damping == 0.85
        assert config.max_iterations == 500
        assert config.packing_efficiency == 0.65
        assert config.collision_tolerance == 0.1

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            PackerConfig().damping = 0.5

    def test_negative_coefficient_raises_error(self):
        with pytest.raises(ConfigurationError, match="min_spacing"):
            PackerConfig(min_spacing=-1)

    def test_non_finite_coefficient_raises_error(self):
        with pytest.raises(ConfigurationError, match="finite"):
            PackerConfig(collision_strength=float("inf"))

    def test_damping_range(self):
        with pytest.raises(ConfigurationError, match="damping"):
            PackerConfig(damping=0)
        with pytest.raises(ConfigurationError, match="damping"):
            PackerConfig(damping=1.5)

    def test_unknown_engine(self):
        with pytest.raises(ConfigurationError, match="Unknown engine"):
            PackerConfig(engine="annealing")

    def test_with_overrides_validates(self):
        config = PackerConfig().with_overrides(seed=9)
        assert config.seed == 9
        with pytest.raises(ConfigurationError):
            config.with_overrides(max_iterations=0)

    def test_random_attempts_budget(self):
        config = PackerConfig()
        assert config.random_attempts == 800 - 400 - 16 ** 2
        assert PackerConfig.quick_mode().random_attempts > 0
        assert PackerConfig.dense_mode().random_attempts > 0

    def test_modes(self):
        assert PackerConfig.quick_mode().max_iterations < PackerConfig.standard_mode().max_iterations
        assert PackerConfig.dense_mode().max_iterations > PackerConfig.standard_mode().max_iterations
        assert PackerConfig.from_mode("quick", seed=3).seed == 3

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError, match="Unknown mode"):
            PackerConfig.from_mode("maximum")
