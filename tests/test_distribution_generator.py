"""
Unit tests for distribution_generator.py module.
"""

import numpy as np
import pytest
from pathlib import Path
import sys

# Add src directory to path for imports
sys.path.append(str(Path(__file__).parent.parent / "src"))

from distribution_generator import (DistributionFamily, DistributionGenerator,
                                    PeriodicalDistributionGenerator, PeriodicalSignal)
from simulation_errors import FailureRateTooHighError


class TestDistributionGenerator:
    """Test cases for DistributionGenerator."""

    def test_initial_buffer(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 10.0, 1.0,
                                          sample_size=50, seed=1)
        assert len(generator.samples) == 50
        assert np.all(generator.samples >= 0)
        assert np.allclose(np.cumsum(generator.samples), generator.cumulative_samples)
        assert generator.cursor == 0

    @pytest.mark.parametrize("family", list(DistributionFamily))
    def test_every_family_draws_non_negative(self, family):
        generator = DistributionGenerator(family, 1.0, 2.0, sample_size=200, seed=3)
        assert np.all(generator.samples >= 0)

    def test_same_seed_same_samples(self):
        first = DistributionGenerator(DistributionFamily.GAMMA, 2.0, 3.0, sample_size=20, seed=9)
        second = DistributionGenerator(DistributionFamily.GAMMA, 2.0, 3.0, sample_size=20, seed=9)
        assert np.array_equal(first.samples, second.samples)

    def test_invalid_sample_size(self):
        with pytest.raises(ValueError):
            DistributionGenerator(DistributionFamily.NORMAL, 1.0, 1.0, sample_size=0)

    def test_next_sample_advances_and_extends(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 1.0, 1.0,
                                          sample_size=2, seed=0)
        values = [generator.next_sample() for _ in range(3)]
        assert generator.cursor == 3
        assert generator.extensions == 1
        assert len(generator.samples) == 4
        assert values == list(generator.samples[:3])

    def test_find_event_does_not_move_cursor(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 5.0, 1.0,
                                          sample_size=100, seed=4)
        start = float(generator.cumulative_samples[10]) - 1e-9
        index, timestamp = generator.find_event(start)
        assert index == 10
        assert timestamp == pytest.approx(generator.cumulative_samples[10])
        assert generator.cursor == 0

    def test_find_event_skips_consumed(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 5.0, 1.0,
                                          sample_size=100, seed=4)
        generator.consume_until(20)
        index, _ = generator.find_event(0.0)
        assert index == 20

    def test_consume_until_is_monotonic(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 5.0, 1.0,
                                          sample_size=10, seed=4)
        generator.consume_until(5)
        generator.consume_until(2)
        assert generator.cursor == 5

    def test_extend_until_horizon(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 1.0, 1.0,
                                          sample_size=4, seed=2)
        generator.extend_until(100.0)
        assert generator.cumulative_samples[-1] >= 100.0

    def test_exhaustion_raises(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 1.0, 1.0,
                                          sample_size=2, max_extensions=2, seed=2)
        with pytest.raises(FailureRateTooHighError):
            generator.find_event(1.0e9)

    def test_mean_estimates(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 10.0, 2.0,
                                          a=3.0, b=30.0, c=1.5, sample_size=10, seed=5)
        assert generator.get_mean() == 0.0
        assert generator.get_mle_mean() == pytest.approx(30.0 / 4.0)
        assert generator.get_likelihood_prior() == 1.5
        assert generator.get_pke_mean() == pytest.approx(0.1)

        generator.consume_until(4)
        consumed = generator.samples[:4]
        assert generator.get_mean() == pytest.approx(consumed.mean())
        assert generator.get_mle_mean() == pytest.approx((30.0 + consumed.sum()) / 8.0)

    def test_priors_default_to_parameters(self):
        generator = DistributionGenerator(DistributionFamily.GAMMA, 4.0, 2.0, sample_size=5)
        assert generator.shape_prior == 2.0
        assert generator.scale_prior == 4.0
        assert generator.get_likelihood_prior() == 2.0

    def test_vary_distribution_resets(self):
        generator = DistributionGenerator(DistributionFamily.WEIBULL, 1.0, 1.0,
                                          sample_size=3, seed=8)
        for _ in range(5):
            generator.next_sample()
        generator.vary_distribution(100.0, 1.0)
        assert generator.cursor == 0
        assert generator.extensions == 0
        assert len(generator.samples) == 3


class TestPeriodicalGenerator:
    """Test cases for the periodical signal and generator."""

    def test_signal(self):
        signal = PeriodicalSignal(period=10.0, upper_bound=5.0, lower_bound=1.0)
        assert signal.get_current_signal(2.0) == 5.0
        assert signal.get_current_signal(7.0) == 1.0
        assert signal.get_current_signal(12.0) == 5.0
        assert signal.get_current_signal(-1.0) == 0.0

    def test_inverted_signal(self):
        signal = PeriodicalSignal(period=10.0, upper_bound=5.0, lower_bound=1.0, direction=False)
        assert signal.get_current_signal(2.0) == 1.0

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            PeriodicalSignal(period=0.0, upper_bound=1.0, lower_bound=0.0)

    def test_generator_follows_signal(self):
        signal = PeriodicalSignal(period=1.0e12, upper_bound=1000.0, lower_bound=1.0)
        generator = PeriodicalDistributionGenerator(DistributionFamily.NORMAL, 0.0, 0.0,
                                                    signal, sample_size=5, seed=1)
        # zero spread: every sample equals the current scale
        assert np.allclose(generator.samples, 1000.0)
