"""
Distribution Generator

This module provides lazy, extendable sample sequences drawn from a parametric
distribution. The samples are read either one by one (overhead delays) or as a
cumulative point process on the simulation timeline (failure events).
"""

import logging
from enum import Enum
from typing import Optional, Tuple

import numpy as np

try:
    from .simulation_errors import FailureRateTooHighError
except ImportError:
    from simulation_errors import FailureRateTooHighError


class DistributionFamily(Enum):
    """Supported parametric families."""
    LOGNORMAL = 'lognormal'
    GAMMA = 'gamma'
    WEIBULL = 'weibull'
    NORMAL = 'normal'


class DistributionGenerator:
    """
    Buffered sample source for one parametric distribution.

    Parameters follow a (scale, shape) convention:
    - LOGNORMAL: scale is the mean of the underlying normal, shape its sigma
    - GAMMA: shape and scale as usual
    - WEIBULL: shape is k, scale is lambda
    - NORMAL: scale is the mean, shape the standard deviation

    The buffer starts with ``sample_size`` samples and doubles whenever a
    caller needs a sample or a cumulative horizon beyond it. Doubling more
    than ``max_extensions`` times raises FailureRateTooHighError.
    """

    SAMPLE_SIZE = 1500
    MAX_EXTENSIONS = 10

    def __init__(self, family: DistributionFamily, scale: float, shape: float,
                 a: Optional[float] = None, b: Optional[float] = None,
                 c: Optional[float] = None,
                 sample_size: int = SAMPLE_SIZE,
                 max_extensions: int = MAX_EXTENSIONS,
                 seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize the generator and draw the first sample buffer.

        Args:
            family: Distribution family
            scale: Scale parameter (see class docstring)
            shape: Shape parameter (see class docstring)
            a: Shape prior used by the MLE estimate (defaults to shape)
            b: Scale prior used by the MLE estimate (defaults to scale)
            c: Likelihood prior (defaults to shape)
            sample_size: Initial buffer size
            max_extensions: Maximum number of buffer doublings
            seed: Seed for a private numpy Generator
            rng: Explicit numpy Generator, takes precedence over seed
        """
        if sample_size <= 0:
            raise ValueError(f"sample_size must be positive, got {sample_size}")
        self.family = family
        self.scale = scale
        self.shape = shape
        self.shape_prior = shape if a is None else a
        self.scale_prior = scale if b is None else b
        self.likelihood_prior = shape if c is None else c
        self.sample_size = sample_size
        self.max_extensions = max_extensions
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.logger = logging.getLogger(__name__)

        self._extensions = 0
        self._cursor = 0
        self._samples = self._generate(sample_size, 0.0)
        self._cumulative = np.cumsum(self._samples)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def samples(self) -> np.ndarray:
        return self._samples

    @property
    def cumulative_samples(self) -> np.ndarray:
        return self._cumulative

    @property
    def extensions(self) -> int:
        return self._extensions

    def _draw(self, scale: float, shape: float, size: int) -> np.ndarray:
        if self.family == DistributionFamily.LOGNORMAL:
            values = self.rng.lognormal(mean=scale, sigma=shape, size=size)
        elif self.family == DistributionFamily.GAMMA:
            values = self.rng.gamma(shape, scale, size=size)
        elif self.family == DistributionFamily.WEIBULL:
            values = scale * self.rng.weibull(shape, size=size)
        elif self.family == DistributionFamily.NORMAL:
            values = self.rng.normal(loc=scale, scale=shape, size=size)
        else:
            raise ValueError(f"Unsupported distribution family: {self.family}")
        # intervals on a timeline cannot be negative
        return np.maximum(values, 0.0)

    def _generate(self, size: int, current_time: float) -> np.ndarray:
        """Draw ``size`` new samples; ``current_time`` is the horizon so far."""
        return self._draw(self.scale, self.shape, size)

    def extend_samples(self) -> None:
        """Double the sample buffer and refresh the cumulative sums."""
        if self._extensions >= self.max_extensions:
            raise FailureRateTooHighError(
                f"Sample buffer of {len(self._samples)} {self.family.value} samples "
                f"cannot be extended beyond {self.max_extensions} times; "
                f"the failure rate is too high for the task runtimes")
        horizon = float(self._cumulative[-1]) if len(self._cumulative) else 0.0
        new_samples = self._generate(len(self._samples), horizon)
        self._samples = np.concatenate([self._samples, new_samples])
        self._cumulative = np.cumsum(self._samples)
        self._extensions += 1
        self.logger.debug(f"Extended {self.family.value} samples to {len(self._samples)} "
                          f"(horizon {self._cumulative[-1]:.2f})")

    def extend_until(self, horizon: float) -> None:
        """Extend the buffer until the cumulative horizon reaches ``horizon``."""
        while self._cumulative[-1] < horizon:
            self.extend_samples()

    def find_event(self, start: float) -> Tuple[int, float]:
        """
        Locate the first unconsumed cumulative value at or after ``start``.

        Returns:
            (index, timestamp) of that event; the cursor is not moved
        """
        while self._cursor >= len(self._cumulative) or self._cumulative[-1] < start:
            self.extend_samples()
        offset = int(np.searchsorted(self._cumulative[self._cursor:], start, side='left'))
        index = self._cursor + offset
        return index, float(self._cumulative[index])

    def next_sample(self) -> float:
        """Return the sample at the cursor and advance the cursor."""
        while self._cursor >= len(self._samples):
            self.extend_samples()
        value = float(self._samples[self._cursor])
        self._cursor += 1
        return value

    def consume_until(self, index: int) -> None:
        """Move the cursor forward to ``index``; it never moves back."""
        if index > self._cursor:
            self._cursor = min(index, len(self._samples))

    def get_mean(self) -> float:
        """Mean of the samples consumed so far, 0.0 if none."""
        if self._cursor == 0:
            return 0.0
        return float(np.mean(self._samples[:self._cursor]))

    def get_mle_mean(self) -> float:
        """Posterior mean estimate combining the priors with consumed samples."""
        consumed = float(np.sum(self._samples[:self._cursor]))
        return (self.scale_prior + consumed) / (self.shape_prior + self._cursor + 1)

    def get_likelihood_prior(self) -> float:
        return self.likelihood_prior

    def get_pke_mean(self) -> float:
        return self.shape_prior / self.scale_prior

    def vary_distribution(self, scale: float, shape: float) -> None:
        """Switch parameters and regenerate the buffer from scratch."""
        self.scale = scale
        self.shape = shape
        self._extensions = 0
        self._cursor = 0
        self._samples = self._generate(self.sample_size, 0.0)
        self._cumulative = np.cumsum(self._samples)


class PeriodicalSignal:
    """Square wave alternating between an upper and a lower bound."""

    def __init__(self, period: float, upper_bound: float, lower_bound: float,
                 portion: float = 0.5, direction: bool = True):
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.period = period
        self.upper_bound = upper_bound
        self.lower_bound = lower_bound
        self.portion = portion
        self.direction = direction

    def get_current_signal(self, current_time: float) -> float:
        """Bound in effect at ``current_time``; the first portion of each period is 'high'."""
        if current_time < 0.0:
            return 0.0
        in_first_portion = current_time % self.period <= self.period * self.portion
        if in_first_portion == self.direction:
            return self.upper_bound
        return self.lower_bound


class PeriodicalDistributionGenerator(DistributionGenerator):
    """
    Generator whose scale follows a PeriodicalSignal over simulated time.

    Each interval is drawn with the scale in effect at the time the previous
    interval ended, so bursts of short intervals alternate with calm phases.
    """

    def __init__(self, family: DistributionFamily, scale: float, shape: float,
                 signal: PeriodicalSignal, **kwargs):
        self.signal = signal
        super().__init__(family, scale, shape, **kwargs)

    def _generate(self, size: int, current_time: float) -> np.ndarray:
        samples = np.empty(size)
        for i in range(size):
            scale = self.signal.get_current_signal(current_time)
            samples[i] = self._draw(scale, self.shape, 1)[0]
            current_time += samples[i]
        return samples
