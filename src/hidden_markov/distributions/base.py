"""
Emission distribution capability.

A hidden Markov model owns one emission distribution per state. Any class
implementing this interface can be plugged into the model, the Baum-Welch
learner and the classifier.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

import numpy as np

from ..exceptions import FittingError
from ..observations import as_sequence


class EmissionDistribution(ABC):
    """
    Base class for per-state emission distributions.

    Subclasses evaluate log-densities of observation matrices and re-estimate
    their parameters from weighted samples.
    """

    is_discrete = False

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of a single observation vector."""

    @abstractmethod
    def log_pdf(self, observations: Any) -> np.ndarray:
        """
        Log-density of each observation.

        Args:
            observations: Matrix of shape (N, dimension), or a 1-D array when
                dimension is 1

        Returns:
            Array of N log-densities (-inf where the density is zero)
        """

    def pdf(self, observations: Any) -> np.ndarray:
        """Density of each observation."""
        return np.exp(self.log_pdf(observations))

    @abstractmethod
    def fit(self, observations: Any, weights: Optional[np.ndarray] = None,
            options: Optional[Any] = None) -> None:
        """
        Re-estimate parameters in place from weighted observations.

        Args:
            observations: Matrix of shape (N, dimension)
            weights: Non-negative weights, one per observation. They are
                normalized to sum to one; None means uniform weights.
            options: Distribution specific fitting options

        Raises:
            FittingError: If the weights carry no mass or the estimate is invalid
        """

    @property
    @abstractmethod
    def mean(self) -> np.ndarray:
        """Expected observation."""

    @property
    def mode(self) -> np.ndarray:
        """Most probable observation; defaults to the mean."""
        return self.mean

    @abstractmethod
    def sample(self, size: int = 1, random_state: Optional[Any] = None) -> np.ndarray:
        """Draw `size` observations as a (size, dimension) array."""

    def clone(self) -> 'EmissionDistribution':
        """Deep copy with independent parameters."""
        return copy.deepcopy(self)

    def _as_observations(self, observations: Any) -> np.ndarray:
        return as_sequence(observations, self.dimension)


def normalize_weights(weights: Optional[np.ndarray], n_samples: int) -> np.ndarray:
    """
    Validate and normalize observation weights.

    Args:
        weights: Weights, one per observation, or None for uniform weights
        n_samples: Number of observations

    Returns:
        Weights summing to one

    Raises:
        FittingError: If the weights are malformed or carry no mass
    """
    if n_samples == 0:
        raise FittingError("Cannot fit a distribution to zero observations")

    if weights is None:
        return np.full(n_samples, 1.0 / n_samples)

    weights = np.asarray(weights, dtype=float).reshape(-1)
    if weights.shape[0] != n_samples:
        raise FittingError(
            f"Got {weights.shape[0]} weights for {n_samples} observations"
        )
    if np.any(weights < 0) or not np.all(np.isfinite(weights)):
        raise FittingError("Weights must be finite and non-negative")

    total = weights.sum()
    if total <= 0:
        raise FittingError("Weights sum to zero; no observation supports this distribution")

    return weights / total


def get_random_state(random_state: Optional[Any] = None) -> np.random.Generator:
    """Turn None, a seed or an existing generator into a numpy Generator."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(random_state)
