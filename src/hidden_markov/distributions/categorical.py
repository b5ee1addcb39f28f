"""
Categorical (discrete) emission distribution over integer symbols.
"""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .base import EmissionDistribution, normalize_weights, get_random_state
from ..exceptions import FittingError, InvalidConfigurationError


@dataclass
class CategoricalOptions:
    """
    Fitting options for categorical distributions.

    Attributes:
        regularization: Pseudo-count added to every weighted symbol frequency
    """
    regularization: float = 0.0


class CategoricalDistribution(EmissionDistribution):
    """
    Distribution over the symbols 0..K-1.

    Observations that are not integers in range have zero probability.
    """

    is_discrete = True

    def __init__(self, probabilities: Any):
        probabilities = np.array(probabilities, dtype=float).reshape(-1)

        if probabilities.size == 0:
            raise InvalidConfigurationError("Categorical distribution needs at least one symbol")
        if np.any(probabilities < 0) or not np.all(np.isfinite(probabilities)):
            raise InvalidConfigurationError("Symbol probabilities must be finite and non-negative")
        if not np.isclose(probabilities.sum(), 1.0, atol=1e-6):
            raise InvalidConfigurationError(
                f"Symbol probabilities sum to {probabilities.sum()}, expected 1.0"
            )

        self._set_probabilities(probabilities)

    @classmethod
    def uniform(cls, symbols: int) -> 'CategoricalDistribution':
        """Equal probability for each of `symbols` symbols."""
        if symbols < 1:
            raise InvalidConfigurationError(f"Number of symbols must be positive, got {symbols}")
        return cls(np.full(symbols, 1.0 / symbols))

    def _set_probabilities(self, probabilities: np.ndarray) -> None:
        self._probabilities = probabilities
        with np.errstate(divide='ignore'):
            self._log_probabilities = np.log(probabilities)

    @property
    def dimension(self) -> int:
        return 1

    @property
    def symbols(self) -> int:
        return self._probabilities.size

    @property
    def probabilities(self) -> np.ndarray:
        return self._probabilities.copy()

    @property
    def mean(self) -> np.ndarray:
        return np.array([np.dot(np.arange(self.symbols), self._probabilities)])

    @property
    def mode(self) -> np.ndarray:
        return np.array([float(np.argmax(self._probabilities))])

    def _symbol_mask(self, x: np.ndarray) -> np.ndarray:
        return (x == np.floor(x)) & (x >= 0) & (x < self.symbols)

    def log_pdf(self, observations: Any) -> np.ndarray:
        x = self._as_observations(observations)[:, 0]
        valid = self._symbol_mask(x)

        result = np.full(x.shape[0], -np.inf)
        result[valid] = self._log_probabilities[x[valid].astype(int)]
        return result

    def fit(self, observations: Any, weights: Optional[np.ndarray] = None,
            options: Optional[CategoricalOptions] = None) -> None:
        x = self._as_observations(observations)[:, 0]
        w = normalize_weights(weights, x.shape[0])
        regularization = options.regularization if options is not None else 0.0

        valid = self._symbol_mask(x)
        if not np.all(valid[w > 0]):
            raise FittingError(
                f"Observations must be integer symbols in [0, {self.symbols})"
            )

        counts = np.bincount(x[valid].astype(int), weights=w[valid], minlength=self.symbols)
        counts = counts + regularization

        total = counts.sum()
        if total <= 0:
            raise FittingError("No symbol frequency to estimate probabilities from")

        self._set_probabilities(counts / total)

    def sample(self, size: int = 1, random_state: Optional[Any] = None) -> np.ndarray:
        rng = get_random_state(random_state)
        return rng.choice(self.symbols, size=size, p=self._probabilities).astype(float).reshape(-1, 1)

    def __repr__(self) -> str:
        return f"CategoricalDistribution(symbols={self.symbols})"
