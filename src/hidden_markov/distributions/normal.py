"""
Univariate normal emission distribution.
"""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from scipy.stats import norm

from .base import EmissionDistribution, normalize_weights, get_random_state
from ..exceptions import FittingError, InvalidConfigurationError


@dataclass
class NormalOptions:
    """
    Fitting options for normal distributions.

    Attributes:
        regularization: Value added to the estimated variance (or to the
            covariance diagonal for the multivariate case)
        diagonal: Restrict multivariate covariance estimates to the diagonal
    """
    regularization: float = 0.0
    diagonal: bool = False


def weighted_correction(weights: np.ndarray) -> float:
    """
    Denominator of the unbiased weighted variance for normalized weights.

    Falls back to 1 (the biased estimate) when all mass sits on one sample.
    """
    denominator = 1.0 - np.sum(weights ** 2)
    if denominator <= 1e-12:
        return 1.0
    return denominator


class NormalDistribution(EmissionDistribution):
    """Gaussian emission over scalar observations."""

    def __init__(self, mean: float = 0.0, std: float = 1.0):
        if not np.isfinite(mean) or not np.isfinite(std) or std <= 0:
            raise InvalidConfigurationError(
                f"Normal distribution needs a finite mean and positive std, got "
                f"mean={mean}, std={std}"
            )
        self._mean = float(mean)
        self._std = float(std)

    @property
    def dimension(self) -> int:
        return 1

    @property
    def mean(self) -> np.ndarray:
        return np.array([self._mean])

    @property
    def std(self) -> float:
        return self._std

    @property
    def variance(self) -> float:
        return self._std ** 2

    def log_pdf(self, observations: Any) -> np.ndarray:
        x = self._as_observations(observations)[:, 0]
        return norm.logpdf(x, loc=self._mean, scale=self._std)

    def fit(self, observations: Any, weights: Optional[np.ndarray] = None,
            options: Optional[NormalOptions] = None) -> None:
        x = self._as_observations(observations)[:, 0]
        w = normalize_weights(weights, x.shape[0])
        regularization = options.regularization if options is not None else 0.0

        mean = float(np.dot(w, x))
        variance = float(np.dot(w, (x - mean) ** 2)) / weighted_correction(w)
        variance += regularization

        if not np.isfinite(variance) or variance <= 0:
            raise FittingError(
                f"Estimated variance {variance} is not positive; "
                f"consider a regularization value"
            )

        self._mean = mean
        self._std = float(np.sqrt(variance))

    def sample(self, size: int = 1, random_state: Optional[Any] = None) -> np.ndarray:
        rng = get_random_state(random_state)
        return rng.normal(self._mean, self._std, size=size).reshape(-1, 1)

    def __repr__(self) -> str:
        return f"NormalDistribution(mean={self._mean:.6g}, std={self._std:.6g})"
