"""
Multivariate normal emission distribution.

Densities are evaluated through the Cholesky factor of the covariance, which
is recomputed whenever the parameters change. A covariance without a Cholesky
factor is rejected with NonPositiveDefiniteError.
"""

from typing import Any, Optional

import numpy as np
from scipy.linalg import solve_triangular

from .base import EmissionDistribution, normalize_weights, get_random_state
from .normal import NormalOptions, weighted_correction
from ..exceptions import (
    DimensionMismatchError,
    InvalidConfigurationError,
    NonPositiveDefiniteError
)


class MultivariateNormalDistribution(EmissionDistribution):
    """Gaussian emission over fixed-length observation vectors."""

    def __init__(self, mean: Any, covariance: Any):
        mean = np.atleast_1d(np.array(mean, dtype=float))
        covariance = np.atleast_2d(np.array(covariance, dtype=float))

        if mean.ndim != 1 or mean.size == 0:
            raise InvalidConfigurationError("Mean must be a non-empty vector")
        if covariance.shape != (mean.size, mean.size):
            raise DimensionMismatchError(
                f"Covariance shape {covariance.shape} does not match mean of length {mean.size}"
            )

        self._set_parameters(mean, covariance)

    @classmethod
    def standard(cls, dimension: int) -> 'MultivariateNormalDistribution':
        """Zero mean, identity covariance."""
        if dimension < 1:
            raise InvalidConfigurationError(f"Dimension must be positive, got {dimension}")
        return cls(np.zeros(dimension), np.eye(dimension))

    def _set_parameters(self, mean: np.ndarray, covariance: np.ndarray) -> None:
        if not np.allclose(covariance, covariance.T):
            raise NonPositiveDefiniteError("Covariance matrix is not symmetric")
        try:
            chol = np.linalg.cholesky(covariance)
        except np.linalg.LinAlgError:
            raise NonPositiveDefiniteError(
                "Covariance matrix is not positive definite; "
                "consider a regularization value"
            )

        self._mean = mean
        self._covariance = covariance
        self._chol = chol
        self._log_det = 2.0 * np.sum(np.log(np.diag(chol)))

    @property
    def dimension(self) -> int:
        return self._mean.size

    @property
    def mean(self) -> np.ndarray:
        return self._mean.copy()

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance.copy()

    def log_pdf(self, observations: Any) -> np.ndarray:
        x = self._as_observations(observations)
        z = solve_triangular(self._chol, (x - self._mean).T, lower=True)
        mahalanobis = np.sum(z ** 2, axis=0)
        return -0.5 * (self.dimension * np.log(2 * np.pi) + self._log_det + mahalanobis)

    def fit(self, observations: Any, weights: Optional[np.ndarray] = None,
            options: Optional[NormalOptions] = None) -> None:
        x = self._as_observations(observations)
        w = normalize_weights(weights, x.shape[0])
        options = options or NormalOptions()

        mean = w @ x
        centered = x - mean
        covariance = (centered * w[:, None]).T @ centered / weighted_correction(w)

        if options.diagonal:
            covariance = np.diag(np.diag(covariance))
        if options.regularization:
            covariance = covariance + options.regularization * np.eye(self.dimension)

        # Symmetrize away rounding noise before factorizing
        covariance = 0.5 * (covariance + covariance.T)
        self._set_parameters(mean, covariance)

    def sample(self, size: int = 1, random_state: Optional[Any] = None) -> np.ndarray:
        rng = get_random_state(random_state)
        z = rng.standard_normal((size, self.dimension))
        return self._mean + z @ self._chol.T

    def __repr__(self) -> str:
        return f"MultivariateNormalDistribution(dimension={self.dimension})"
