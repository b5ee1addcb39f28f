"""
Finite mixture of emission distributions.

Used both as an emission model in its own right and as the predictive
distribution returned by HiddenMarkovModel.predict.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import numpy as np
from scipy.special import logsumexp

from .base import EmissionDistribution, normalize_weights, get_random_state
from ..exceptions import DimensionMismatchError, FittingError, InvalidConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


@dataclass
class MixtureOptions:
    """
    Options for the weighted EM that fits a mixture.

    Attributes:
        tolerance: Stop when the weighted log-likelihood changes by at most this
        iterations: Maximum number of EM iterations (0 means unbounded)
        inner_options: Options forwarded to each component's fit
    """
    tolerance: float = 1e-3
    iterations: int = 0
    inner_options: Optional[Any] = None


class Mixture(EmissionDistribution):
    """Weighted sum of component densities."""

    def __init__(self, coefficients: Any, components: Sequence[EmissionDistribution]):
        coefficients = np.array(coefficients, dtype=float).reshape(-1)
        components = list(components)

        if len(components) == 0:
            raise InvalidConfigurationError("Mixture needs at least one component")
        if coefficients.size != len(components):
            raise InvalidConfigurationError(
                f"Got {coefficients.size} coefficients for {len(components)} components"
            )
        if np.any(coefficients < 0) or not np.isclose(coefficients.sum(), 1.0, atol=1e-6):
            raise InvalidConfigurationError("Mixture coefficients must be non-negative and sum to 1")

        dimensions = {c.dimension for c in components}
        if len(dimensions) != 1:
            raise DimensionMismatchError(f"Mixture components have different dimensions: {dimensions}")

        self._coefficients = coefficients
        self._components = components

    @property
    def coefficients(self) -> np.ndarray:
        return self._coefficients.copy()

    @property
    def components(self) -> List[EmissionDistribution]:
        return self._components

    @property
    def dimension(self) -> int:
        return self._components[0].dimension

    @property
    def is_discrete(self) -> bool:
        return all(c.is_discrete for c in self._components)

    def _component_log_pdfs(self, x: np.ndarray) -> np.ndarray:
        """(M, N) matrix of log c_m + log p_m(x_n)."""
        with np.errstate(divide='ignore'):
            log_coefficients = np.log(self._coefficients)
        return np.vstack([
            log_c + component.log_pdf(x)
            for log_c, component in zip(log_coefficients, self._components)
        ])

    def log_pdf(self, observations: Any) -> np.ndarray:
        x = self._as_observations(observations)
        return logsumexp(self._component_log_pdfs(x), axis=0)

    @property
    def mean(self) -> np.ndarray:
        return np.sum([c * comp.mean for c, comp in zip(self._coefficients, self._components)], axis=0)

    @property
    def mode(self) -> np.ndarray:
        """
        Most probable symbol for discrete mixtures, the mean otherwise.
        """
        if not self.is_discrete:
            return self.mean

        symbols = max(getattr(c, 'symbols', 0) for c in self._components)
        if symbols == 0:
            return self.mean
        candidates = np.arange(symbols, dtype=float)
        return np.array([candidates[np.argmax(self.log_pdf(candidates))]])

    def fit(self, observations: Any, weights: Optional[np.ndarray] = None,
            options: Optional[MixtureOptions] = None) -> None:
        """
        Weighted expectation-maximization over the components.

        Components whose responsibility mass vanishes keep their parameters
        and end with a zero coefficient.
        """
        x = self._as_observations(observations)
        w = normalize_weights(weights, x.shape[0])
        options = options or MixtureOptions()

        if options.tolerance <= 0 and options.iterations <= 0:
            raise InvalidConfigurationError(
                "Mixture fitting needs a positive tolerance or a positive iteration count"
            )

        previous = -np.inf
        iteration = 0

        while True:
            iteration += 1

            joint = self._component_log_pdfs(x)
            totals = logsumexp(joint, axis=0)
            responsibilities = np.exp(joint - np.where(np.isfinite(totals), totals, 0.0))

            support = w > 0
            log_likelihood = float(np.sum(w[support] * totals[support]))

            coefficients = responsibilities @ w
            if coefficients.sum() <= 0:
                raise FittingError("No observation has positive density under any mixture component")

            for m, component in enumerate(self._components):
                if coefficients[m] > 0:
                    component.fit(x, w * responsibilities[m], options.inner_options)

            self._coefficients = coefficients / coefficients.sum()

            logger.debug(f"Mixture EM iteration {iteration}: log-likelihood = {log_likelihood:.6f}")

            if options.tolerance > 0 and abs(log_likelihood - previous) <= options.tolerance:
                break
            if options.iterations > 0 and iteration >= options.iterations:
                break
            if not np.isfinite(log_likelihood):
                break
            previous = log_likelihood

    def sample(self, size: int = 1, random_state: Optional[Any] = None) -> np.ndarray:
        rng = get_random_state(random_state)
        choices = rng.choice(len(self._components), size=size, p=self._coefficients)
        samples = np.empty((size, self.dimension))
        for m, component in enumerate(self._components):
            idx = np.flatnonzero(choices == m)
            if idx.size:
                samples[idx] = component.sample(idx.size, rng)
        return samples

    def __repr__(self) -> str:
        return f"Mixture(components={len(self._components)})"
