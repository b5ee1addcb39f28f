"""
Hidden Markov Model with arbitrary per-state emission distributions.

Transition and initial-state parameters are stored as log-probabilities and
every recursion runs in the log domain. Linear values only appear at the
reporting boundary (evaluate, decode, posterior).
"""

from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import logsumexp

from . import algorithms
from .topology import Ergodic, Topology
from ..config import get_config
from ..distributions.base import EmissionDistribution, get_random_state
from ..distributions.categorical import CategoricalDistribution
from ..distributions.mixture import Mixture
from ..exceptions import (
    DimensionMismatchError,
    InvalidConfigurationError,
    InvalidSequenceError
)
from ..logger import get_logger
from ..observations import as_sequence

logger = get_logger(__name__)


class HiddenMarkovModel:
    """
    Hidden Markov Model over sequences of scalar or vector observations.

    The model holds:
    - a log transition matrix, transitions[i, j] = log P(s_{t+1}=j | s_t=i)
    - a log initial-state vector
    - one emission distribution per state, all of the same dimension

    Rows of the transition matrix either sum to one or are entirely -inf
    (an unreachable state); no renormalization ever happens on construction.
    """

    def __init__(self, transitions: Any,
                 emissions: Union[EmissionDistribution, Sequence[EmissionDistribution]],
                 initial: Any, logarithm: bool = False, tag: Optional[str] = None):
        """
        Initialize the model from explicit parameters.

        Args:
            transitions: Transition matrix [n_states, n_states]
            emissions: One distribution per state, or a single prototype that
                is cloned for every state
            initial: Initial-state probabilities [n_states]
            logarithm: Whether transitions and initial are already
                log-probabilities (stored as given) or probabilities
            tag: Optional free-form label

        Raises:
            InvalidConfigurationError: If shapes are inconsistent
            DimensionMismatchError: If emission dimensions differ
        """
        log_transitions, log_initial = self._to_log_parameters(transitions, initial, logarithm)
        n_states = log_initial.shape[0]

        if isinstance(emissions, EmissionDistribution):
            emissions = [emissions.clone() for _ in range(n_states)]
        else:
            emissions = list(emissions)

        if len(emissions) != n_states:
            raise InvalidConfigurationError(
                f"Got {len(emissions)} emission distributions for {n_states} states"
            )
        if not all(isinstance(e, EmissionDistribution) for e in emissions):
            raise InvalidConfigurationError("Emissions must be EmissionDistribution instances")

        dimensions = {e.dimension for e in emissions}
        if len(dimensions) != 1:
            raise DimensionMismatchError(f"Emission distributions have different dimensions: {dimensions}")

        self._transitions = log_transitions
        self._probabilities = log_initial
        self._emissions = emissions
        self.tag = tag

        logger.debug(f"Initialized HiddenMarkovModel with {n_states} states, "
                     f"dimension {self.dimension}")

    @staticmethod
    def _to_log_parameters(transitions: Any, initial: Any,
                           logarithm: bool) -> Tuple[np.ndarray, np.ndarray]:
        transitions = np.array(transitions, dtype=float)
        initial = np.array(initial, dtype=float).reshape(-1)

        if initial.shape[0] < 1:
            raise InvalidConfigurationError("Model must have at least one state")
        if transitions.shape != (initial.shape[0], initial.shape[0]):
            raise InvalidConfigurationError(
                f"Transition matrix shape {transitions.shape} doesn't match "
                f"expected ({initial.shape[0]}, {initial.shape[0]})"
            )

        if not logarithm:
            if np.any(transitions < 0) or np.any(initial < 0):
                raise InvalidConfigurationError("Probabilities must be non-negative")
            with np.errstate(divide='ignore'):
                transitions = np.log(transitions)
                initial = np.log(initial)

        if np.any(np.isnan(transitions)) or np.any(np.isnan(initial)):
            raise InvalidConfigurationError("Model parameters contain NaN")

        return transitions, initial

    @classmethod
    def from_topology(cls, topology: Topology, emission: EmissionDistribution,
                      tag: Optional[str] = None) -> 'HiddenMarkovModel':
        """
        Create a model whose states all start from a clone of `emission`.

        Args:
            topology: Transition structure
            emission: Prototype distribution, deep-cloned per state
            tag: Optional free-form label

        Returns:
            New HiddenMarkovModel
        """
        transitions, initial = topology.create(logarithm=True)
        emissions = [emission.clone() for _ in range(topology.n_states)]
        return cls(transitions, emissions, initial, logarithm=True, tag=tag)

    @classmethod
    def create_discrete(cls, topology_or_states: Union[Topology, int],
                        symbols: int) -> 'HiddenMarkovModel':
        """
        Create a model with uniform categorical emissions.

        Args:
            topology_or_states: Topology, or a state count for an ergodic one
            symbols: Number of observation symbols

        Returns:
            New HiddenMarkovModel
        """
        if isinstance(topology_or_states, Topology):
            topology = topology_or_states
        else:
            topology = Ergodic(topology_or_states)
        return cls.from_topology(topology, CategoricalDistribution.uniform(symbols))

    @property
    def n_states(self) -> int:
        return self._probabilities.shape[0]

    @property
    def dimension(self) -> int:
        return self._emissions[0].dimension

    @property
    def transitions(self) -> np.ndarray:
        """Log transition matrix [n_states, n_states]."""
        return self._transitions

    @property
    def probabilities(self) -> np.ndarray:
        """Log initial-state probabilities [n_states]."""
        return self._probabilities

    @property
    def emissions(self) -> List[EmissionDistribution]:
        return self._emissions

    def set_parameters(self, transitions: np.ndarray, initial: np.ndarray,
                       logarithm: bool = True) -> None:
        """
        Replace transition and initial-state parameters.

        Args:
            transitions: Transition matrix [n_states, n_states]
            initial: Initial-state vector [n_states]
            logarithm: Whether the arrays are log-probabilities

        Raises:
            InvalidConfigurationError: If shapes don't match the model
        """
        log_transitions, log_initial = self._to_log_parameters(transitions, initial, logarithm)
        if log_initial.shape[0] != self.n_states:
            raise InvalidConfigurationError(
                f"Initial vector has {log_initial.shape[0]} entries for {self.n_states} states"
            )
        self._transitions = log_transitions
        self._probabilities = log_initial

    def get_parameters(self) -> Tuple[np.ndarray, np.ndarray, List[EmissionDistribution]]:
        """
        Get copies of the model parameters.

        Returns:
            Tuple of (log initial, log transitions, cloned emissions)
        """
        return (self._probabilities.copy(), self._transitions.copy(),
                [e.clone() for e in self._emissions])

    def clone(self) -> 'HiddenMarkovModel':
        """Deep copy sharing no parameters with this model."""
        initial, transitions, emissions = self.get_parameters()
        return HiddenMarkovModel(transitions, emissions, initial, logarithm=True, tag=self.tag)

    def validate(self, tolerance: Optional[float] = None) -> bool:
        """
        Validate that the parameters satisfy stochastic properties.

        Args:
            tolerance: Allowed deviation of a row sum from one (defaults to
                the numerics.stochastic_tolerance configuration value)

        Returns:
            bool: True if all parameters are valid

        Raises:
            InvalidConfigurationError: If the initial vector is not normalized
                or a transition row is neither normalized nor entirely -inf
        """
        if tolerance is None:
            tolerance = get_config('numerics', 'stochastic_tolerance')

        initial_sum = float(np.exp(logsumexp(self._probabilities)))
        if abs(initial_sum - 1.0) > tolerance:
            raise InvalidConfigurationError(
                f"Initial probabilities sum to {initial_sum}, expected 1.0"
            )

        for i, row in enumerate(self._transitions):
            if np.all(np.isneginf(row)):
                continue
            row_sum = float(np.exp(logsumexp(row)))
            if abs(row_sum - 1.0) > tolerance:
                raise InvalidConfigurationError(
                    f"Transition row {i} sums to {row_sum}, expected 1.0"
                )

        logger.debug("All stochastic matrix properties validated successfully")
        return True

    def _prepare(self, sequence: Any) -> Tuple[np.ndarray, np.ndarray]:
        observations = as_sequence(sequence, self.dimension)
        return observations, algorithms.emission_log_likelihoods(self._emissions, observations)

    def log_emissions(self, sequence: Any) -> np.ndarray:
        """Log emission densities of each observation under each state [T, n_states]."""
        return self._prepare(sequence)[1]

    def log_forward(self, sequence: Any) -> Tuple[np.ndarray, float]:
        """
        Forward algorithm on a sequence.

        Returns:
            Tuple of (alpha [T, n_states], log-likelihood)
        """
        _, log_b = self._prepare(sequence)
        return algorithms.log_forward(self._transitions, self._probabilities, log_b)

    def log_backward(self, sequence: Any) -> np.ndarray:
        """Backward algorithm on a sequence; returns beta [T, n_states]."""
        _, log_b = self._prepare(sequence)
        return algorithms.log_backward(self._transitions, log_b)

    def evaluate(self, sequence: Any, logarithm: bool = False) -> float:
        """
        Likelihood of a sequence summed over all state paths.

        Args:
            sequence: Observation sequence
            logarithm: Return the log-likelihood instead

        Returns:
            P(sequence | model), or its logarithm. Values above one are
            legitimate for continuous densities.
        """
        _, log_likelihood = self.log_forward(sequence)
        return log_likelihood if logarithm else float(np.exp(log_likelihood))

    def decode(self, sequence: Any, logarithm: bool = False) -> Tuple[np.ndarray, float]:
        """
        Most likely state path (Viterbi).

        Args:
            sequence: Observation sequence
            logarithm: Return the log path probability instead

        Returns:
            Tuple of:
            - path: State indices [T]
            - probability: Joint probability of the single best path and
              the sequence (not the sequence likelihood)
        """
        _, log_b = self._prepare(sequence)
        path, log_probability = algorithms.viterbi(self._transitions, self._probabilities, log_b)

        logger.debug(f"Decoded {len(path)} observations: log path probability = {log_probability:.6f}")

        return path, log_probability if logarithm else float(np.exp(log_probability))

    def posterior(self, sequence: Any) -> np.ndarray:
        """
        State posterior probabilities P(s_t = i | sequence).

        Returns:
            Array [T, n_states]; all zeros when the sequence is impossible
        """
        _, log_b = self._prepare(sequence)
        alpha, log_likelihood = algorithms.log_forward(self._transitions, self._probabilities, log_b)
        if not np.isfinite(log_likelihood):
            return np.zeros_like(alpha)
        beta = algorithms.log_backward(self._transitions, log_b)
        return np.exp(alpha + beta - log_likelihood)

    def predict(self, prefix: Any) -> Tuple[Any, float, Mixture]:
        """
        Predict the observation that follows a prefix.

        The last forward vector is propagated one step through the
        transition matrix; the resulting next-state distribution weights a
        mixture of the state emissions, whose mode is the point prediction.

        Args:
            prefix: Observed sequence

        Returns:
            Tuple of:
            - next observation (an int symbol for discrete emissions, a float
              for scalar observations, a vector otherwise)
            - log-likelihood of the prefix extended with the prediction
            - predictive mixture over the next observation

        Raises:
            InvalidSequenceError: If the prefix is impossible under the model
        """
        observations = as_sequence(prefix, self.dimension)
        mixture = self._next_observation_mixture(observations)

        value = mixture.mode
        if self.dimension == 1:
            value = int(value[0]) if mixture.is_discrete else float(value[0])

        extended = np.vstack([observations, np.reshape(value, (1, self.dimension))])
        log_likelihood = self.evaluate(extended, logarithm=True)

        return value, log_likelihood, mixture

    def _next_observation_mixture(self, observations: np.ndarray) -> Mixture:
        log_b = algorithms.emission_log_likelihoods(self._emissions, observations)
        alpha, log_likelihood = algorithms.log_forward(self._transitions, self._probabilities, log_b)

        if not np.isfinite(log_likelihood):
            raise InvalidSequenceError("Prefix has zero likelihood under the model")

        next_states = logsumexp(alpha[-1][:, None] - log_likelihood + self._transitions, axis=0)
        normalizer = logsumexp(next_states)
        if not np.isfinite(normalizer):
            raise InvalidSequenceError("Prefix ends in states without outgoing transitions")

        coefficients = np.exp(next_states - normalizer)
        return Mixture(coefficients, [e.clone() for e in self._emissions])

    def predict_many(self, prefix: Any, horizon: int) -> Tuple[np.ndarray, float]:
        """
        Predict several future observations.

        Each point prediction is appended to the prefix as if it had been
        observed. This is a greedy heuristic, not the jointly most likely
        continuation.

        Args:
            prefix: Observed sequence
            horizon: Number of observations to predict

        Returns:
            Tuple of (predictions, log-likelihood of the fully extended sequence)
        """
        if horizon < 1:
            raise InvalidConfigurationError(f"Prediction horizon must be positive, got {horizon}")

        observations = as_sequence(prefix, self.dimension)
        predictions = []
        log_likelihood = -np.inf

        for _ in range(horizon):
            value, log_likelihood, _ = self.predict(observations)
            predictions.append(value)
            observations = np.vstack([observations, np.reshape(value, (1, self.dimension))])

        return np.array(predictions), log_likelihood

    def generate(self, length: int, random_state: Optional[Any] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Sample a state path and the observations it emits.

        Args:
            length: Number of observations
            random_state: Seed or numpy Generator

        Returns:
            Tuple of (observations [length, dimension], path [length])

        Raises:
            InvalidConfigurationError: If the chain reaches a state without
                outgoing transitions
        """
        if length < 1:
            raise InvalidConfigurationError(f"Sequence length must be positive, got {length}")

        rng = get_random_state(random_state)
        observations = np.empty((length, self.dimension))
        path = np.empty(length, dtype=int)

        state = rng.choice(self.n_states, p=self._linear(self._probabilities))
        for t in range(length):
            path[t] = state
            observations[t] = self._emissions[state].sample(1, rng)[0]
            if t + 1 < length:
                row = self._transitions[state]
                if np.all(np.isneginf(row)):
                    raise InvalidConfigurationError(f"State {state} has no outgoing transitions")
                state = rng.choice(self.n_states, p=self._linear(row))

        return observations, path

    @staticmethod
    def _linear(log_probabilities: np.ndarray) -> np.ndarray:
        p = np.exp(log_probabilities - logsumexp(log_probabilities))
        return p / p.sum()

    def __repr__(self) -> str:
        tag = f", tag={self.tag!r}" if self.tag else ""
        return f"HiddenMarkovModel(states={self.n_states}, dimension={self.dimension}{tag})"
