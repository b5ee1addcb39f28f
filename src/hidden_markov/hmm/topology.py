"""
State topologies for hidden Markov models.

A topology decides which state transitions are allowed and produces the
initial transition matrix and initial-state vector for a new model.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import numpy as np

from ..exceptions import InvalidConfigurationError


def _to_log(values: np.ndarray) -> np.ndarray:
    with np.errstate(divide='ignore'):
        return np.log(values)


class Topology(ABC):
    """Base class for transition structures."""

    @property
    @abstractmethod
    def n_states(self) -> int:
        """Number of hidden states."""

    @abstractmethod
    def create(self, logarithm: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build the initial model matrices.

        Args:
            logarithm: Return log-probabilities instead of probabilities

        Returns:
            Tuple of (transitions [n_states, n_states], initial [n_states])
        """


def _check_states(states: int) -> int:
    if not isinstance(states, (int, np.integer)) or states < 1:
        raise InvalidConfigurationError(f"Number of states must be a positive integer, got {states}")
    return int(states)


def _start_in_first_state(n_states: int) -> np.ndarray:
    initial = np.zeros(n_states)
    initial[0] = 1.0
    return initial


class Ergodic(Topology):
    """
    Fully connected topology: every state can reach every other state.

    Rows are uniform unless `random` is set, in which case each row is a
    random stochastic vector. The chain always starts in the first state.
    """

    def __init__(self, states: int, random: bool = False, random_state: Optional[Any] = None):
        self._n_states = _check_states(states)
        self.random = random
        self.random_state = random_state

    @property
    def n_states(self) -> int:
        return self._n_states

    def create(self, logarithm: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        n = self._n_states

        if self.random:
            rng = np.random.default_rng(self.random_state)
            transitions = rng.random((n, n))
            transitions /= transitions.sum(axis=1, keepdims=True)
        else:
            transitions = np.full((n, n), 1.0 / n)

        initial = _start_in_first_state(n)

        if logarithm:
            return _to_log(transitions), _to_log(initial)
        return transitions, initial

    def __repr__(self) -> str:
        return f"Ergodic(states={self._n_states})"


class Forward(Topology):
    """
    Left-to-right topology.

    State i may only move to states i..i+deepness-1 (clipped at the last
    state). With the default deepness every forward jump is allowed.

    Example:
        Forward(3, deepness=2).create() gives
        [[0.5, 0.5, 0.0],
         [0.0, 0.5, 0.5],
         [0.0, 0.0, 1.0]]
    """

    def __init__(self, states: int, deepness: Optional[int] = None,
                 random: bool = False, random_state: Optional[Any] = None):
        self._n_states = _check_states(states)

        if deepness is None:
            deepness = self._n_states
        if not isinstance(deepness, (int, np.integer)) or deepness < 1:
            raise InvalidConfigurationError(f"Deepness must be a positive integer, got {deepness}")

        self.deepness = min(int(deepness), self._n_states)
        self.random = random
        self.random_state = random_state

    @property
    def n_states(self) -> int:
        return self._n_states

    def create(self, logarithm: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        n = self._n_states
        rng = np.random.default_rng(self.random_state) if self.random else None

        transitions = np.zeros((n, n))
        for i in range(n):
            end = min(i + self.deepness, n)
            if rng is not None:
                row = rng.random(end - i)
                transitions[i, i:end] = row / row.sum()
            else:
                transitions[i, i:end] = 1.0 / (end - i)

        initial = _start_in_first_state(n)

        if logarithm:
            return _to_log(transitions), _to_log(initial)
        return transitions, initial

    def __repr__(self) -> str:
        return f"Forward(states={self._n_states}, deepness={self.deepness})"


class Custom(Topology):
    """
    Caller-supplied transition matrix and initial vector.

    The matrices are shape-checked but never renormalized, so degenerate
    models (for example all-zero transitions) can be built on purpose.
    """

    def __init__(self, transitions: Any, initial: Any, logarithm: bool = False):
        transitions = np.array(transitions, dtype=float)
        initial = np.array(initial, dtype=float).reshape(-1)

        if transitions.ndim != 2 or transitions.shape[0] != transitions.shape[1]:
            raise InvalidConfigurationError(
                f"Transition matrix must be square, got shape {transitions.shape}"
            )
        if transitions.shape[0] < 1:
            raise InvalidConfigurationError("Transition matrix must have at least one state")
        if initial.shape[0] != transitions.shape[0]:
            raise InvalidConfigurationError(
                f"Initial vector has {initial.shape[0]} entries for {transitions.shape[0]} states"
            )

        if logarithm:
            log_transitions, log_initial = transitions, initial
        else:
            if np.any(transitions < 0) or np.any(initial < 0):
                raise InvalidConfigurationError("Probabilities must be non-negative")
            log_transitions, log_initial = _to_log(transitions), _to_log(initial)

        if np.any(np.isnan(log_transitions)) or np.any(np.isnan(log_initial)):
            raise InvalidConfigurationError("Topology matrices contain NaN")

        self._log_transitions = log_transitions
        self._log_initial = log_initial

    @property
    def n_states(self) -> int:
        return self._log_initial.shape[0]

    def create(self, logarithm: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        if logarithm:
            return self._log_transitions.copy(), self._log_initial.copy()
        return np.exp(self._log_transitions), np.exp(self._log_initial)

    def __repr__(self) -> str:
        return f"Custom(states={self.n_states})"
