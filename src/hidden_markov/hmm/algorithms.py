"""
Forward, Backward and Viterbi recursions in the log domain.

All functions work on precomputed log-emission matrices so that they are
independent of the emission distribution type:

    log_emissions[t, i] = log b_i(o_t)

Sums of probabilities are computed with scipy's logsumexp, which subtracts
the running maximum and returns -inf (not NaN) for all -inf inputs.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy.special import logsumexp


def emission_log_likelihoods(emissions: Sequence, observations: np.ndarray) -> np.ndarray:
    """
    Evaluate every state's emission log-density on a sequence.

    Args:
        emissions: One emission distribution per state
        observations: Normalized sequence [T, dimension]

    Returns:
        log_emissions: [T, n_states]
    """
    return np.column_stack([dist.log_pdf(observations) for dist in emissions])


def log_forward(log_transitions: np.ndarray, log_initial: np.ndarray,
                log_emissions: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Forward algorithm.

    Args:
        log_transitions: Log transition matrix [N, N]
        log_initial: Log initial-state vector [N]
        log_emissions: Log emission densities [T, N]

    Returns:
        Tuple of:
        - alpha: Log forward variables [T, N]
        - log_likelihood: log P(O | model)
    """
    T, n_states = log_emissions.shape
    alpha = np.empty((T, n_states))

    alpha[0] = log_initial + log_emissions[0]
    for t in range(1, T):
        alpha[t] = log_emissions[t] + logsumexp(alpha[t - 1][:, None] + log_transitions, axis=0)

    return alpha, float(logsumexp(alpha[T - 1]))


def log_backward(log_transitions: np.ndarray, log_emissions: np.ndarray) -> np.ndarray:
    """
    Backward algorithm.

    Args:
        log_transitions: Log transition matrix [N, N]
        log_emissions: Log emission densities [T, N]

    Returns:
        beta: Log backward variables [T, N] with beta[T-1] = 0
    """
    T, n_states = log_emissions.shape
    beta = np.empty((T, n_states))

    beta[T - 1] = 0.0
    for t in range(T - 2, -1, -1):
        beta[t] = logsumexp(log_transitions + (log_emissions[t + 1] + beta[t + 1])[None, :], axis=1)

    return beta


def viterbi(log_transitions: np.ndarray, log_initial: np.ndarray,
            log_emissions: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Most likely state path by max-product dynamic programming.

    Args:
        log_transitions: Log transition matrix [N, N]
        log_initial: Log initial-state vector [N]
        log_emissions: Log emission densities [T, N]

    Returns:
        Tuple of:
        - path: State indices [T]
        - log_probability: Log joint probability of the path and the sequence
    """
    T, n_states = log_emissions.shape
    delta = np.empty((T, n_states))
    backpointers = np.zeros((T, n_states), dtype=int)

    delta[0] = log_initial + log_emissions[0]
    for t in range(1, T):
        candidates = delta[t - 1][:, None] + log_transitions
        backpointers[t] = np.argmax(candidates, axis=0)
        delta[t] = candidates[backpointers[t], np.arange(n_states)] + log_emissions[t]

    path = np.empty(T, dtype=int)
    path[T - 1] = int(np.argmax(delta[T - 1]))
    for t in range(T - 1, 0, -1):
        path[t - 1] = backpointers[t, path[t]]

    return path, float(delta[T - 1, path[T - 1]])


def log_state_posteriors(alpha: np.ndarray, beta: np.ndarray) -> np.ndarray:
    """
    Per-time-step normalized log state posteriors (gamma).

    Time steps whose normalizer is -inf are left as -inf.
    """
    gamma = alpha + beta
    normalizer = logsumexp(gamma, axis=1, keepdims=True)
    with np.errstate(invalid='ignore'):
        return np.where(np.isfinite(normalizer), gamma - normalizer, -np.inf)


def log_transition_posteriors(alpha: np.ndarray, beta: np.ndarray,
                              log_transitions: np.ndarray,
                              log_emissions: np.ndarray) -> np.ndarray:
    """
    Per-time-step normalized log transition posteriors (xi).

    xi[t, i, j] = alpha[t, i] + A[i, j] + log b_j(o_{t+1}) + beta[t+1, j]

    Returns:
        xi: [T-1, N, N]; steps whose normalizer is -inf are left as -inf
    """
    xi = (alpha[:-1, :, None]
          + log_transitions[None, :, :]
          + (log_emissions[1:] + beta[1:])[:, None, :])

    normalizer = logsumexp(xi, axis=(1, 2), keepdims=True)
    with np.errstate(invalid='ignore'):
        return np.where(np.isfinite(normalizer), xi - normalizer, -np.inf)
