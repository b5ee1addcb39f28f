"""
Baum-Welch (expectation-maximization) learning for hidden Markov models.

Trains a single HiddenMarkovModel in place from a batch of variable-length
observation sequences. All expected counts are accumulated in the log domain.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import logsumexp

from ..config import get_config
from ..exceptions import InvalidConfigurationError, UnsupportedLearningModeError
from ..hmm import algorithms
from ..hmm.model import HiddenMarkovModel
from ..logger import get_logger
from ..observations import as_sequences

logger = get_logger(__name__)


class LearningStatus(Enum):
    """Progress of a learning run."""
    NOT_STARTED = 'not_started'
    ITERATING = 'iterating'
    CONVERGED = 'converged'
    MAX_ITERATIONS_REACHED = 'max_iterations_reached'


class BaumWelchLearning:
    """
    Batch Baum-Welch learner bound to one model.

    Each iteration runs Forward/Backward on every sequence, re-estimates the
    initial vector and the transition matrix from the expected counts, and
    refits every state's emission distribution on all observations weighted
    by the state posteriors.

    Training stops when the average log-likelihood changes by at most
    `tolerance` (if positive), after `iterations` re-estimations (if
    positive), or as soon as the likelihood stops being finite.
    """

    def __init__(self, model: HiddenMarkovModel,
                 tolerance: Optional[float] = None,
                 iterations: Optional[int] = None,
                 fitting_options: Optional[Any] = None):
        """
        Initialize the learner.

        Args:
            model: Model trained in place
            tolerance: Convergence threshold on the average log-likelihood
                (default: learning.tolerance configuration value)
            iterations: Maximum number of re-estimations, 0 for unbounded
                (default: learning.iterations configuration value)
            fitting_options: Options forwarded unchanged to every emission fit

        Raises:
            InvalidConfigurationError: If both stopping criteria are disabled
                or either is negative
        """
        if tolerance is None:
            tolerance = get_config('learning', 'tolerance')
        if iterations is None:
            iterations = get_config('learning', 'iterations')

        if tolerance < 0 or iterations < 0:
            raise InvalidConfigurationError(
                f"Tolerance and iterations must be non-negative, got {tolerance} and {iterations}"
            )
        if tolerance == 0 and iterations == 0:
            raise InvalidConfigurationError(
                "Either a positive tolerance or a positive number of iterations is required"
            )

        self.model = model
        self.tolerance = float(tolerance)
        self.iterations = int(iterations)
        self.fitting_options = fitting_options

        self.status = LearningStatus.NOT_STARTED
        self.current_iteration = 0
        self.history: List[float] = []
        self.improvement_history: List[float] = []

        logger.debug(f"BaumWelchLearning initialized: tolerance={self.tolerance}, "
                     f"iterations={self.iterations}")

    def run(self, sequences: Sequence[Any]) -> float:
        """
        Train the model until a stopping criterion is met.

        Args:
            sequences: Batch of observation sequences

        Returns:
            Average log-likelihood of the sequences under the model as it was
            at the final convergence check. -inf when the model cannot
            explain the data at all.

        Raises:
            InvalidSequenceError: If the batch or a sequence is empty
            FittingError: If an emission distribution cannot be refitted
        """
        observations = as_sequences(sequences, self.model.dimension)

        self.status = LearningStatus.ITERATING
        self.current_iteration = 0
        self.history = []
        self.improvement_history = []

        logger.info(f"Starting Baum-Welch training with {len(observations)} sequences, "
                    f"{self.model.n_states} states")

        previous = -np.inf
        while True:
            current, statistics = self._expectation(observations)
            self._record(current, previous)

            if self._has_converged(previous, current):
                break

            self._maximization(observations, *statistics)
            self.current_iteration += 1
            previous = current

        logger.info(f"Baum-Welch finished: status={self.status.value}, "
                    f"iterations={self.current_iteration}, average log-likelihood={current:.6f}")

        return current

    def run_epoch(self, sequences: Sequence[Any]) -> float:
        """
        Perform exactly one expectation and one maximization step.

        Args:
            sequences: Batch of observation sequences

        Returns:
            Average log-likelihood before the update
        """
        observations = as_sequences(sequences, self.model.dimension)
        previous = self.history[-1] if self.history else -np.inf

        current, statistics = self._expectation(observations)
        self._record(current, previous)

        if np.isfinite(current):
            self._maximization(observations, *statistics)
            self.current_iteration += 1

        return current

    def run_sample(self, observation: Any) -> float:
        """Online learning is not available for Baum-Welch."""
        raise UnsupportedLearningModeError(
            "Baum-Welch learning only supports batch training; use run() instead"
        )

    def _record(self, current: float, previous: float) -> None:
        self.history.append(current)

        if np.isfinite(previous) and np.isfinite(current):
            improvement = current - previous
            self.improvement_history.append(improvement)

            threshold = get_config('learning', 'decrease_warning_threshold')
            if improvement < -threshold:
                logger.warning(f"Log-likelihood decreased by {-improvement:.6f} "
                               f"at iteration {self.current_iteration}")

        logger.debug(f"Iteration {self.current_iteration}: average log-likelihood={current:.6f}")

    def _has_converged(self, previous: float, current: float) -> bool:
        if not np.isfinite(current):
            logger.warning("Average log-likelihood is not finite; stopping training")
            self.status = LearningStatus.CONVERGED
            return True

        if self.tolerance > 0 and abs(previous - current) <= self.tolerance:
            self.status = LearningStatus.CONVERGED
            return True

        if self.iterations > 0 and self.current_iteration >= self.iterations:
            self.status = LearningStatus.MAX_ITERATIONS_REACHED
            return True

        return False

    def _expectation(self, observations: List[np.ndarray]) -> Tuple[float, Tuple]:
        """
        Forward/Backward over the batch.

        Returns:
            Tuple of (average log-likelihood, (gammas, xi_totals, gamma_totals))
            where xi_totals[k] and gamma_totals[k] are the log expected
            transition counts and log expected departures of sequence k.
        """
        model = self.model
        log_a = model.transitions
        log_pi = model.probabilities
        n_states = model.n_states

        log_likelihoods = []
        gammas = []
        xi_totals = []
        gamma_totals = []

        for obs in observations:
            log_b = algorithms.emission_log_likelihoods(model.emissions, obs)
            alpha, log_likelihood = algorithms.log_forward(log_a, log_pi, log_b)
            beta = algorithms.log_backward(log_a, log_b)

            gamma = algorithms.log_state_posteriors(alpha, beta)
            gammas.append(gamma)
            log_likelihoods.append(log_likelihood)

            if obs.shape[0] > 1:
                xi = algorithms.log_transition_posteriors(alpha, beta, log_a, log_b)
                xi_totals.append(logsumexp(xi, axis=0))
                gamma_totals.append(logsumexp(gamma[:-1], axis=0))
            else:
                xi_totals.append(np.full((n_states, n_states), -np.inf))
                gamma_totals.append(np.full(n_states, -np.inf))

        average = float(np.mean(log_likelihoods))
        return average, (gammas, xi_totals, gamma_totals)

    def _maximization(self, observations: List[np.ndarray], gammas: List[np.ndarray],
                      xi_totals: List[np.ndarray], gamma_totals: List[np.ndarray]) -> None:
        model = self.model
        n_sequences = len(observations)

        # Initial state probabilities
        log_pi = logsumexp(np.vstack([g[0] for g in gammas]), axis=0) - np.log(n_sequences)

        # Transition probabilities; states never left keep their previous row
        numerator = logsumexp(np.stack(xi_totals), axis=0)
        denominator = logsumexp(np.vstack(gamma_totals), axis=0)

        log_a = model.transitions.copy()
        for i in range(model.n_states):
            if np.isfinite(denominator[i]):
                log_a[i] = numerator[i] - denominator[i]

        model.set_parameters(log_a, log_pi, logarithm=True)

        # Emission distributions
        samples = np.vstack(observations)
        all_gamma = np.vstack(gammas)
        for i, emission in enumerate(model.emissions):
            log_total = logsumexp(all_gamma[:, i])
            if np.isfinite(log_total):
                weights = np.exp(all_gamma[:, i] - log_total)
            else:
                weights = np.zeros(samples.shape[0])
            emission.fit(samples, weights, self.fitting_options)

    def get_training_stats(self) -> Dict[str, Any]:
        """
        Summary of the last training run.

        Returns:
            Dictionary with training statistics:
            - 'status': LearningStatus value
            - 'converged': Whether the tolerance criterion was met
            - 'iterations': Number of re-estimations performed
            - 'final_log_likelihood': Last average log-likelihood
            - 'log_likelihood_history': Average log-likelihood per iteration
            - 'improvement_history': Change of the average log-likelihood
        """
        return {
            'status': self.status.value,
            'converged': self.status == LearningStatus.CONVERGED,
            'iterations': self.current_iteration,
            'final_log_likelihood': self.history[-1] if self.history else None,
            'log_likelihood_history': list(self.history),
            'improvement_history': list(self.improvement_history)
        }
