"""
Multi-class sequence classification with hidden Markov models.

This module implements a classifier holding one HMM per class. A sequence is
assigned to the class whose model (weighted by its prior) explains it best,
optionally rejected when a threshold model explains it better still.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import logsumexp

from .threshold import compose_threshold_model
from ..config import get_config
from ..distributions.base import EmissionDistribution
from ..exceptions import (
    ClassificationError,
    DimensionMismatchError,
    HiddenMarkovError,
    InvalidConfigurationError
)
from ..hmm.model import HiddenMarkovModel
from ..hmm.topology import Ergodic, Topology
from ..logger import get_logger
from ..observations import as_sequence

logger = get_logger(__name__)

REJECTED = -1


class HiddenMarkovClassifier:
    """
    Sequence classifier with one hidden Markov model per class.

    Classes are 0-indexed. When a threshold model is present, its score
    log P(sequence | threshold) + log(sensitivity) competes with the class
    scores; if it wins, the sequence is rejected with label -1.
    """

    def __init__(self, models: Sequence[HiddenMarkovModel],
                 sensitivity: Optional[float] = None,
                 priors: Optional[Any] = None):
        """
        Initialize the classifier.

        Args:
            models: One model per class
            sensitivity: Positive multiplier on the threshold likelihood;
                larger values reject more sequences (default:
                classifier.sensitivity configuration value)
            priors: Class prior probabilities (default: uniform)

        Raises:
            InvalidConfigurationError: If no models are given or priors are invalid
            DimensionMismatchError: If the models have different dimensions
        """
        models = list(models)
        if len(models) == 0:
            raise InvalidConfigurationError("Classifier needs at least one class model")

        dimensions = {m.dimension for m in models}
        if len(dimensions) != 1:
            raise DimensionMismatchError(f"Class models have different dimensions: {dimensions}")

        self._models = models
        self.threshold: Optional[HiddenMarkovModel] = None
        self.sensitivity = sensitivity if sensitivity is not None else get_config('classifier', 'sensitivity')
        self.priors = priors

        logger.debug(f"HiddenMarkovClassifier initialized: {len(models)} classes, "
                     f"dimension {self.dimension}")

    @classmethod
    def from_topology(cls, classes: int,
                      topology: Union[Topology, Sequence[Topology]],
                      emission: Union[EmissionDistribution, Sequence[EmissionDistribution]],
                      **kwargs) -> 'HiddenMarkovClassifier':
        """
        Create a classifier whose class models start from a topology.

        Args:
            classes: Number of classes
            topology: One topology for all classes, or one per class
            emission: Prototype distribution for all classes, or one per class
            **kwargs: Forwarded to the constructor

        Returns:
            New HiddenMarkovClassifier
        """
        topologies = cls._per_class(topology, classes, Topology, 'topologies')
        emissions = cls._per_class(emission, classes, EmissionDistribution, 'emissions')

        models = [HiddenMarkovModel.from_topology(t, e) for t, e in zip(topologies, emissions)]
        return cls(models, **kwargs)

    @classmethod
    def create_discrete(cls, classes: int, states: Union[int, Sequence[int]],
                        symbols: int, **kwargs) -> 'HiddenMarkovClassifier':
        """
        Create a classifier of ergodic models with uniform categorical emissions.

        Args:
            classes: Number of classes
            states: State count for all classes, or one per class
            symbols: Number of observation symbols
            **kwargs: Forwarded to the constructor

        Returns:
            New HiddenMarkovClassifier
        """
        if isinstance(states, (int, np.integer)):
            states = [states] * classes
        topologies = [Ergodic(n) for n in states]
        if len(topologies) != classes:
            raise InvalidConfigurationError(f"Got {len(topologies)} state counts for {classes} classes")

        models = [HiddenMarkovModel.create_discrete(t, symbols) for t in topologies]
        return cls(models, **kwargs)

    @staticmethod
    def _per_class(value: Any, classes: int, kind: type, label: str) -> List[Any]:
        if classes < 1:
            raise InvalidConfigurationError(f"Number of classes must be positive, got {classes}")
        if isinstance(value, kind):
            return [value] * classes
        value = list(value)
        if len(value) != classes:
            raise InvalidConfigurationError(f"Got {len(value)} {label} for {classes} classes")
        return value

    @property
    def models(self) -> List[HiddenMarkovModel]:
        return self._models

    @property
    def n_classes(self) -> int:
        return len(self._models)

    @property
    def dimension(self) -> int:
        return self._models[0].dimension

    @property
    def sensitivity(self) -> float:
        return self._sensitivity

    @sensitivity.setter
    def sensitivity(self, value: float) -> None:
        if value is None or not value > 0:
            raise InvalidConfigurationError(f"Sensitivity must be positive, got {value}")
        self._sensitivity = float(value)

    @property
    def priors(self) -> np.ndarray:
        return self._priors

    @priors.setter
    def priors(self, value: Optional[Any]) -> None:
        if value is None:
            self._priors = np.full(self.n_classes, 1.0 / self.n_classes)
            return

        value = np.asarray(value, dtype=float).reshape(-1)
        if value.shape[0] != self.n_classes:
            raise InvalidConfigurationError(f"Got {value.shape[0]} priors for {self.n_classes} classes")
        if np.any(value < 0) or not np.isclose(value.sum(), 1.0, atol=1e-6):
            raise InvalidConfigurationError("Class priors must be non-negative and sum to 1")
        self._priors = value

    def update_threshold(self) -> HiddenMarkovModel:
        """
        Rebuild the threshold model from the current class models.

        Returns:
            The new threshold model
        """
        self.threshold = compose_threshold_model(self._models)
        logger.info(f"Threshold model rebuilt with {self.threshold.n_states} states")
        return self.threshold

    def score_sequence(self, sequence: Any, class_index: int) -> float:
        """
        Compute log-likelihood of a sequence under one class model.

        Args:
            sequence: Observation sequence
            class_index: Class to score against

        Returns:
            Log-likelihood score for the sequence

        Raises:
            ClassificationError: If the class index is out of range
        """
        if not 0 <= class_index < self.n_classes:
            raise ClassificationError(
                f"Class index {class_index} out of range. Available classes: 0..{self.n_classes - 1}"
            )
        try:
            log_likelihood = self._models[class_index].evaluate(sequence, logarithm=True)
            logger.debug(f"Scored sequence for class {class_index}: {log_likelihood:.6f}")
            return log_likelihood

        except Exception as e:
            if isinstance(e, HiddenMarkovError):
                raise
            raise ClassificationError(f"Failed to score sequence for class {class_index}: {str(e)}")

    def log_likelihoods(self, sequence: Any) -> np.ndarray:
        """Log-likelihood of a sequence under every class model [n_classes]."""
        observations = as_sequence(sequence, self.dimension)
        return np.array([m.evaluate(observations, logarithm=True) for m in self._models])

    def _scores(self, sequence: Any) -> Tuple[np.ndarray, Optional[float]]:
        observations = as_sequence(sequence, self.dimension)

        with np.errstate(divide='ignore'):
            class_scores = np.log(self._priors) + self.log_likelihoods(observations)

        threshold_score = None
        if self.threshold is not None:
            threshold_score = (self.threshold.evaluate(observations, logarithm=True)
                               + np.log(self._sensitivity))

        return class_scores, threshold_score

    def compute(self, sequence: Any) -> Tuple[int, float]:
        """
        Classify a sequence.

        Args:
            sequence: Observation sequence

        Returns:
            Tuple of:
            - class index, or -1 when the threshold model wins
            - response: posterior probability of the winner among all
              competing scores, 0 when every score is -inf

        Raises:
            ClassificationError: If scoring fails
        """
        try:
            class_scores, threshold_score = self._scores(sequence)
            label, response = self._decide(class_scores, threshold_score)

            logger.debug(f"Prediction: {label} (response: {response:.6f})")
            return label, response

        except Exception as e:
            if isinstance(e, HiddenMarkovError):
                raise
            raise ClassificationError(f"Failed to classify sequence: {str(e)}")

    @staticmethod
    def _decide(class_scores: np.ndarray, threshold_score: Optional[float]) -> Tuple[int, float]:
        best = int(np.argmax(class_scores))
        label, winner = best, class_scores[best]

        all_scores = class_scores
        if threshold_score is not None:
            all_scores = np.append(class_scores, threshold_score)
            if threshold_score > winner:
                label, winner = REJECTED, threshold_score

        log_total = logsumexp(all_scores)
        if not np.isfinite(log_total):
            return label, 0.0
        return label, float(np.exp(winner - log_total))

    def responsibilities(self, sequence: Any) -> np.ndarray:
        """
        Posterior probability of each class given the sequence.

        Returns:
            Array [n_classes]; all zeros when no class can explain the sequence
        """
        class_scores, _ = self._scores(sequence)
        log_total = logsumexp(class_scores)
        if not np.isfinite(log_total):
            return np.zeros(self.n_classes)
        return np.exp(class_scores - log_total)

    def predict_with_confidence(self, sequence: Any) -> Dict[str, Any]:
        """
        Predict a class with confidence scores and ranking for all classes.

        Args:
            sequence: Observation sequence

        Returns:
            Dictionary containing:
            - 'predicted_class': Class index, or -1 when rejected
            - 'confidence': Response of the winner (see compute)
            - 'scores': Log prior plus log-likelihood per class
            - 'threshold_score': Threshold score, or None without threshold model
            - 'probabilities': Posterior per class
            - 'ranking': Class indices sorted by score (highest first)
            - 'rejected': Whether the threshold model won

        Raises:
            ClassificationError: If prediction fails
        """
        try:
            class_scores, threshold_score = self._scores(sequence)
            label, confidence = self._decide(class_scores, threshold_score)

            log_total = logsumexp(class_scores)
            if np.isfinite(log_total):
                probabilities = np.exp(class_scores - log_total)
            else:
                probabilities = np.zeros(self.n_classes)

            ranking = [int(i) for i in np.argsort(-class_scores, kind='stable')]

            result = {
                'predicted_class': label,
                'confidence': confidence,
                'scores': {i: float(s) for i, s in enumerate(class_scores)},
                'threshold_score': None if threshold_score is None else float(threshold_score),
                'probabilities': {i: float(p) for i, p in enumerate(probabilities)},
                'ranking': ranking,
                'rejected': label == REJECTED
            }

            logger.debug(f"Prediction with confidence: {label} (confidence: {confidence:.4f})")

            return result

        except Exception as e:
            if isinstance(e, HiddenMarkovError):
                raise
            raise ClassificationError(f"Failed to predict with confidence: {str(e)}")

    def __repr__(self) -> str:
        return (f"HiddenMarkovClassifier(classes={self.n_classes}, "
                f"threshold={'yes' if self.threshold is not None else 'no'})")
