"""
Training for multi-class hidden Markov classifiers.

This module groups labelled sequences by class, trains each class model with
its own Baum-Welch learner (optionally in parallel threads), and rebuilds the
threshold model when rejection is enabled.
"""

import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed

from .baum_welch import BaumWelchLearning
from ..config import get_config
from ..exceptions import HiddenMarkovError, ModelTrainingError, UnsupportedLearningModeError
from ..infer.classifier import HiddenMarkovClassifier
from ..logger import get_logger
from ..observations import as_sequence

logger = get_logger(__name__)


class HiddenMarkovClassifierLearning:
    """
    Multi-class trainer for HiddenMarkovClassifier.

    Each class model is trained only on the sequences labelled with its class.
    The learner for a class is produced by `algorithm(class_index)`, which
    must return a learner bound to `classifier.models[class_index]`.
    """

    def __init__(self, classifier: HiddenMarkovClassifier,
                 algorithm: Optional[Callable[[int], BaumWelchLearning]] = None,
                 rejection: Optional[bool] = None,
                 empirical_priors: bool = False,
                 n_jobs: Optional[int] = None):
        """
        Initialize the classifier learner.

        Args:
            classifier: Classifier whose models are trained in place
            algorithm: Factory of per-class learners (default: Baum-Welch with
                the learning configuration values)
            rejection: Rebuild the threshold model after training (default:
                classifier.rejection configuration value)
            empirical_priors: Estimate class priors from label frequencies
            n_jobs: Number of classes trained concurrently; 1 trains
                sequentially, -1 uses all cores (default: classifier.n_jobs
                configuration value)
        """
        self.classifier = classifier
        self.algorithm = algorithm or self._default_algorithm
        self.rejection = rejection if rejection is not None else get_config('classifier', 'rejection')
        self.empirical_priors = empirical_priors
        self.n_jobs = n_jobs if n_jobs is not None else get_config('classifier', 'n_jobs')

        # Training statistics
        self.training_stats = {}

        logger.debug(f"HiddenMarkovClassifierLearning initialized: {classifier.n_classes} classes, "
                     f"rejection={self.rejection}, n_jobs={self.n_jobs}")

    def _default_algorithm(self, class_index: int) -> BaumWelchLearning:
        return BaumWelchLearning(self.classifier.models[class_index])

    def group_sequences_by_class(self, inputs: Sequence[Any],
                                 outputs: Sequence[int]) -> Dict[int, List[np.ndarray]]:
        """
        Validate labels and group normalized sequences by class.

        Args:
            inputs: Observation sequences
            outputs: Class label of each sequence

        Returns:
            Dictionary mapping class index to its sequences

        Raises:
            ModelTrainingError: If lengths differ, a label is out of range or
                a class has no sequences
        """
        if len(inputs) != len(outputs):
            raise ModelTrainingError(
                f"Got {len(inputs)} input sequences but {len(outputs)} output labels"
            )
        if len(inputs) == 0:
            raise ModelTrainingError("No training sequences provided")

        n_classes = self.classifier.n_classes
        dimension = self.classifier.dimension
        class_sequences = defaultdict(list)

        for idx, (sequence, label) in enumerate(zip(inputs, outputs)):
            if int(label) != label or not 0 <= label < n_classes:
                raise ModelTrainingError(
                    f"Sequence {idx} has label {label}; expected an integer in [0, {n_classes - 1}]"
                )
            class_sequences[int(label)].append(as_sequence(sequence, dimension))

        missing = [c for c in range(n_classes) if c not in class_sequences]
        if missing:
            raise ModelTrainingError(f"No training sequences for classes: {missing}")

        for class_index in range(n_classes):
            logger.info(f"Class {class_index}: {len(class_sequences[class_index])} sequences")

        return dict(class_sequences)

    def train_class_model(self, class_index: int,
                          sequences: List[np.ndarray]) -> Tuple[float, Dict[str, Any]]:
        """
        Train the model of a single class.

        Args:
            class_index: Class to train
            sequences: Sequences labelled with this class

        Returns:
            Tuple of (average log-likelihood, training metadata)
        """
        learner = self.algorithm(class_index)

        start_time = time.time()
        log_likelihood = learner.run(sequences)
        training_time = time.time() - start_time

        stats = learner.get_training_stats()
        metadata = {
            'class_index': class_index,
            'n_sequences': len(sequences),
            'total_frames': int(sum(len(seq) for seq in sequences)),
            'convergence_iterations': stats['iterations'],
            'final_log_likelihood': log_likelihood,
            'converged': stats['converged'],
            'training_time': training_time,
            'training_stats': stats
        }

        logger.info(f"Training completed for class {class_index}: "
                    f"iterations={stats['iterations']}, log-likelihood={log_likelihood:.6f}, "
                    f"time={training_time:.2f}s")

        return log_likelihood, metadata

    def run(self, inputs: Sequence[Any], outputs: Sequence[int]) -> float:
        """
        Train every class model, then priors and threshold model if enabled.

        Args:
            inputs: Observation sequences
            outputs: Class label of each sequence

        Returns:
            Sum over classes of the average log-likelihood reported by each
            class learner

        Raises:
            ModelTrainingError: If the training data is invalid or training fails
            FittingError: If an emission distribution cannot be refitted
        """
        try:
            class_sequences = self.group_sequences_by_class(inputs, outputs)
            n_classes = self.classifier.n_classes

            logger.info(f"Starting classifier training: {n_classes} classes, "
                        f"{len(inputs)} sequences")

            if self.n_jobs == 1:
                results = [self.train_class_model(c, class_sequences[c]) for c in range(n_classes)]
            else:
                results = Parallel(n_jobs=self.n_jobs, prefer='threads')(
                    delayed(self.train_class_model)(c, class_sequences[c]) for c in range(n_classes)
                )

            if self.empirical_priors:
                counts = np.array([len(class_sequences[c]) for c in range(n_classes)], dtype=float)
                self.classifier.priors = counts / counts.sum()
                logger.info(f"Estimated class priors: {self.classifier.priors}")

            if self.rejection:
                self.classifier.update_threshold()

            total_log_likelihood = float(sum(ll for ll, _ in results))

            self.training_stats = {
                'class_summary': {meta['class_index']: meta for _, meta in results},
                'total_sequences': len(inputs),
                'total_time': sum(meta['training_time'] for _, meta in results),
                'converged_count': sum(1 for _, meta in results if meta['converged']),
                'total_log_likelihood': total_log_likelihood
            }

            logger.info(f"Classifier training completed: total log-likelihood="
                        f"{total_log_likelihood:.6f}, converged "
                        f"{self.training_stats['converged_count']}/{n_classes}")

            return total_log_likelihood

        except Exception as e:
            if isinstance(e, HiddenMarkovError):
                raise
            raise ModelTrainingError(f"Classifier training failed: {str(e)}")

    def compute_error(self, inputs: Sequence[Any], outputs: Sequence[int]) -> float:
        """
        Misclassification rate of the classifier on labelled sequences.

        Rejected sequences (label -1) count as errors.
        """
        if len(inputs) != len(outputs):
            raise ModelTrainingError(
                f"Got {len(inputs)} input sequences but {len(outputs)} output labels"
            )
        if len(inputs) == 0:
            raise ModelTrainingError("No sequences provided")

        errors = sum(1 for seq, label in zip(inputs, outputs)
                     if self.classifier.compute(seq)[0] != label)
        return errors / len(inputs)

    def run_sample(self, observation: Any, output: int) -> float:
        """Online learning is not available for classifier training."""
        raise UnsupportedLearningModeError(
            "Classifier learning only supports batch training; use run() instead"
        )

    def get_training_summary(self) -> Dict[str, Any]:
        """
        Get summary of the last training run.

        Returns:
            Dictionary with per-class metadata and totals
        """
        if not self.training_stats:
            return {'status': 'No training performed yet'}
        return self.training_stats.copy()
