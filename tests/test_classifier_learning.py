"""
Tests for multi-class classifier training.

Covers label validation, per-class Baum-Welch training, class priors,
parallel training, threshold-model rejection and error propagation.
"""

import pytest
import numpy as np

from hidden_markov.config import set_config
from hidden_markov.distributions import MultivariateNormalDistribution, NormalDistribution, NormalOptions
from hidden_markov.exceptions import (
    FittingError,
    ModelTrainingError,
    UnsupportedLearningModeError
)
from hidden_markov.hmm import Custom, Ergodic
from hidden_markov.infer import HiddenMarkovClassifier, REJECTED
from hidden_markov.train import BaumWelchLearning, HiddenMarkovClassifierLearning


def baum_welch_factory(classifier, tolerance, iterations=0):
    """Per-class learner factory bound to the classifier's models."""
    return lambda i: BaumWelchLearning(classifier.models[i], tolerance=tolerance, iterations=iterations)


@pytest.fixture
def discrete_classifier():
    """Two classes of three-state ergodic models over three symbols."""
    return HiddenMarkovClassifier.create_discrete(2, [3, 3], symbols=3)


@pytest.fixture
def rejecting_classifier(discrete_classifier, symbol_sequences):
    """Classifier trained on the symbol sequences with a threshold model."""
    inputs, outputs = symbol_sequences
    learning = HiddenMarkovClassifierLearning(
        discrete_classifier,
        algorithm=baum_welch_factory(discrete_classifier, tolerance=0.001),
        rejection=True
    )
    learning.run(inputs, outputs)
    return discrete_classifier


class TestLabelValidation:
    """Test validation of labelled training data."""

    def test_length_mismatch(self, discrete_classifier, symbol_sequences):
        """Test that inputs and outputs must have the same length."""
        inputs, outputs = symbol_sequences
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(ModelTrainingError, match="output labels"):
            learning.run(inputs, outputs[:-1])

    def test_empty_batch(self, discrete_classifier):
        """Test that training needs sequences."""
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(ModelTrainingError, match="No training sequences"):
            learning.run([], [])

    def test_label_out_of_range(self, discrete_classifier, symbol_sequences):
        """Test that labels must index a class."""
        inputs, outputs = symbol_sequences
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(ModelTrainingError, match="label 2"):
            learning.run(inputs, outputs[:-1] + [2])

    def test_class_without_sequences(self, discrete_classifier, symbol_sequences):
        """Test that every class needs at least one sequence."""
        inputs, _ = symbol_sequences
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(ModelTrainingError, match=r"classes: \[1\]"):
            learning.run(inputs, [0] * len(inputs))

    def test_grouping(self, discrete_classifier, symbol_sequences):
        """Test that sequences are grouped under their labels."""
        inputs, outputs = symbol_sequences
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        groups = learning.group_sequences_by_class(inputs, outputs)

        assert sorted(groups) == [0, 1]
        assert len(groups[0]) == 4
        assert groups[1][0].shape == (4, 1)


class TestMirroredSequences:
    """Test two normal-emission classes trained on mirrored sequences."""

    @pytest.fixture
    def trained(self, mirrored_sequences):
        inputs, outputs = mirrored_sequences
        classifier = HiddenMarkovClassifier.from_topology(2, Ergodic(2), NormalDistribution())
        learning = HiddenMarkovClassifierLearning(
            classifier, algorithm=baum_welch_factory(classifier, tolerance=1e-4))
        log_likelihood = learning.run(inputs, outputs)
        return classifier, learning, log_likelihood

    def test_total_log_likelihood(self, trained):
        """Test the summed per-class log-likelihood after training."""
        _, _, log_likelihood = trained

        assert log_likelihood == pytest.approx(-13.271981026832929, abs=1e-10)

    def test_each_sequence_gets_its_class(self, trained, mirrored_sequences):
        """Test that both training sequences are classified correctly."""
        classifier, _, _ = trained
        inputs, _ = mirrored_sequences

        label1, response1 = classifier.compute(inputs[0])
        label2, response2 = classifier.compute(inputs[1])

        assert label1 == 0
        assert label2 == 1
        assert response1 == pytest.approx(0.99999791320102149, abs=1e-10)
        assert response1 == pytest.approx(response2)

    def test_training_summary(self, trained):
        """Test the statistics recorded for the run."""
        _, learning, log_likelihood = trained

        summary = learning.get_training_summary()

        assert summary['total_sequences'] == 2
        assert summary['converged_count'] == 2
        assert summary['total_log_likelihood'] == log_likelihood
        assert summary['class_summary'][1]['n_sequences'] == 1
        assert summary['class_summary'][0]['total_frames'] == 5

    def test_summary_before_training(self, mirrored_sequences):
        """Test the summary of an untrained learner."""
        classifier = HiddenMarkovClassifier.from_topology(2, Ergodic(2), NormalDistribution())
        learning = HiddenMarkovClassifierLearning(classifier)

        assert learning.get_training_summary() == {'status': 'No training performed yet'}


class TestDegenerateClassifier:
    """Test classifiers whose class models can never produce a sequence."""

    def test_all_zero_topology(self):
        """Test that impossible class models give -inf and a zero response, never NaN."""
        sequences = [
            np.array([[0, 1], [1, 2], [2, 3], [3, 4], [4, 5]], dtype=float),
            np.array([[4, 3], [3, 2], [2, 1], [1, 0], [0, -1]], dtype=float),
        ]
        classifier = HiddenMarkovClassifier.from_topology(
            2, Custom(np.zeros((2, 2)), np.zeros(2)), MultivariateNormalDistribution.standard(2))
        learning = HiddenMarkovClassifierLearning(
            classifier,
            algorithm=lambda i: BaumWelchLearning(classifier.models[i], tolerance=1e-4,
                                                  fitting_options=NormalOptions(diagonal=True))
        )

        log_likelihood = learning.run(sequences, [0, 1])

        assert np.isneginf(log_likelihood)
        for sequence in sequences:
            label, response = classifier.compute(sequence)
            assert label == 0
            assert response == 0.0
            assert not np.isnan(response)


class TestRejection:
    """Test threshold-model rejection after training on symbol sequences."""

    def test_threshold_model_built(self, rejecting_classifier):
        """Test that training with rejection builds a block threshold model."""
        threshold = rejecting_classifier.threshold

        assert threshold is not None
        assert threshold.n_states == 6
        assert not np.any(np.isnan(threshold.transitions))

        for c, model in enumerate(rejecting_classifier.models):
            block = slice(3 * c, 3 * c + 3)
            np.testing.assert_allclose(np.diag(threshold.transitions[block, block]),
                                       np.diag(model.transitions))

        assert np.all(np.isneginf(threshold.transitions[:3, 3:]))
        assert np.all(np.isneginf(threshold.transitions[3:, :3]))

    def test_training_sequences_accepted(self, rejecting_classifier, symbol_sequences):
        """Test that training sequences are classified with a lenient threshold."""
        inputs, outputs = symbol_sequences
        rejecting_classifier.sensitivity = 0.5

        for sequence, expected in zip(inputs, outputs):
            label, _ = rejecting_classifier.compute(sequence)
            assert label == expected

    def test_unlike_sequence_rejected(self, rejecting_classifier):
        """Test that a sequence resembling neither class is rejected."""
        rejecting_classifier.sensitivity = 0.5

        label, response = rejecting_classifier.compute([1, 1, 0, 0, 2])

        assert label == REJECTED
        assert response == pytest.approx(0.9963833903437146, abs=1e-10)

    def test_threshold_scores(self, rejecting_classifier):
        """Test the threshold model likelihood and Viterbi score of the unlike sequence."""
        threshold = rejecting_classifier.threshold
        sequence = [1, 1, 0, 0, 2]

        log_likelihood = threshold.evaluate(sequence, logarithm=True)
        _, log_viterbi = threshold.decode(sequence, logarithm=True)

        assert log_likelihood == pytest.approx(-12.80986144981946, abs=1e-10)
        assert log_viterbi == pytest.approx(-14.19849385756348, abs=1e-10)
        assert log_viterbi <= log_likelihood

    def test_compute_error(self, discrete_classifier, symbol_sequences):
        """Test that the training error is zero and rejections count as errors."""
        inputs, outputs = symbol_sequences
        learning = HiddenMarkovClassifierLearning(
            discrete_classifier,
            algorithm=baum_welch_factory(discrete_classifier, tolerance=0.001),
            rejection=True
        )
        learning.run(inputs, outputs)
        discrete_classifier.sensitivity = 0.5

        assert learning.compute_error(inputs, outputs) == 0.0
        assert learning.compute_error([[1, 1, 0, 0, 2]], [0]) == 1.0

    def test_no_threshold_without_rejection(self, discrete_classifier, symbol_sequences):
        """Test that rejection is off by default."""
        inputs, outputs = symbol_sequences
        learning = HiddenMarkovClassifierLearning(
            discrete_classifier, algorithm=baum_welch_factory(discrete_classifier, tolerance=0.001))
        learning.run(inputs, outputs)

        assert discrete_classifier.threshold is None


class TestTrainingOptions:
    """Test priors, learner factories, configuration and parallelism."""

    def test_empirical_priors(self, discrete_classifier, symbol_sequences):
        """Test that priors follow label frequencies."""
        inputs, _ = symbol_sequences
        learning = HiddenMarkovClassifierLearning(
            discrete_classifier,
            algorithm=baum_welch_factory(discrete_classifier, tolerance=0.001),
            empirical_priors=True
        )
        learning.run(inputs[:3] + inputs[4:5], [0, 0, 0, 1])

        np.testing.assert_allclose(discrete_classifier.priors, [0.75, 0.25])

    def test_uniform_priors_by_default(self, discrete_classifier, symbol_sequences):
        """Test that priors are left untouched without estimation."""
        learning = HiddenMarkovClassifierLearning(
            discrete_classifier, algorithm=baum_welch_factory(discrete_classifier, tolerance=0.001))
        inputs, _ = symbol_sequences
        learning.run(inputs[:3] + inputs[4:5], [0, 0, 0, 1])

        np.testing.assert_allclose(discrete_classifier.priors, [0.5, 0.5])

    def test_algorithm_called_per_class(self, discrete_classifier, symbol_sequences):
        """Test that the learner factory receives every class index."""
        inputs, outputs = symbol_sequences
        calls = []

        def algorithm(class_index):
            calls.append(class_index)
            return BaumWelchLearning(discrete_classifier.models[class_index], tolerance=0.01)

        HiddenMarkovClassifierLearning(discrete_classifier, algorithm=algorithm).run(inputs, outputs)

        assert sorted(calls) == [0, 1]

    def test_default_algorithm_uses_config(self, discrete_classifier, symbol_sequences):
        """Test that default learners read the learning configuration."""
        set_config('learning', 'tolerance', 0.0)
        set_config('learning', 'iterations', 2)
        inputs, outputs = symbol_sequences

        learning = HiddenMarkovClassifierLearning(discrete_classifier)
        learning.run(inputs, outputs)

        for meta in learning.get_training_summary()['class_summary'].values():
            assert meta['convergence_iterations'] == 2
            assert meta['training_stats']['status'] == 'max_iterations_reached'

    def test_rejection_from_config(self, discrete_classifier, symbol_sequences):
        """Test that rejection defaults to the configuration value."""
        set_config('classifier', 'rejection', True)
        inputs, outputs = symbol_sequences

        learning = HiddenMarkovClassifierLearning(
            discrete_classifier, algorithm=baum_welch_factory(discrete_classifier, tolerance=0.01))
        learning.run(inputs, outputs)

        assert learning.rejection is True
        assert discrete_classifier.threshold is not None

    def test_parallel_matches_sequential(self, symbol_sequences):
        """Test that threaded training gives the same models as sequential training."""
        inputs, outputs = symbol_sequences
        results = []

        for n_jobs in (1, 2):
            classifier = HiddenMarkovClassifier.create_discrete(2, 3, symbols=3)
            learning = HiddenMarkovClassifierLearning(
                classifier, algorithm=baum_welch_factory(classifier, tolerance=0.001), n_jobs=n_jobs)
            results.append((learning.run(inputs, outputs), classifier))

        (sequential, first), (parallel, second) = results
        assert parallel == pytest.approx(sequential)
        for a, b in zip(first.models, second.models):
            np.testing.assert_allclose(a.transitions, b.transitions)


class TestFailures:
    """Test error propagation during training."""

    def test_fitting_error_propagates(self, mirrored_sequences):
        """Test that emission fitting failures are not wrapped."""
        inputs, outputs = mirrored_sequences
        classifier = HiddenMarkovClassifier.from_topology(
            2, Custom(np.eye(2), [1.0, 0.0]), NormalDistribution())
        learning = HiddenMarkovClassifierLearning(
            classifier, algorithm=baum_welch_factory(classifier, tolerance=1e-3))

        with pytest.raises(FittingError, match="sum to zero"):
            learning.run(inputs, outputs)

    def test_unexpected_error_wrapped(self, discrete_classifier, symbol_sequences):
        """Test that failures outside the package are reported as training errors."""
        inputs, outputs = symbol_sequences

        def broken_algorithm(class_index):
            raise RuntimeError("learner unavailable")

        learning = HiddenMarkovClassifierLearning(discrete_classifier, algorithm=broken_algorithm)

        with pytest.raises(ModelTrainingError, match="learner unavailable"):
            learning.run(inputs, outputs)

    def test_online_learning_unsupported(self, discrete_classifier):
        """Test that per-sample learning is refused."""
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(UnsupportedLearningModeError):
            learning.run_sample([0, 1, 2], 0)

    def test_compute_error_length_mismatch(self, discrete_classifier):
        """Test that error computation validates its inputs."""
        learning = HiddenMarkovClassifierLearning(discrete_classifier)

        with pytest.raises(ModelTrainingError):
            learning.compute_error([[0, 1]], [0, 1])
