"""
Unit tests for HiddenMarkovClassifier and the threshold model.

Tests use hand-built class models so that every score can be checked
against closed-form values.
"""

import pytest
import numpy as np

from hidden_markov.config import set_config
from hidden_markov.distributions import (
    CategoricalDistribution,
    MultivariateNormalDistribution,
    NormalDistribution
)
from hidden_markov.exceptions import (
    ClassificationError,
    DimensionMismatchError,
    InvalidConfigurationError
)
from hidden_markov.hmm import HiddenMarkovModel, Ergodic, Forward
from hidden_markov.infer import HiddenMarkovClassifier, REJECTED, compose_threshold_model


def single_state_model(probabilities):
    """One-state model emitting symbols with fixed probabilities."""
    return HiddenMarkovModel([[1.0]], [CategoricalDistribution(probabilities)], [1.0])


@pytest.fixture
def classifier():
    """Two classes: class 0 favours symbol 0, class 1 favours symbol 2."""
    models = [single_state_model([0.8, 0.1, 0.1]),
              single_state_model([0.1, 0.1, 0.8])]
    return HiddenMarkovClassifier(models)


@pytest.fixture
def block_models():
    """A two-state ergodic model and a three-state forward model."""
    first = HiddenMarkovModel([[0.9, 0.1], [0.2, 0.8]],
                              CategoricalDistribution([0.5, 0.5]), [1.0, 0.0])
    second = HiddenMarkovModel.from_topology(Forward(3), CategoricalDistribution([0.3, 0.7]))
    return [first, second]


class TestClassifierConstruction:
    """Test classifier construction and settings."""

    def test_defaults(self, classifier):
        """Test uniform priors, default sensitivity and no threshold model."""
        assert classifier.n_classes == 2
        assert classifier.sensitivity == 1.0
        assert classifier.threshold is None
        np.testing.assert_allclose(classifier.priors, [0.5, 0.5])

    def test_sensitivity_from_config(self):
        """Test that the default sensitivity comes from configuration."""
        set_config('classifier', 'sensitivity', 2.5)

        clf = HiddenMarkovClassifier([single_state_model([0.5, 0.5])])

        assert clf.sensitivity == 2.5

    def test_invalid_sensitivity(self, classifier):
        """Test that sensitivity must be positive."""
        with pytest.raises(InvalidConfigurationError, match="Sensitivity"):
            classifier.sensitivity = 0.0

    def test_invalid_priors(self, classifier):
        """Test that priors must be a distribution over the classes."""
        with pytest.raises(InvalidConfigurationError):
            classifier.priors = [0.5, 0.2]
        with pytest.raises(InvalidConfigurationError):
            classifier.priors = [1.0]

    def test_dimension_mismatch(self):
        """Test that class models must share one dimension."""
        models = [HiddenMarkovModel.from_topology(Ergodic(2), NormalDistribution()),
                  HiddenMarkovModel.from_topology(Ergodic(2), MultivariateNormalDistribution.standard(3))]

        with pytest.raises(DimensionMismatchError):
            HiddenMarkovClassifier(models)

    def test_no_models(self):
        """Test that at least one class is required."""
        with pytest.raises(InvalidConfigurationError):
            HiddenMarkovClassifier([])

    def test_from_topology_per_class(self):
        """Test one topology per class."""
        clf = HiddenMarkovClassifier.from_topology(
            2, [Ergodic(2), Forward(4)], NormalDistribution())

        assert [m.n_states for m in clf.models] == [2, 4]
        assert clf.models[0].emissions[0] is not clf.models[1].emissions[0]

    def test_from_topology_count_mismatch(self):
        """Test that the topology list must match the class count."""
        with pytest.raises(InvalidConfigurationError, match="topologies"):
            HiddenMarkovClassifier.from_topology(3, [Ergodic(2), Ergodic(2)], NormalDistribution())

    def test_create_discrete(self):
        """Test the discrete factory with per-class state counts."""
        clf = HiddenMarkovClassifier.create_discrete(2, [3, 4], symbols=5)

        assert [m.n_states for m in clf.models] == [3, 4]
        assert clf.models[1].emissions[0].symbols == 5


class TestCompute:
    """Test classification decisions and responses."""

    def test_compute_picks_best_class(self, classifier):
        """Test the arg-max decision and its posterior response."""
        label, response = classifier.compute([0, 0])

        assert label == 0
        assert response == pytest.approx(0.64 / 0.65)

    def test_compute_second_class(self, classifier):
        """Test that the other class wins on its own symbols."""
        label, response = classifier.compute([2, 2, 2])

        assert label == 1
        assert response == pytest.approx(0.512 / (0.512 + 0.001))

    def test_priors_shift_decision(self, classifier):
        """Test that class priors weight the likelihoods."""
        classifier.priors = [0.01, 0.99]

        label, response = classifier.compute([0])

        assert label == 1
        assert response == pytest.approx(0.099 / 0.107)

    def test_impossible_sequence(self, classifier):
        """Test that a sequence no class can produce gives class 0 with response 0."""
        label, response = classifier.compute([5, 5])

        assert label == 0
        assert response == 0.0

    def test_log_likelihoods(self, classifier):
        """Test per-class log-likelihoods."""
        np.testing.assert_allclose(classifier.log_likelihoods([0, 2]),
                                   np.log([0.08, 0.08]))

    def test_score_sequence(self, classifier):
        """Test scoring under a single class."""
        assert classifier.score_sequence([0], 0) == pytest.approx(np.log(0.8))

    def test_score_sequence_invalid_class(self, classifier):
        """Test that out-of-range class indexes are rejected."""
        with pytest.raises(ClassificationError, match="out of range"):
            classifier.score_sequence([0], 5)

    def test_responsibilities(self, classifier):
        """Test the posterior distribution over classes."""
        result = classifier.responsibilities([0, 0])

        np.testing.assert_allclose(result, [0.64 / 0.65, 0.01 / 0.65])

    def test_predict_with_confidence(self, classifier):
        """Test the detailed prediction report."""
        result = classifier.predict_with_confidence([2, 2])

        assert result['predicted_class'] == 1
        assert result['ranking'] == [1, 0]
        assert result['rejected'] is False
        assert result['threshold_score'] is None
        assert sum(result['probabilities'].values()) == pytest.approx(1.0)
        assert result['confidence'] == pytest.approx(result['probabilities'][1])


class TestRejection:
    """Test threshold-model rejection in the classifier."""

    def test_high_sensitivity_rejects(self, classifier):
        """Test that inflating the threshold score rejects the sequence."""
        classifier.update_threshold()
        classifier.sensitivity = 1e6

        label, response = classifier.compute([0, 0])

        assert label == REJECTED
        assert 0.0 < response <= 1.0

    def test_low_sensitivity_accepts(self, classifier):
        """Test that a deflated threshold score lets the class win."""
        classifier.update_threshold()
        classifier.sensitivity = 1e-6

        label, _ = classifier.compute([0, 0])

        assert label == 0

    def test_threshold_competes_in_response(self, classifier):
        """Test that the response is the posterior over classes and threshold."""
        threshold = classifier.update_threshold()
        sequence = [0, 2]

        scores = np.log(0.5) + classifier.log_likelihoods(sequence)
        threshold_score = threshold.evaluate(sequence, logarithm=True)
        all_scores = np.append(scores, threshold_score)

        label, response = classifier.compute(sequence)
        winner = threshold_score if label == REJECTED else scores[label]

        assert response == pytest.approx(np.exp(winner) / np.exp(all_scores).sum())

    def test_rejected_flag_in_report(self, classifier):
        """Test that the report marks rejected sequences."""
        classifier.update_threshold()
        classifier.sensitivity = 1e6

        result = classifier.predict_with_confidence([0])

        assert result['predicted_class'] == REJECTED
        assert result['rejected'] is True
        assert result['threshold_score'] is not None


class TestThresholdModel:
    """Test the threshold model construction."""

    def test_block_structure(self, block_models):
        """Test diagonals, in-block spreading and cross-block exclusion."""
        threshold = compose_threshold_model(block_models)
        A = np.exp(threshold.transitions)

        assert threshold.n_states == 5
        assert threshold.tag == 'threshold'

        # Diagonals keep each class model's self-transitions
        np.testing.assert_allclose(np.diag(A)[:2], [0.9, 0.8])
        np.testing.assert_allclose(np.diag(A)[2:], [1 / 3, 0.5, 1.0])

        # Remaining mass spread over the other states of the block
        np.testing.assert_allclose(A[0, 1], 0.1)
        np.testing.assert_allclose(A[2, 3:], [1 / 3, 1 / 3])
        np.testing.assert_allclose(A[3, [2, 4]], [0.25, 0.25])
        np.testing.assert_allclose(A[4, 2:4], [0.0, 0.0])

        assert np.all(np.isneginf(threshold.transitions[:2, 2:]))
        assert np.all(np.isneginf(threshold.transitions[2:, :2]))

    def test_rows_are_stochastic(self, block_models):
        """Test that the threshold model is a valid model."""
        assert compose_threshold_model(block_models).validate()

    def test_initial_vector(self, block_models):
        """Test that initial probabilities are split across the class models."""
        threshold = compose_threshold_model(block_models)

        np.testing.assert_allclose(np.exp(threshold.probabilities), [0.5, 0.0, 0.5, 0.0, 0.0])

    def test_initial_vector_ignores_class_initials(self):
        """Test that each block is entered through its first state only."""
        spread = HiddenMarkovModel([[0.9, 0.1], [0.2, 0.8]],
                                   CategoricalDistribution([0.5, 0.5]), [0.4, 0.6])
        threshold = compose_threshold_model([spread, single_state_model([0.2, 0.8])])

        np.testing.assert_allclose(np.exp(threshold.probabilities), [0.5, 0.0, 0.5])

    def test_emissions_are_cloned(self, block_models):
        """Test that the threshold model holds no reference to its inputs."""
        threshold = compose_threshold_model(block_models)
        block_models[0].emissions[0].fit([0, 0, 0])

        np.testing.assert_allclose(threshold.emissions[0].probabilities, [0.5, 0.5])
        assert all(e is not o for e, o in zip(threshold.emissions[:2], block_models[0].emissions))

    def test_single_state_block(self):
        """Test that a one-state class keeps its self-transition."""
        threshold = compose_threshold_model([single_state_model([0.5, 0.5]),
                                             single_state_model([0.2, 0.8])])

        np.testing.assert_allclose(np.exp(threshold.transitions), np.eye(2))

    def test_no_models(self):
        """Test that at least one model is required."""
        with pytest.raises(InvalidConfigurationError):
            compose_threshold_model([])

    def test_dimension_mismatch(self):
        """Test that models must share one dimension."""
        models = [HiddenMarkovModel.from_topology(Ergodic(1), NormalDistribution()),
                  HiddenMarkovModel.from_topology(Ergodic(1), MultivariateNormalDistribution.standard(2))]

        with pytest.raises(DimensionMismatchError):
            compose_threshold_model(models)
