"""
Exception hierarchy for the hidden_markov package.
"""


class HiddenMarkovError(Exception):
    """Base exception for the hidden_markov package."""
    pass


class InvalidConfigurationError(HiddenMarkovError, ValueError):
    """Invalid state counts, matrix shapes, topology or learner settings."""
    pass


class DimensionMismatchError(HiddenMarkovError, ValueError):
    """Emission or observation dimensions that do not agree."""
    pass


class InvalidSequenceError(HiddenMarkovError, ValueError):
    """Empty or malformed observation sequences."""
    pass


class FittingError(HiddenMarkovError):
    """Emission distribution could not estimate valid parameters."""
    pass


class NonPositiveDefiniteError(FittingError):
    """Estimated covariance matrix is not positive definite."""
    pass


class ModelTrainingError(HiddenMarkovError):
    """Training data or training setup issues."""
    pass


class UnsupportedLearningModeError(ModelTrainingError):
    """Learning mode not supported by the algorithm (e.g. online Baum-Welch)."""
    pass


class ClassificationError(HiddenMarkovError):
    """Inference and prediction failures."""
    pass


class PersistenceError(HiddenMarkovError):
    """Model saving and loading failures."""
    pass
