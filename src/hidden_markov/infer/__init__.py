"""
Sequence classification and threshold-model rejection.
"""

from .classifier import HiddenMarkovClassifier, REJECTED
from .threshold import compose_threshold_model

__all__ = [
    'HiddenMarkovClassifier',
    'REJECTED',
    'compose_threshold_model'
]
