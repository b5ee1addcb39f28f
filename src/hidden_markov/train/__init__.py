"""
Training for hidden Markov models and classifiers, and model persistence.
"""

from .baum_welch import BaumWelchLearning, LearningStatus
from .classifier_learning import HiddenMarkovClassifierLearning
from .persistence import ModelPersistence

__all__ = [
    'BaumWelchLearning',
    'LearningStatus',
    'HiddenMarkovClassifierLearning',
    'ModelPersistence'
]
