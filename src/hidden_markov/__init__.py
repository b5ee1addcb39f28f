"""
hidden_markov: Hidden Markov Models with pluggable emission distributions

A Python library for sequence modelling and classification with hidden Markov
models: log-domain Forward/Backward/Viterbi, Baum-Welch training, and
multi-class classifiers with threshold-model rejection.
"""

__version__ = "0.1.0"

from .config import get_config, set_config
from .logger import get_logger
from .hmm import HiddenMarkovModel, Ergodic, Forward, Custom
from .train import BaumWelchLearning, HiddenMarkovClassifierLearning
from .infer import HiddenMarkovClassifier

__all__ = [
    "get_config",
    "set_config",
    "get_logger",
    "HiddenMarkovModel",
    "Ergodic",
    "Forward",
    "Custom",
    "BaumWelchLearning",
    "HiddenMarkovClassifierLearning",
    "HiddenMarkovClassifier",
    "__version__"
]
