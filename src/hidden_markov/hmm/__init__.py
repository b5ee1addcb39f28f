"""
Hidden Markov Model core: topologies, log-domain algorithms and the model.
"""

from .topology import Topology, Ergodic, Forward, Custom
from .model import HiddenMarkovModel

__all__ = [
    'Topology',
    'Ergodic',
    'Forward',
    'Custom',
    'HiddenMarkovModel'
]
