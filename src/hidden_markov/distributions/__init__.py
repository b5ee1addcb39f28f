"""
Emission distributions for hidden Markov models.
"""

from .base import EmissionDistribution
from .normal import NormalDistribution, NormalOptions
from .multivariate_normal import MultivariateNormalDistribution
from .categorical import CategoricalDistribution, CategoricalOptions
from .mixture import Mixture, MixtureOptions

__all__ = [
    'EmissionDistribution',
    'NormalDistribution',
    'NormalOptions',
    'MultivariateNormalDistribution',
    'CategoricalDistribution',
    'CategoricalOptions',
    'Mixture',
    'MixtureOptions'
]
