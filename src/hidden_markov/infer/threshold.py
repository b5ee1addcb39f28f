"""
Threshold (rejection) model construction.

The threshold model joins the states of all class models into one model.
Within each class block a state keeps its own self-transition probability
and spreads the remaining mass uniformly over the other states of the block,
so the model can reproduce any class's emissions in any order but never
follows a class's learned state ordering. Each block is entered
through its first state with probability 1/M. Sequences that a class model
explains better than this model are accepted; the rest are rejected.
"""

from typing import Sequence

import numpy as np

from ..exceptions import DimensionMismatchError, InvalidConfigurationError
from ..hmm.model import HiddenMarkovModel
from ..logger import get_logger

logger = get_logger(__name__)

THRESHOLD_TAG = 'threshold'


def compose_threshold_model(models: Sequence[HiddenMarkovModel]) -> HiddenMarkovModel:
    """
    Build a threshold model from class models.

    Args:
        models: Trained class models sharing one observation dimension

    Returns:
        New HiddenMarkovModel tagged "threshold" with sum(n_states) states.
        It holds cloned emissions and no reference to the input models.

    Raises:
        InvalidConfigurationError: If no models are given
        DimensionMismatchError: If the models have different dimensions
    """
    if len(models) == 0:
        raise InvalidConfigurationError("At least one model is required to build a threshold model")

    dimensions = {m.dimension for m in models}
    if len(dimensions) != 1:
        raise DimensionMismatchError(f"Class models have different dimensions: {dimensions}")

    n_total = sum(m.n_states for m in models)
    log_transitions = np.full((n_total, n_total), -np.inf)
    log_initial = np.full(n_total, -np.inf)
    emissions = []

    log_n_models = np.log(len(models))
    offset = 0

    for model in models:
        n = model.n_states
        block = slice(offset, offset + n)

        for j in range(n):
            self_transition = model.transitions[j, j]
            row = np.full(n, -np.inf)

            if n > 1:
                remaining = 1.0 - np.exp(self_transition)
                if remaining > 0:
                    row[:] = np.log(remaining / (n - 1))
            row[j] = self_transition

            log_transitions[offset + j, block] = row

        log_initial[offset] = -log_n_models
        emissions.extend(e.clone() for e in model.emissions)
        offset += n

    logger.debug(f"Composed threshold model with {n_total} states from {len(models)} class models")

    return HiddenMarkovModel(log_transitions, emissions, log_initial,
                             logarithm=True, tag=THRESHOLD_TAG)
