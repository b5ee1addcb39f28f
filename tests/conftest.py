"""
Test configuration and fixtures for hidden_markov.

This file contains pytest configuration and shared fixtures
for testing models, learners and classifiers.
"""

import pytest
import tempfile
import numpy as np
from pathlib import Path

from hidden_markov.config import reset_config
from hidden_markov.distributions import CategoricalDistribution
from hidden_markov.hmm import HiddenMarkovModel


@pytest.fixture(autouse=True)
def restore_default_config():
    """Undo configuration changes made by a test."""
    yield
    reset_config()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def weather_model():
    """Two-state discrete model with three symbols and known parameters."""
    transitions = [[0.7, 0.3],
                   [0.4, 0.6]]
    emissions = [CategoricalDistribution([0.1, 0.4, 0.5]),
                 CategoricalDistribution([0.6, 0.3, 0.1])]
    initial = [0.6, 0.4]
    return HiddenMarkovModel(transitions, emissions, initial)


@pytest.fixture
def mirrored_sequences():
    """Two mirrored scalar sequences, one per class."""
    inputs = [np.array([0.0, 1.0, 2.0, 3.0, 4.0]),
              np.array([4.0, 3.0, 2.0, 1.0, 0.0])]
    outputs = [0, 1]
    return inputs, outputs


@pytest.fixture
def symbol_sequences():
    """Labelled symbol sequences: class 0 ascends, class 1 descends."""
    inputs = [
        [0, 0, 1, 2],
        [0, 1, 1, 2],
        [0, 0, 0, 1, 2],
        [0, 1, 2, 2, 2],

        [2, 2, 1, 0],
        [2, 2, 2, 1, 0],
        [2, 2, 2, 1, 0],
        [2, 2, 2, 2, 1],
    ]
    outputs = [0, 0, 0, 0, 1, 1, 1, 1]
    return inputs, outputs


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
