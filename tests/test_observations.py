"""
Unit tests for observation sequence normalization and logging setup.
"""

import logging

import pytest
import numpy as np

from hidden_markov.exceptions import DimensionMismatchError, InvalidSequenceError
from hidden_markov.logger import (
    disable_file_logging,
    enable_file_logging,
    get_logger,
    set_log_level
)
from hidden_markov.observations import as_sequence, as_sequences


class TestAsSequence:
    """Test conversion of single sequences."""

    def test_flat_scalars(self):
        """Test that scalar sequences become a column."""
        result = as_sequence([1, 2, 3], 1)

        assert result.shape == (3, 1)
        assert result.dtype == float

    def test_single_scalar(self):
        """Test that a bare scalar is a sequence of length one."""
        assert as_sequence(4, 1).shape == (1, 1)

    def test_flat_vectors_are_split(self):
        """Test that concatenated vectors are split by dimension."""
        result = as_sequence([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 3)

        np.testing.assert_array_equal(result, [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])

    def test_matrix_passes_through(self):
        """Test that a (T, d) matrix is kept as is."""
        matrix = np.arange(6.0).reshape(3, 2)

        np.testing.assert_array_equal(as_sequence(matrix, 2), matrix)

    def test_indivisible_flat_sequence(self):
        """Test that a flat sequence must hold whole observations."""
        with pytest.raises(DimensionMismatchError):
            as_sequence([1.0, 2.0, 3.0], 2)

    def test_width_mismatch(self):
        """Test that matrix width must equal the dimension."""
        with pytest.raises(DimensionMismatchError):
            as_sequence(np.zeros((4, 3)), 2)

    def test_empty_sequence(self):
        """Test that empty sequences are rejected."""
        with pytest.raises(InvalidSequenceError, match="empty"):
            as_sequence([], 1)

    def test_too_many_axes(self):
        """Test that 3-D input is rejected."""
        with pytest.raises(InvalidSequenceError, match="1-D or 2-D"):
            as_sequence(np.zeros((2, 2, 2)), 2)

    def test_non_numeric(self):
        """Test that non-numeric input is rejected."""
        with pytest.raises(InvalidSequenceError, match="not numeric"):
            as_sequence(['a', 'b'], 1)


class TestAsSequences:
    """Test conversion of sequence batches."""

    def test_variable_lengths(self):
        """Test that each sequence keeps its own length."""
        result = as_sequences([[0, 1], [2], [1, 1, 1]], 1)

        assert [len(seq) for seq in result] == [2, 1, 3]

    def test_empty_batch(self):
        """Test that an empty batch is rejected."""
        with pytest.raises(InvalidSequenceError):
            as_sequences([], 1)


class TestLogging:
    """Test the package logger setup."""

    def test_loggers_are_namespaced(self):
        """Test that module loggers live under the package logger."""
        assert get_logger('training').name == 'hidden_markov.training'
        assert get_logger('hidden_markov.hmm').name == 'hidden_markov.hmm'

    def test_set_log_level(self):
        """Test changing the package log level."""
        set_log_level('DEBUG')
        try:
            assert logging.getLogger('hidden_markov').level == logging.DEBUG
        finally:
            set_log_level('INFO')

    def test_file_logging(self, temp_dir):
        """Test that file logging writes package messages to disk."""
        log_file = temp_dir / "logs" / "run.log"

        enable_file_logging(str(log_file))
        try:
            get_logger('test').info("written to file")
        finally:
            disable_file_logging()

        assert "written to file" in log_file.read_text()

    def test_file_logging_with_other_file_handler(self, temp_dir):
        """Test that an unrelated file handler neither blocks nor loses its place."""
        package_logger = logging.getLogger('hidden_markov')
        other = logging.FileHandler(temp_dir / "other.log")
        package_logger.addHandler(other)

        log_file = temp_dir / "run.log"
        try:
            enable_file_logging(str(log_file))
            enable_file_logging(str(log_file))
            get_logger('test').info("only once")
            disable_file_logging()

            assert log_file.read_text().count("only once") == 1
            assert other in package_logger.handlers
        finally:
            package_logger.removeHandler(other)
            other.close()
