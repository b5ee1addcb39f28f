"""
Observation sequence normalization.

Every algorithm in the package works on a 2-D float array of shape
(T, dimension). This module converts the accepted user inputs into that form.
"""

from typing import Any, List, Sequence

import numpy as np

from .exceptions import DimensionMismatchError, InvalidSequenceError


def as_sequence(sequence: Any, dimension: int) -> np.ndarray:
    """
    Convert an observation sequence into a (T, dimension) float array.

    Args:
        sequence: 1-D array-like of scalars (or of concatenated vectors when
            dimension > 1), or a 2-D array-like of shape (T, dimension)
        dimension: Observation vector length expected by the model

    Returns:
        Array of shape (T, dimension)

    Raises:
        InvalidSequenceError: If the sequence is empty or has more than 2 axes
        DimensionMismatchError: If the observation width does not match
    """
    try:
        array = np.asarray(sequence, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidSequenceError(f"Observation sequence is not numeric: {str(e)}")

    if array.size == 0:
        raise InvalidSequenceError("Observation sequence is empty")

    if array.ndim == 0:
        array = array.reshape(1)

    if array.ndim == 1:
        if dimension == 1:
            return array.reshape(-1, 1)
        if array.size % dimension != 0:
            raise DimensionMismatchError(
                f"Flat sequence of length {array.size} cannot be split into "
                f"observations of dimension {dimension}"
            )
        return array.reshape(-1, dimension)

    if array.ndim == 2:
        if array.shape[1] != dimension:
            raise DimensionMismatchError(
                f"Observation width {array.shape[1]} does not match model dimension {dimension}"
            )
        return array

    raise InvalidSequenceError(f"Observation sequence must be 1-D or 2-D, got {array.ndim} axes")


def as_sequences(sequences: Sequence[Any], dimension: int) -> List[np.ndarray]:
    """Normalize a batch of sequences; the batch itself must not be empty."""
    if sequences is None or len(sequences) == 0:
        raise InvalidSequenceError("No observation sequences provided")
    return [as_sequence(seq, dimension) for seq in sequences]
