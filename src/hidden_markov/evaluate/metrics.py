"""
Accuracy metrics for sequence classification.

Labels are 0-indexed class integers; a predicted label of -1 marks a sequence
rejected by the threshold model.
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..infer.classifier import REJECTED
from ..logger import get_logger

logger = get_logger(__name__)


def _check_lengths(y_true: Sequence[int], y_pred: Sequence[int]) -> None:
    if len(y_true) != len(y_pred):
        raise ValueError(f"Length mismatch: y_true={len(y_true)}, y_pred={len(y_pred)}")

    if len(y_true) == 0:
        raise ValueError("Empty input lists provided")


def compute_accuracy(y_true: Sequence[int], y_pred: Sequence[int]) -> float:
    """
    Compute overall accuracy; rejected predictions count as wrong.

    Args:
        y_true: True class labels
        y_pred: Predicted class labels (-1 for rejected)

    Returns:
        Overall accuracy as float between 0 and 1

    Raises:
        ValueError: If input lists have different lengths or are empty
    """
    _check_lengths(y_true, y_pred)

    correct_predictions = int(np.sum(np.asarray(y_true) == np.asarray(y_pred)))
    total_predictions = len(y_true)
    accuracy = correct_predictions / total_predictions

    logger.debug(f"Overall accuracy: {correct_predictions}/{total_predictions} = {accuracy:.4f}")

    return accuracy


def compute_per_class_accuracy(y_true: Sequence[int], y_pred: Sequence[int]) -> Dict[int, float]:
    """
    Compute accuracy separately for every class present in y_true.

    Returns:
        Dictionary mapping class index to its accuracy
    """
    _check_lengths(y_true, y_pred)

    y_true_arr = np.asarray(y_true)
    y_pred_arr = np.asarray(y_pred)
    per_class_accuracy = {}

    for class_index in sorted(set(int(label) for label in y_true)):
        mask = y_true_arr == class_index
        correct_for_class = int(np.sum(y_pred_arr[mask] == class_index))
        total_for_class = int(np.sum(mask))

        per_class_accuracy[class_index] = correct_for_class / total_for_class

        logger.debug(f"Class {class_index}: {correct_for_class}/{total_for_class} = "
                     f"{per_class_accuracy[class_index]:.4f}")

    return per_class_accuracy


def compute_confusion_matrix(y_true: Sequence[int], y_pred: Sequence[int],
                             n_classes: Optional[int] = None) -> np.ndarray:
    """
    Create a confusion matrix with an extra column for rejections.

    Args:
        y_true: True class labels
        y_pred: Predicted class labels (-1 for rejected)
        n_classes: Number of classes (default: inferred from the labels)

    Returns:
        Integer matrix [n_classes, n_classes + 1] where entry (i, j) counts
        sequences of class i predicted as class j, and the last column counts
        sequences of class i that were rejected

    Raises:
        ValueError: If input validation fails
    """
    _check_lengths(y_true, y_pred)

    labels = [int(label) for label in y_true] + [int(label) for label in y_pred if label != REJECTED]
    if min(labels) < 0:
        raise ValueError("Class labels must be non-negative (only predictions may be -1)")

    if n_classes is None:
        n_classes = max(labels) + 1
    elif max(labels) >= n_classes:
        raise ValueError(f"Label {max(labels)} out of range for {n_classes} classes")

    confusion_matrix = np.zeros((n_classes, n_classes + 1), dtype=int)

    for true_label, pred_label in zip(y_true, y_pred):
        column = n_classes if pred_label == REJECTED else int(pred_label)
        confusion_matrix[int(true_label), column] += 1

    logger.debug(f"Confusion matrix computed: {n_classes}x{n_classes + 1}")

    return confusion_matrix


def compute_rejection_rate(y_pred: Sequence[int]) -> float:
    """
    Fraction of predictions rejected by the threshold model.

    Raises:
        ValueError: If no predictions are given
    """
    if len(y_pred) == 0:
        raise ValueError("Empty input lists provided")

    rejected = sum(1 for label in y_pred if label == REJECTED)
    return rejected / len(y_pred)


def evaluate_classifier(classifier: Any, inputs: Sequence[Any],
                        outputs: Sequence[int]) -> Dict[str, Any]:
    """
    Classify labelled sequences and compute all metrics.

    Args:
        classifier: Trained HiddenMarkovClassifier
        inputs: Observation sequences
        outputs: True class labels

    Returns:
        Dictionary containing:
        - 'predictions': Predicted labels
        - 'responses': Response of each prediction
        - 'accuracy', 'per_class_accuracy', 'rejection_rate'
        - 'confusion_matrix': See compute_confusion_matrix
    """
    _check_lengths(outputs, inputs)

    predictions: List[int] = []
    responses: List[float] = []
    for sequence in inputs:
        label, response = classifier.compute(sequence)
        predictions.append(label)
        responses.append(response)

    results = {
        'predictions': predictions,
        'responses': responses,
        'accuracy': compute_accuracy(outputs, predictions),
        'per_class_accuracy': compute_per_class_accuracy(outputs, predictions),
        'rejection_rate': compute_rejection_rate(predictions),
        'confusion_matrix': compute_confusion_matrix(outputs, predictions, classifier.n_classes)
    }

    logger.info(f"Evaluated {len(inputs)} sequences: accuracy={results['accuracy']:.4f}, "
                f"rejection rate={results['rejection_rate']:.4f}")

    return results
