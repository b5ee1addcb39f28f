"""
Evaluation metrics for sequence classifiers.
"""

from .metrics import (
    compute_accuracy,
    compute_per_class_accuracy,
    compute_confusion_matrix,
    compute_rejection_rate,
    evaluate_classifier
)

__all__ = [
    'compute_accuracy',
    'compute_per_class_accuracy',
    'compute_confusion_matrix',
    'compute_rejection_rate',
    'evaluate_classifier'
]
