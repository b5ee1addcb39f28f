"""
Examples of using the hidden_markov package.

This file demonstrates single-model training and decoding, sequence
classification with rejection, persistence, configuration and error handling.
"""

import tempfile

import numpy as np


def example_single_model():
    """Example of training a discrete model and decoding with it."""
    from hidden_markov import HiddenMarkovModel, BaumWelchLearning, Forward

    print("Example: Single model")
    print("-" * 40)

    model = HiddenMarkovModel.create_discrete(Forward(4), symbols=4)

    learner = BaumWelchLearning(model, tolerance=1e-6)
    log_likelihood = learner.run([[0, 3, 1, 2], [0, 3, 3, 1, 2]])

    path, probability = model.decode([0, 3, 1, 2])
    next_symbol, _, _ = model.predict([0, 3])

    print(f"Training log-likelihood: {log_likelihood:.4f} "
          f"({learner.current_iteration} iterations, {learner.status.value})")
    print(f"Viterbi path: {path.tolist()} (path probability {probability:.4f})")
    print(f"Predicted symbol after [0, 3]: {next_symbol}")
    print()


def example_continuous_classifier():
    """Example of classifying continuous sequences."""
    from hidden_markov import HiddenMarkovClassifier, HiddenMarkovClassifierLearning, Ergodic
    from hidden_markov.distributions import NormalDistribution

    print("Example: Continuous classifier")
    print("-" * 40)

    inputs = [np.array([0.0, 1.0, 2.0, 3.0, 4.0]),
              np.array([4.0, 3.0, 2.0, 1.0, 0.0])]
    outputs = [0, 1]

    classifier = HiddenMarkovClassifier.from_topology(2, Ergodic(2), NormalDistribution())
    learning = HiddenMarkovClassifierLearning(classifier)
    learning.run(inputs, outputs)

    for sequence in inputs:
        label, response = classifier.compute(sequence)
        print(f"{sequence.tolist()} -> class {label} (response {response:.6f})")
    print()


def example_rejection():
    """Example of rejecting sequences with a threshold model."""
    from hidden_markov import HiddenMarkovClassifier, HiddenMarkovClassifierLearning
    from hidden_markov.evaluate import evaluate_classifier

    print("Example: Rejection")
    print("-" * 40)

    inputs = [[0, 0, 1, 2], [0, 1, 1, 2], [0, 0, 0, 1, 2], [0, 1, 2, 2, 2],
              [2, 2, 1, 0], [2, 2, 2, 1, 0], [2, 2, 2, 1, 0], [2, 2, 2, 2, 1]]
    outputs = [0, 0, 0, 0, 1, 1, 1, 1]

    classifier = HiddenMarkovClassifier.create_discrete(2, 3, symbols=3, sensitivity=0.5)
    learning = HiddenMarkovClassifierLearning(classifier, rejection=True)
    learning.run(inputs, outputs)

    result = classifier.predict_with_confidence([1, 1, 0, 0, 2])
    print(f"[1, 1, 0, 0, 2] -> class {result['predicted_class']} "
          f"(rejected: {result['rejected']}, confidence {result['confidence']:.4f})")

    results = evaluate_classifier(classifier, inputs, outputs)
    print(f"Training accuracy: {results['accuracy']:.2%}, "
          f"rejection rate: {results['rejection_rate']:.2%}")
    print()

    return classifier


def example_persistence(classifier):
    """Example of saving and loading a trained classifier."""
    from hidden_markov.train import ModelPersistence

    print("Example: Persistence")
    print("-" * 40)

    with tempfile.TemporaryDirectory() as models_dir:
        persistence = ModelPersistence(models_dir)
        persistence.save_classifier("gestures", classifier, {'n_sequences': 8})
        loaded, metadata = persistence.load_classifier("gestures")

        print(f"Stored objects: {[m['name'] for m in persistence.list_available_models()]}")
        print(f"Loaded {metadata['object_type']} with {loaded.n_classes} classes")
    print()


def example_custom_configuration():
    """Example of custom configuration."""
    from hidden_markov.config import get_config, set_config, update_config

    print("Example: Custom Configuration")
    print("-" * 40)

    print(f"Current tolerance: {get_config('learning', 'tolerance')}")

    set_config('learning', 'iterations', 200)

    update_config({
        'classifier': {
            'rejection': True,
            'n_jobs': 2
        }
    })

    print("Configuration updated:")
    print("- Learning iterations: 200")
    print("- Classifier rejection: True")
    print("- Parallel class training: 2 threads")
    print()


def example_error_handling():
    """Example of proper error handling."""
    from hidden_markov import HiddenMarkovModel, BaumWelchLearning, Custom
    from hidden_markov.distributions import NormalDistribution
    from hidden_markov.exceptions import FittingError, HiddenMarkovError

    print("Example: Error Handling")
    print("-" * 40)

    # State 1 is never reached, so its emission has nothing to fit
    model = HiddenMarkovModel.from_topology(Custom(np.eye(2), [1.0, 0.0]), NormalDistribution())

    try:
        BaumWelchLearning(model).run([[1.0, 2.0, 3.0]])
    except FittingError as e:
        print(f"Emission fitting failed: {e}")
    except HiddenMarkovError as e:
        print(f"Unexpected model error: {e}")

    print("Always handle specific hidden_markov exceptions first")
    print()


if __name__ == "__main__":
    print("hidden_markov Usage Examples")
    print("=" * 50)
    print()

    example_single_model()
    example_continuous_classifier()
    trained = example_rejection()
    example_persistence(trained)
    example_custom_configuration()
    example_error_handling()
