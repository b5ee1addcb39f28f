"""
Model persistence and metadata storage for trained models and classifiers.

This module handles serialization/deserialization of models using joblib
and manages JSON metadata storage with training statistics.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import joblib
import numpy as np

from .. import __version__
from ..config import get_config
from ..exceptions import PersistenceError
from ..hmm.model import HiddenMarkovModel
from ..infer.classifier import HiddenMarkovClassifier
from ..logger import get_logger

logger = get_logger(__name__)

Persistable = Union[HiddenMarkovModel, HiddenMarkovClassifier]


class ModelPersistence:
    """
    Handles model serialization, deserialization, and metadata management.

    Every saved object produces two files in the models directory:
    `<name>.pkl` (joblib, compressed) and `<name>_meta.json`.
    """

    def __init__(self, models_dir: Optional[str] = None, compress: Optional[int] = None):
        """
        Initialize ModelPersistence with target directory.

        Args:
            models_dir: Directory to store models and metadata (default:
                persistence.models_dir configuration value)
            compress: joblib compression level (default: persistence.compress
                configuration value)
        """
        if models_dir is None:
            models_dir = get_config('persistence', 'models_dir')
        if compress is None:
            compress = get_config('persistence', 'compress')

        self.models_dir = Path(models_dir)
        self.models_dir.mkdir(parents=True, exist_ok=True)
        self.compress = compress

        logger.debug(f"ModelPersistence initialized: {self.models_dir}")

    def _paths(self, name: str) -> Tuple[Path, Path]:
        safe_name = self._sanitize_filename(name)
        if not safe_name:
            raise PersistenceError(f"Invalid model name: {name!r}")
        return (self.models_dir / f"{safe_name}.pkl",
                self.models_dir / f"{safe_name}_meta.json")

    def _save(self, name: str, obj: Persistable, object_type: str,
              description: Dict[str, Any], metadata: Optional[Dict[str, Any]],
              overwrite: bool) -> Tuple[str, str]:
        model_path, metadata_path = self._paths(name)

        if not overwrite:
            if model_path.exists():
                raise PersistenceError(f"Model file already exists: {model_path}")
            if metadata_path.exists():
                raise PersistenceError(f"Metadata file already exists: {metadata_path}")

        serializable_metadata = self._prepare_metadata_for_serialization(metadata or {})
        serializable_metadata.update({
            'name': name,
            'saved_at': datetime.now().isoformat(),
            'package_version': __version__,
            'model_file': model_path.name,
            'metadata_file': metadata_path.name,
            'object_type': object_type,
            'model_parameters': description
        })

        logger.debug(f"Saving {object_type} to: {model_path}")
        joblib.dump(obj, model_path, compress=self.compress)

        logger.debug(f"Saving metadata to: {metadata_path}")
        with open(metadata_path, 'w', encoding='utf-8') as f:
            json.dump(serializable_metadata, f, indent=2, ensure_ascii=False)

        logger.info(f"Successfully saved {object_type}: {name}")

        return str(model_path), str(metadata_path)

    def _load(self, name: str, expected_type: type) -> Tuple[Any, Dict[str, Any]]:
        model_path, metadata_path = self._paths(name)

        if not model_path.exists():
            raise PersistenceError(f"Model file not found: {model_path}")
        if not metadata_path.exists():
            raise PersistenceError(f"Metadata file not found: {metadata_path}")

        logger.debug(f"Loading model from: {model_path}")
        obj = joblib.load(model_path)

        if not isinstance(obj, expected_type):
            raise PersistenceError(
                f"Loaded object is not a {expected_type.__name__}: {type(obj).__name__}"
            )

        logger.debug(f"Loading metadata from: {metadata_path}")
        with open(metadata_path, 'r', encoding='utf-8') as f:
            metadata = json.load(f)

        return obj, metadata

    def save_model(self, name: str, model: HiddenMarkovModel,
                   metadata: Optional[Dict[str, Any]] = None,
                   overwrite: bool = False) -> Tuple[str, str]:
        """
        Save a model and its metadata to disk.

        Args:
            name: Name the model is stored under
            model: Model to save
            metadata: Training metadata dictionary
            overwrite: Whether to overwrite existing files (default: False)

        Returns:
            Tuple of (model_path, metadata_path) for saved files

        Raises:
            PersistenceError: If saving fails or files exist without overwrite
        """
        try:
            description = {
                'n_states': model.n_states,
                'dimension': model.dimension,
                'emission_type': type(model.emissions[0]).__name__,
                'tag': model.tag
            }
            return self._save(name, model, 'model', description, metadata, overwrite)

        except Exception as e:
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to save model {name}: {str(e)}")

    def load_model(self, name: str) -> Tuple[HiddenMarkovModel, Dict[str, Any]]:
        """
        Load a model and its metadata from disk.

        Args:
            name: Name the model was stored under

        Returns:
            Tuple of (model, metadata)

        Raises:
            PersistenceError: If loading fails, files are missing or the model
                is inconsistent with its metadata
        """
        try:
            model, metadata = self._load(name, HiddenMarkovModel)
            self._validate_model_metadata_consistency(model, metadata)

            logger.info(f"Successfully loaded model: {name}")
            return model, metadata

        except Exception as e:
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to load model {name}: {str(e)}")

    def save_classifier(self, name: str, classifier: HiddenMarkovClassifier,
                        metadata: Optional[Dict[str, Any]] = None,
                        overwrite: bool = False) -> Tuple[str, str]:
        """
        Save a classifier, including its threshold model, and its metadata.

        Args:
            name: Name the classifier is stored under
            classifier: Classifier to save
            metadata: Training metadata dictionary
            overwrite: Whether to overwrite existing files (default: False)

        Returns:
            Tuple of (model_path, metadata_path) for saved files

        Raises:
            PersistenceError: If saving fails or files exist without overwrite
        """
        try:
            description = {
                'n_classes': classifier.n_classes,
                'dimension': classifier.dimension,
                'states_per_class': [m.n_states for m in classifier.models],
                'sensitivity': classifier.sensitivity,
                'priors': classifier.priors,
                'has_threshold': classifier.threshold is not None
            }
            description = self._prepare_metadata_for_serialization(description)
            return self._save(name, classifier, 'classifier', description, metadata, overwrite)

        except Exception as e:
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to save classifier {name}: {str(e)}")

    def load_classifier(self, name: str) -> Tuple[HiddenMarkovClassifier, Dict[str, Any]]:
        """
        Load a classifier and its metadata from disk.

        Raises:
            PersistenceError: If loading fails or a class model is invalid
        """
        try:
            classifier, metadata = self._load(name, HiddenMarkovClassifier)

            params = metadata.get('model_parameters', {})
            if params.get('n_classes') != classifier.n_classes:
                raise PersistenceError(
                    f"Classifier n_classes mismatch: metadata={params.get('n_classes')}, "
                    f"classifier={classifier.n_classes}"
                )
            for idx, model in enumerate(classifier.models):
                try:
                    model.validate()
                except Exception as e:
                    raise PersistenceError(f"Class model {idx} has invalid stochastic matrices: {e}")

            logger.info(f"Successfully loaded classifier: {name}")
            return classifier, metadata

        except Exception as e:
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to load classifier {name}: {str(e)}")

    def list_available_models(self) -> List[Dict[str, Any]]:
        """
        List all stored models and classifiers with their basic information.

        Returns:
            List of dictionaries with model information
        """
        models_info = []

        for model_file in sorted(self.models_dir.glob("*.pkl")):
            name = model_file.stem
            metadata_file = self.models_dir / f"{name}_meta.json"

            info = {
                'name': name,
                'model_file': str(model_file),
                'metadata_file': str(metadata_file),
                'metadata_exists': metadata_file.exists(),
                'model_size_mb': model_file.stat().st_size / (1024 * 1024)
            }

            if metadata_file.exists():
                try:
                    with open(metadata_file, 'r', encoding='utf-8') as f:
                        metadata = json.load(f)

                    info.update({
                        'object_type': metadata.get('object_type', 'unknown'),
                        'n_sequences': metadata.get('n_sequences', 'unknown'),
                        'converged': metadata.get('converged', 'unknown'),
                        'final_log_likelihood': metadata.get('final_log_likelihood', 'unknown'),
                        'saved_at': metadata.get('saved_at', 'unknown')
                    })
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Unreadable metadata file {metadata_file}: {e}")
                    info['metadata_error'] = True

            models_info.append(info)

        return models_info

    def delete_model(self, name: str) -> bool:
        """
        Delete model and metadata files.

        Args:
            name: Name the model was stored under

        Returns:
            True if files were deleted, False if none existed

        Raises:
            PersistenceError: If a file exists but cannot be removed
        """
        model_path, metadata_path = self._paths(name)
        deleted_files = []

        try:
            for path in (model_path, metadata_path):
                if path.exists():
                    path.unlink()
                    deleted_files.append(str(path))
        except OSError as e:
            raise PersistenceError(f"Failed to delete model {name}: {e}")

        if deleted_files:
            logger.info(f"Deleted files for {name}: {deleted_files}")
            return True

        logger.warning(f"No files found to delete for: {name}")
        return False

    def _sanitize_filename(self, name: str) -> str:
        """
        Sanitize a model name for use as filename.

        Args:
            name: Original name

        Returns:
            Sanitized filename-safe string
        """
        # Replace spaces and special characters with underscores
        safe_name = name.replace(' ', '_').replace('-', '_')

        # Remove any characters that aren't alphanumeric or underscore
        safe_name = ''.join(c for c in safe_name if c.isalnum() or c == '_')

        return safe_name.lower()

    def _prepare_metadata_for_serialization(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """
        Prepare metadata dictionary for JSON serialization.

        Converts numpy arrays, numpy scalars and enums to serializable formats.
        """
        return {str(key): self._to_serializable(value) for key, value in metadata.items()}

    def _to_serializable(self, value: Any) -> Any:
        if isinstance(value, np.ndarray):
            return value.tolist()
        if isinstance(value, np.integer):
            return int(value)
        if isinstance(value, np.floating):
            return float(value)
        if isinstance(value, np.bool_):
            return bool(value)
        if isinstance(value, dict):
            return self._prepare_metadata_for_serialization(value)
        if isinstance(value, (list, tuple)):
            return [self._to_serializable(item) for item in value]
        return value

    def _validate_model_metadata_consistency(self, model: HiddenMarkovModel,
                                             metadata: Dict[str, Any]) -> None:
        """
        Validate that a loaded model is consistent with its metadata.

        Raises:
            PersistenceError: If inconsistencies are found
        """
        model_params = metadata.get('model_parameters', {})

        if model_params.get('n_states') != model.n_states:
            raise PersistenceError(
                f"Model n_states mismatch: metadata={model_params.get('n_states')}, "
                f"model={model.n_states}"
            )

        if model_params.get('dimension') != model.dimension:
            raise PersistenceError(
                f"Model dimension mismatch: metadata={model_params.get('dimension')}, "
                f"model={model.dimension}"
            )

        try:
            model.validate()
        except Exception as e:
            raise PersistenceError(f"Loaded model has invalid stochastic matrices: {e}")
