"""
Pose Classifier — single-frame learned pose classification.

predict()  raises on malformed input or a missing/failing model.
classify() never raises; every failure becomes a descriptive label so the
caller can display it as-is.
"""

import logging
from typing import Optional

import numpy as np
import torch
import torch.nn as nn

from engines.pose_classification.errors import (
    EmptyInput, InferenceFailure, LabelTableMalformed, ModelUninitialized,
    PoseClassificationError, ShapeMismatch,
)
from engines.pose_classification.labels import LabelTable

logger = logging.getLogger(__name__)

# Sentinel labels
NO_LANDMARKS = 'No landmarks detected'
NOT_RECOGNIZED = 'Pose not recognized'
MODEL_NOT_INITIALIZED = 'Model not initialized'
INVALID_POSE_INPUT = 'Invalid pose input'
CLASSIFICATION_ERROR = 'Error running pose classification'


class PoseClassifier:
    """Runs the static pose model over one 99-value feature vector."""

    def __init__(self, model: Optional[nn.Module], labels: Optional[LabelTable],
                 device: Optional[torch.device] = None):
        """
        Args:
            model: module mapping (1, input_dim) -> (1, num_labels); None if loading failed
            labels: ordinal -> label table; None if loading failed
            device: device the model lives on (defaults to CPU)
        """
        self.model = model
        self.labels = labels
        self.device = device or torch.device('cpu')
        self._warned_uninitialized = False

        if model is not None and labels is not None:
            num_classes = getattr(model, 'num_classes', len(labels))
            if num_classes != len(labels):
                raise LabelTableMalformed(
                    f"Label table holds {len(labels)} labels but the pose model "
                    f"has {num_classes} outputs"
                )

    @property
    def available(self) -> bool:
        return self.model is not None and self.labels is not None

    @property
    def input_width(self) -> Optional[int]:
        if self.model is None:
            return None
        return getattr(self.model, 'input_dim', None)

    def predict(self, vector) -> str:
        """
        Classify one feature vector.

        Returns:
            the label of the highest-scoring class (first index on ties), or
            NOT_RECOGNIZED when every output is exactly zero
        Raises:
            EmptyInput, ModelUninitialized, ShapeMismatch, InferenceFailure
        """
        vector = np.asarray(vector, dtype=np.float32).reshape(-1)
        if vector.size == 0:
            raise EmptyInput(NO_LANDMARKS)
        if not self.available:
            raise ModelUninitialized(MODEL_NOT_INITIALIZED)

        width = self.input_width
        if width is not None and vector.size != width:
            raise ShapeMismatch(width, vector.size)

        try:
            tensor = torch.from_numpy(vector).unsqueeze(0).to(self.device)  # (1, 99)
            with torch.no_grad():
                output = self.model(tensor)
            scores = output.detach().cpu().numpy().reshape(-1)
        except Exception as e:
            raise InferenceFailure(f"Pose classification forward pass failed: {e}")

        if scores.size != len(self.labels):
            raise InferenceFailure(
                f"Pose model produced {scores.size} outputs for {len(self.labels)} labels"
            )
        if np.all(scores == 0):
            return NOT_RECOGNIZED

        return self.labels[int(np.argmax(scores))]

    def classify(self, vector) -> str:
        """Like predict(), but failures come back as sentinel labels."""
        try:
            return self.predict(vector)
        except ModelUninitialized:
            if not self._warned_uninitialized:
                logger.error("Pose classifier model is not initialized; "
                             "all pose labels will be sentinels")
                self._warned_uninitialized = True
            return MODEL_NOT_INITIALIZED
        except EmptyInput:
            return NO_LANDMARKS
        except ShapeMismatch as e:
            logger.warning(str(e))
            return str(e)
        except InferenceFailure as e:
            logger.error(str(e))
            return CLASSIFICATION_ERROR
        except PoseClassificationError as e:
            logger.error(f"Pose classification error: {e}")
            return CLASSIFICATION_ERROR

    def get_stats(self) -> dict:
        return {
            'available': self.available,
            'input_width': self.input_width,
            'num_labels': len(self.labels) if self.labels is not None else 0,
            'device': str(self.device),
        }
