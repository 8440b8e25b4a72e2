"""
Temporal Classifier — violence verdicts from full per-person windows.

A READY window of N feature vectors is laid out oldest-first as one flat
float32 buffer of N x 99 values, viewed as a (1, N, 99) tensor for a single
forward pass. The scalar output is a violence score; the verdict is
score > threshold. Inference problems are fail-closed: the verdict is
False and the cycle carries on.
"""

import logging
from typing import Hashable, List, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from engines.pose_classification.errors import (
    InferenceFailure, ModelUninitialized, SlotNotReady,
)
from engines.pose_classification.landmarks import FEATURE_SIZE
from engines.pose_classification.sequence_buffer import DEFAULT_SEQUENCE_LENGTH, SequenceBuffer

logger = logging.getLogger(__name__)

DEFAULT_VIOLENCE_THRESHOLD = 0.3


class TemporalClassifier:
    """Wraps the sequence model and its decision threshold."""

    def __init__(self, model: Optional[nn.Module],
                 sequence_length: int = DEFAULT_SEQUENCE_LENGTH,
                 threshold: float = DEFAULT_VIOLENCE_THRESHOLD,
                 device: Optional[torch.device] = None):
        self.model = model
        self.sequence_length = sequence_length
        self.threshold = threshold
        self.device = device or torch.device('cpu')
        self._warned_uninitialized = False

    @property
    def available(self) -> bool:
        return self.model is not None

    def serialize(self, window: Sequence[np.ndarray]) -> np.ndarray:
        """
        Flatten a window into the model's input layout.

        Returns:
            (sequence_length * 99,) float32 array, oldest frame first
        Raises:
            SlotNotReady: window does not hold exactly sequence_length frames
        """
        if len(window) != self.sequence_length:
            raise SlotNotReady(len(window), self.sequence_length)

        buffer = np.empty(self.sequence_length * FEATURE_SIZE, dtype=np.float32)
        for t, vector in enumerate(window):
            vector = np.asarray(vector, dtype=np.float32).reshape(-1)
            if vector.size != FEATURE_SIZE:
                raise ValueError(f"Frame {t} holds {vector.size} values, expected {FEATURE_SIZE}")
            buffer[t * FEATURE_SIZE:(t + 1) * FEATURE_SIZE] = vector
        return buffer

    def score(self, window: Sequence[np.ndarray]) -> float:
        """
        Run one forward pass and return the raw scalar output.

        Raises:
            SlotNotReady, ModelUninitialized, InferenceFailure
        """
        buffer = self.serialize(window)
        if self.model is None:
            raise ModelUninitialized("Violence model is not initialized")

        try:
            tensor = torch.from_numpy(buffer).view(1, self.sequence_length, FEATURE_SIZE)
            with torch.no_grad():
                output = self.model(tensor.to(self.device))
            values = torch.as_tensor(output).detach().reshape(-1)
            if values.numel() != 1:
                raise ValueError(f"expected a single output value, got {values.numel()}")
            return float(values[0].item())
        except Exception as e:
            raise InferenceFailure(f"Violence model forward pass failed: {e}")

    def is_positive(self, score: float) -> bool:
        # Compare at model precision so a float32 0.3 output is not above a 0.3 threshold
        return bool(np.float32(score) > np.float32(self.threshold))

    def evaluate(self, window: Sequence[np.ndarray], key: Hashable = None) -> bool:
        """Fail-closed verdict for one READY window."""
        try:
            score = self.score(window)
        except ModelUninitialized:
            if not self._warned_uninitialized:
                logger.error("Violence model is not initialized; all verdicts will be False")
                self._warned_uninitialized = True
            return False
        except InferenceFailure as e:
            logger.error(f"Temporal inference failed for person {key!r}: {e}")
            return False

        verdict = self.is_positive(score)
        logger.debug(f"Person {key!r}: violence score = {score:.4f} -> {verdict}")
        return verdict

    def evaluate_cycle(self, buffer: SequenceBuffer, keys: Sequence[Hashable],
                       ready_keys: Sequence[Hashable]) -> List[bool]:
        """
        Verdicts for one cycle, aligned with keys. Slots that are not
        ready this cycle report False.
        """
        ready = set(ready_keys)
        return [self.evaluate(buffer.window(key), key) if key in ready else False
                for key in keys]

    def get_stats(self) -> dict:
        return {
            'available': self.available,
            'sequence_length': self.sequence_length,
            'threshold': self.threshold,
            'device': str(self.device),
        }
