"""
Pose Sequence Pipeline — one inference cycle from landmarks to result.

    FrameInput -> normalize -> { PoseClassifier (xyz, per person)
                               { SequenceBuffer (xy_presence, per person) -> TemporalClassifier
               -> rules (first person only)
               -> aggregate -> ClassificationResult

Not thread-safe: run every cycle from the same worker thread.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np

from engines.pose_classification.aggregator import ClassificationResult, aggregate
from engines.pose_classification.classifier import INVALID_POSE_INPUT, PoseClassifier
from engines.pose_classification.errors import InvalidLandmarkCount
from engines.pose_classification.landmarks import (
    FeatureLayout, PersonFrame, frames_from_arrays, normalize,
)
from engines.pose_classification.rules import PoseActivity, PoseRules, evaluate_rules
from engines.pose_classification.sequence_buffer import (
    PersonKey, PositionalPersonKey, SequenceBuffer,
)
from engines.pose_classification.temporal import TemporalClassifier

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class FrameInput:
    """
    What the upstream pose detector delivers for one camera frame.

    timestamp_ms is the detector's own stamp and is only passed through.
    received_ms is set from the pipeline clock when the frame is handed to
    the inference worker; latency is measured from it.
    """
    timestamp_ms: float
    persons: Tuple[PersonFrame, ...] = field(default_factory=tuple)
    image_width: int = 0
    image_height: int = 0
    received_ms: Optional[float] = None


def frame_from_arrays(timestamp_ms: float, persons: Sequence,
                      image_width: int = 0, image_height: int = 0) -> FrameInput:
    """Build a FrameInput from per-person (33, 3|4) landmark arrays."""
    return FrameInput(
        timestamp_ms=timestamp_ms,
        persons=frames_from_arrays(persons),
        image_width=image_width,
        image_height=image_height,
    )


class PoseSequencePipeline:
    """Owns the sequence buffer and runs classification cycles."""

    def __init__(self, classifier: PoseClassifier, temporal: TemporalClassifier,
                 buffer: Optional[SequenceBuffer] = None,
                 person_key: Optional[PersonKey] = None,
                 rules: Optional[PoseRules] = None,
                 clock: Optional[Callable[[], float]] = None):
        """
        Args:
            classifier: per-frame learned classifier
            temporal: temporal classifier; its sequence_length sizes the buffer
            buffer: sequence buffer (created from temporal.sequence_length if omitted)
            person_key: identity strategy (positional index by default)
            rules: geometric rule thresholds
            clock: millisecond clock used for FrameInput.received_ms and latency
        """
        self.classifier = classifier
        self.temporal = temporal
        self.buffer = buffer or SequenceBuffer(capacity=temporal.sequence_length)
        if self.buffer.capacity != temporal.sequence_length:
            raise ValueError(
                f"Buffer capacity {self.buffer.capacity} does not match temporal "
                f"sequence length {temporal.sequence_length}"
            )
        self.person_key = person_key or PositionalPersonKey()
        self.rules = rules or PoseRules()
        self.clock = clock or monotonic_ms
        self.cycles = 0

    def run_cycle(self, frame: FrameInput) -> ClassificationResult:
        started_ms = frame.received_ms if frame.received_ms is not None else self.clock()
        persons = list(frame.persons)
        keys = self.person_key.assign(persons)
        if len(keys) != len(persons) or len(set(keys)) != len(keys):
            raise ValueError(f"PersonKey returned invalid keys {keys!r} for {len(persons)} persons")

        labels: List[str] = []
        vectors: Dict[Hashable, np.ndarray] = {}
        rejected: List[int] = []

        for idx, (key, person) in enumerate(zip(keys, persons)):
            try:
                pose_vector = normalize(person, FeatureLayout.XYZ)
                sequence_vector = normalize(person, FeatureLayout.XY_PRESENCE)
            except InvalidLandmarkCount as e:
                logger.warning(f"Rejected person {idx} at {frame.timestamp_ms}ms: {e}")
                labels.append(INVALID_POSE_INPUT)
                rejected.append(idx)
                continue
            labels.append(self.classifier.classify(pose_vector))
            vectors[key] = sequence_vector

        ready = self.buffer.update(keys, vectors)
        violence = self.temporal.evaluate_cycle(self.buffer, keys, ready)

        # Rules only ever look at the first detected person
        first = persons[0] if persons and 0 not in rejected else None
        activity = evaluate_rules(first, self.rules) if first is not None else PoseActivity.UNKNOWN

        self.cycles += 1
        return aggregate(
            timestamp_ms=frame.timestamp_ms,
            pose_labels=labels,
            activity=activity,
            violence=violence,
            image_width=frame.image_width,
            image_height=frame.image_height,
            started_ms=started_ms,
            completed_ms=self.clock(),
            rejected=rejected,
        )

    def reset(self) -> None:
        self.buffer.clear()
        self.person_key.reset()

    def get_stats(self) -> dict:
        return {
            'cycles': self.cycles,
            'buffer': self.buffer.get_stats(),
            'classifier': self.classifier.get_stats(),
            'temporal': self.temporal.get_stats(),
        }
