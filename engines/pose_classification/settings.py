"""
Pipeline Settings — runtime-tunable parameters for a classification session.

Any change produces a new PipelineSettings; the worker rebuilds the whole
session from it (see services/pose_session.py).
"""

from dataclasses import dataclass, replace
from enum import Enum

from engines.pose_classification.sequence_buffer import DEFAULT_SEQUENCE_LENGTH
from engines.pose_classification.temporal import DEFAULT_VIOLENCE_THRESHOLD

THRESHOLD_STEP = 0.1
THRESHOLD_FLOOR = 0.2
THRESHOLD_CEILING = 0.9
GALLERY_THRESHOLD_CEILING = 0.8

CONFIDENCE_FIELDS = (
    'min_pose_detection_confidence',
    'min_pose_tracking_confidence',
    'min_pose_presence_confidence',
)


class Delegate(str, Enum):
    CPU = 'cpu'
    GPU = 'gpu'


class ModelVariant(str, Enum):
    FULL = 'full'
    LITE = 'lite'
    HEAVY = 'heavy'

    @property
    def asset_name(self) -> str:
        """Landmark detector bundle for this variant."""
        return f'pose_landmarker_{self.value}.task'


@dataclass(frozen=True)
class PipelineSettings:
    """Everything a session is built from."""

    # ── Landmark detector (consumed by the upstream collaborator) ──
    min_pose_detection_confidence: float = 0.7
    min_pose_tracking_confidence: float = 0.7
    min_pose_presence_confidence: float = 0.7
    max_poses: int = 5
    model_variant: ModelVariant = ModelVariant.FULL

    # ── Inference ──
    delegate: Delegate = Delegate.CPU
    sequence_length: int = DEFAULT_SEQUENCE_LENGTH
    violence_threshold: float = DEFAULT_VIOLENCE_THRESHOLD

    # ── Assets ──
    pose_classifier_path: str = 'assets/pose_classifier.pt'
    pose_labels_path: str = 'assets/pose_labels.json'
    violence_model_path: str = 'assets/violence_lstm.pt'

    def __post_init__(self):
        for name in CONFIDENCE_FIELDS:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.sequence_length < 1:
            raise ValueError(f"sequence_length must be positive, got {self.sequence_length}")
        if self.max_poses < 1:
            raise ValueError(f"max_poses must be positive, got {self.max_poses}")
        # Accept plain strings from env/config
        object.__setattr__(self, 'delegate', Delegate(self.delegate))
        object.__setattr__(self, 'model_variant', ModelVariant(self.model_variant))

    @classmethod
    def from_config(cls, config) -> 'PipelineSettings':
        """Build settings from a Config-style class (see config.py)."""
        return cls(
            min_pose_detection_confidence=config.MIN_POSE_DETECTION_CONFIDENCE,
            min_pose_tracking_confidence=config.MIN_POSE_TRACKING_CONFIDENCE,
            min_pose_presence_confidence=config.MIN_POSE_PRESENCE_CONFIDENCE,
            max_poses=config.MAX_POSES,
            model_variant=ModelVariant(config.POSE_MODEL_VARIANT.lower()),
            delegate=Delegate(config.DELEGATE.lower()),
            sequence_length=config.SEQUENCE_LENGTH,
            violence_threshold=config.VIOLENCE_THRESHOLD,
            pose_classifier_path=config.POSE_CLASSIFIER_MODEL,
            pose_labels_path=config.POSE_LABELS_FILE,
            violence_model_path=config.VIOLENCE_MODEL,
        )

    def with_changes(self, **changes) -> 'PipelineSettings':
        return replace(self, **changes)

    def raise_threshold(self, name: str,
                        ceiling: float = THRESHOLD_CEILING) -> 'PipelineSettings':
        """Step a confidence threshold up by 0.1 unless it is already past the ceiling."""
        if name not in CONFIDENCE_FIELDS:
            raise ValueError(f"Unknown threshold {name!r}")
        value = getattr(self, name)
        if value > ceiling:
            return self
        return replace(self, **{name: round(min(1.0, value + THRESHOLD_STEP), 2)})

    def lower_threshold(self, name: str,
                        floor: float = THRESHOLD_FLOOR) -> 'PipelineSettings':
        """Step a confidence threshold down by 0.1 unless it is already below the floor."""
        if name not in CONFIDENCE_FIELDS:
            raise ValueError(f"Unknown threshold {name!r}")
        value = getattr(self, name)
        if value < floor:
            return self
        return replace(self, **{name: round(max(0.0, value - THRESHOLD_STEP), 2)})

    @property
    def use_gpu(self) -> bool:
        return self.delegate == Delegate.GPU

    def to_dict(self) -> dict:
        return {
            'min_pose_detection_confidence': self.min_pose_detection_confidence,
            'min_pose_tracking_confidence': self.min_pose_tracking_confidence,
            'min_pose_presence_confidence': self.min_pose_presence_confidence,
            'max_poses': self.max_poses,
            'model_variant': self.model_variant.value,
            'delegate': self.delegate.value,
            'sequence_length': self.sequence_length,
            'violence_threshold': self.violence_threshold,
        }
