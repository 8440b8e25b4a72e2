"""
Result Aggregator — merges one cycle's signals into a ClassificationResult.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from engines.pose_classification.rules import PoseActivity

VIOLENT_STATUS = 'Violent Activity Detected'
NON_VIOLENT_STATUS = 'No Violent Activity'


@dataclass(frozen=True)
class ClassificationResult:
    """Immutable snapshot handed to the presentation side after each cycle."""
    timestamp_ms: float
    pose_labels: Tuple[str, ...] = ()
    activity: PoseActivity = PoseActivity.UNKNOWN
    violence: Tuple[bool, ...] = ()
    inference_time_ms: float = 0.0
    image_width: int = 0
    image_height: int = 0
    rejected: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def is_violent(self) -> bool:
        # Coarse any-of reduction across persons
        return any(self.violence)

    @property
    def status(self) -> str:
        return VIOLENT_STATUS if self.is_violent else NON_VIOLENT_STATUS

    @property
    def person_count(self) -> int:
        return len(self.pose_labels)

    def to_dict(self) -> dict:
        return {
            'timestamp_ms': self.timestamp_ms,
            'pose_labels': list(self.pose_labels),
            'activity': self.activity.value,
            'violence': list(self.violence),
            'is_violent': self.is_violent,
            'status': self.status,
            'inference_time_ms': round(self.inference_time_ms, 2),
            'image_width': self.image_width,
            'image_height': self.image_height,
            'rejected': list(self.rejected),
        }


def aggregate(timestamp_ms: float,
              pose_labels: Sequence[str],
              activity: PoseActivity,
              violence: Sequence[bool],
              image_width: int,
              image_height: int,
              started_ms: float,
              completed_ms: float,
              rejected: Optional[Sequence[int]] = None) -> ClassificationResult:
    """
    Build the cycle result.

    Args:
        timestamp_ms: upstream frame timestamp, carried as metadata only
        pose_labels: per-person learned labels, detection order
        activity: rule label for the first person
        violence: per-person temporal verdicts, detection order
        started_ms: local clock reading when the frame reached the pipeline
        completed_ms: local clock reading when aggregation finishes
        rejected: detection indices whose frame failed normalization
    """
    if len(pose_labels) != len(violence):
        raise ValueError(
            f"Per-person outputs are misaligned: {len(pose_labels)} labels, "
            f"{len(violence)} verdicts"
        )
    return ClassificationResult(
        timestamp_ms=timestamp_ms,
        pose_labels=tuple(pose_labels),
        activity=activity,
        violence=tuple(bool(v) for v in violence),
        inference_time_ms=max(0.0, completed_ms - started_ms),
        image_width=image_width,
        image_height=image_height,
        rejected=tuple(rejected or ()),
    )
