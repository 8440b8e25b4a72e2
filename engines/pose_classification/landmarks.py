"""
Landmarks — keypoint data model and the feature-vector normalizer.

A detected person is an ordered list of 33 keypoints in the MediaPipe
pose-landmarker layout. Classifiers consume a flat 99-value vector:
    xyz          — x, y, z per keypoint (per-frame pose classifier)
    xy_presence  — x, y, presence per keypoint (temporal classifier)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from engines.pose_classification.errors import InvalidLandmarkCount

NUM_LANDMARKS = 33
VALUES_PER_LANDMARK = 3
FEATURE_SIZE = NUM_LANDMARKS * VALUES_PER_LANDMARK  # 99

# MediaPipe 33-keypoint order
LANDMARK_NAMES = [
    'nose',
    'left_eye_inner', 'left_eye', 'left_eye_outer',
    'right_eye_inner', 'right_eye', 'right_eye_outer',
    'left_ear', 'right_ear',
    'mouth_left', 'mouth_right',
    'left_shoulder', 'right_shoulder',
    'left_elbow', 'right_elbow',
    'left_wrist', 'right_wrist',
    'left_pinky', 'right_pinky',
    'left_index', 'right_index',
    'left_thumb', 'right_thumb',
    'left_hip', 'right_hip',
    'left_knee', 'right_knee',
    'left_ankle', 'right_ankle',
    'left_heel', 'right_heel',
    'left_foot_index', 'right_foot_index',
]

LM = {name: idx for idx, name in enumerate(LANDMARK_NAMES)}


class FeatureLayout(str, Enum):
    XYZ = 'xyz'
    XY_PRESENCE = 'xy_presence'


@dataclass(frozen=True)
class Keypoint:
    """One landmark in normalized image space."""
    x: float
    y: float
    z: float = 0.0
    presence: Optional[float] = None


@dataclass(frozen=True)
class PersonFrame:
    """All keypoints of one detected person in one camera frame.

    Length is not validated here; normalize() rejects frames that do not
    hold exactly NUM_LANDMARKS keypoints.
    """
    keypoints: Tuple[Keypoint, ...]

    def __len__(self) -> int:
        return len(self.keypoints)

    def __getitem__(self, idx: int) -> Keypoint:
        return self.keypoints[idx]

    def point(self, name: str) -> Keypoint:
        """Get a single keypoint by landmark name."""
        return self.keypoints[LM[name]]

    @classmethod
    def from_array(cls, arr) -> 'PersonFrame':
        """
        Build a frame from an (K, 3) [x, y, z] or (K, 4) [x, y, z, presence] array.
        """
        arr = np.asarray(arr, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] not in (3, 4):
            raise ValueError(f"Expected (K, 3) or (K, 4) landmarks, got shape {arr.shape}")
        has_presence = arr.shape[1] == 4
        return cls(tuple(
            Keypoint(
                x=float(row[0]), y=float(row[1]), z=float(row[2]),
                presence=float(row[3]) if has_presence else None,
            )
            for row in arr
        ))


def normalize(frame: PersonFrame,
              layout: FeatureLayout = FeatureLayout.XYZ) -> np.ndarray:
    """
    Flatten a person frame into a FEATURE_SIZE float32 vector.

    Values are copied in landmark order with no smoothing; a missing
    presence score becomes 0.0.

    Raises:
        InvalidLandmarkCount: frame does not hold exactly 33 keypoints
    """
    if len(frame) != NUM_LANDMARKS:
        raise InvalidLandmarkCount(len(frame), NUM_LANDMARKS)

    vector = np.empty(FEATURE_SIZE, dtype=np.float32)
    for i, kp in enumerate(frame.keypoints):
        vector[i * 3] = kp.x
        vector[i * 3 + 1] = kp.y
        if layout == FeatureLayout.XY_PRESENCE:
            vector[i * 3 + 2] = kp.presence if kp.presence is not None else 0.0
        else:
            vector[i * 3 + 2] = kp.z
    return vector


def frames_from_arrays(persons: Sequence) -> Tuple[PersonFrame, ...]:
    """Convert a (P, K, 3|4) array (or list of per-person arrays) to frames."""
    return tuple(PersonFrame.from_array(p) for p in persons)
