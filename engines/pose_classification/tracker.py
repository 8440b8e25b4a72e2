"""
Centroid Person Key — IoU + centroid hybrid identity for person slots.

Drop-in alternative to PositionalPersonKey: a person keeps the same key
while they stay matched frame to frame, regardless of detector order.
Works in normalized image coordinates, with boxes taken from the extent of
each person's landmarks.
"""

import logging
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np

from engines.pose_classification.landmarks import LM, PersonFrame
from engines.pose_classification.sequence_buffer import PersonKey

logger = logging.getLogger(__name__)


def _iou(box_a, box_b) -> float:
    """Compute Intersection-over-Union between two [x1,y1,x2,y2] boxes."""
    x1 = max(box_a[0], box_b[0])
    y1 = max(box_a[1], box_b[1])
    x2 = min(box_a[2], box_b[2])
    y2 = min(box_a[3], box_b[3])
    inter = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    if inter == 0:
        return 0.0
    area_a = (box_a[2] - box_a[0]) * (box_a[3] - box_a[1])
    area_b = (box_b[2] - box_b[0]) * (box_b[3] - box_b[1])
    return inter / (area_a + area_b - inter + 1e-6)


def landmark_box(frame: PersonFrame) -> List[float]:
    """[x1, y1, x2, y2] spanning all landmarks."""
    xs = [kp.x for kp in frame.keypoints]
    ys = [kp.y for kp in frame.keypoints]
    return [min(xs), min(ys), max(xs), max(ys)]


def hip_centroid(frame: PersonFrame) -> Tuple[float, float]:
    """Hip midpoint, or the landmark mean for frames without hips."""
    if len(frame) > max(LM['left_hip'], LM['right_hip']):
        l_hip, r_hip = frame[LM['left_hip']], frame[LM['right_hip']]
        return ((l_hip.x + r_hip.x) / 2.0, (l_hip.y + r_hip.y) / 2.0)
    return (float(np.mean([kp.x for kp in frame.keypoints])),
            float(np.mean([kp.y for kp in frame.keypoints])))


class CentroidPersonKey(PersonKey):
    """
    Matches detections across consecutive frames using:
    1. IoU overlap between landmark boxes (preferred)
    2. Hip-centroid distance fallback

    A track that goes unmatched for one cycle is dropped, mirroring the
    buffer's immediate slot deletion.
    """

    def __init__(self, max_distance: float = 0.15, iou_threshold: float = 0.2):
        """
        Args:
            max_distance: max normalized distance for centroid matching
            iou_threshold: minimum IoU to match via landmark box
        """
        self.max_distance = max_distance
        self.iou_threshold = iou_threshold

        self._last_centroid: Dict[int, Tuple[float, float]] = {}
        self._last_box: Dict[int, List[float]] = {}
        self._next_id = 0

    @staticmethod
    def _distance(p1: Tuple, p2: Tuple) -> float:
        return float(np.sqrt((p1[0] - p2[0])**2 + (p1[1] - p2[1])**2))

    def assign(self, frames: Sequence[PersonFrame]) -> List[Hashable]:
        keys: List[Hashable] = []
        used = set()
        centroids: Dict[int, Tuple[float, float]] = {}
        boxes: Dict[int, List[float]] = {}

        for frame in frames:
            if len(frame) == 0:
                # Nothing to match on; always a new identity
                tid = self._new_id()
                keys.append(tid)
                used.add(tid)
                continue

            centroid = hip_centroid(frame)
            box = landmark_box(frame)
            best_tid: Optional[int] = None
            best_score = -1.0

            for tid, last in self._last_centroid.items():
                if tid in used:
                    continue

                score = 0.0
                iou_val = _iou(box, self._last_box[tid])
                if iou_val >= self.iou_threshold:
                    score = iou_val + 1.0  # IoU scores get priority

                if score < 0.01:
                    dist = self._distance(centroid, last)
                    if dist < self.max_distance:
                        score = 1.0 - (dist / self.max_distance)

                if score > best_score:
                    best_score = score
                    best_tid = tid

            if best_tid is None or best_score <= 0:
                best_tid = self._new_id()

            keys.append(best_tid)
            used.add(best_tid)
            centroids[best_tid] = centroid
            boxes[best_tid] = box

        self._last_centroid = centroids
        self._last_box = boxes
        return keys

    def _new_id(self) -> int:
        tid = self._next_id
        self._next_id += 1
        return tid

    def reset(self) -> None:
        self._last_centroid.clear()
        self._last_box.clear()

    def get_stats(self) -> dict:
        return {
            'active_tracks': len(self._last_centroid),
            'next_id': self._next_id,
        }
