"""
Pose Rules — deterministic geometric heuristics over one person frame.

Coordinates are normalized image space, y grows downward, so "above" means
a smaller y. Thresholds live in PoseRules for easy adjustment.

The combined rule label only ever looks at the FIRST detected person
(see pipeline.py); the learned temporal path evaluates every person.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from engines.pose_classification.landmarks import LM, Keypoint, PersonFrame


class PoseActivity(str, Enum):
    PLANK = 'Plank Pose'
    TREE = 'Tree Pose'
    RIGHT_HAND_RAISED = 'Right Hand Raised'
    SQUAT = 'Squat Pose'
    UNKNOWN = 'Unknown'


# Evaluation order for the combined label; first match wins
RULE_PRECEDENCE: List[PoseActivity] = [
    PoseActivity.PLANK,
    PoseActivity.TREE,
    PoseActivity.RIGHT_HAND_RAISED,
    PoseActivity.SQUAT,
]


@dataclass
class PoseRules:
    """
    Configurable thresholds for the geometric pose rules.
    Tuned for full-body framing with MediaPipe normalized coordinates.
    """

    # ── Plank ──
    alignment_threshold: float = 0.1     # summed |dy| shoulder-hip and hip-ankle

    # ── Tree ──
    tree_foot_distance: float = 0.1      # ankle to opposite knee, per axis

    # ── Squat ──
    squat_knee_angle: float = 100.0      # degrees, both knees bent below this
    feet_level_threshold: float = 0.1    # |left ankle y - right ankle y|


def calculate_angle(a: Tuple[float, float], b: Tuple[float, float],
                    c: Tuple[float, float]) -> float:
    """Angle at b formed by a-b-c, in degrees within [0, 180]."""
    radians = math.atan2(c[1] - b[1], c[0] - b[0]) - math.atan2(a[1] - b[1], a[0] - b[0])
    angle = abs(math.degrees(radians))
    if angle > 180:
        angle = 360 - angle
    return angle


def _xy(kp: Keypoint) -> Tuple[float, float]:
    return (kp.x, kp.y)


def is_right_hand_raised(frame: PersonFrame) -> bool:
    return frame[LM['right_wrist']].y < frame[LM['right_shoulder']].y


def is_plank_pose(frame: PersonFrame, rules: Optional[PoseRules] = None) -> bool:
    """Shoulders, hips and ankles roughly level (body held horizontal)."""
    rules = rules or PoseRules()
    l_sh, r_sh = frame[LM['left_shoulder']], frame[LM['right_shoulder']]
    l_hip, r_hip = frame[LM['left_hip']], frame[LM['right_hip']]
    l_ank, r_ank = frame[LM['left_ankle']], frame[LM['right_ankle']]

    shoulder_hip = abs(l_sh.y - l_hip.y) + abs(r_sh.y - r_hip.y)
    hip_ankle = abs(l_hip.y - l_ank.y) + abs(r_hip.y - r_ank.y)
    return shoulder_hip < rules.alignment_threshold and hip_ankle < rules.alignment_threshold


def is_tree_pose(frame: PersonFrame, rules: Optional[PoseRules] = None) -> bool:
    """Both hands above the shoulders and one foot resting at the opposite knee."""
    rules = rules or PoseRules()
    d = rules.tree_foot_distance

    hands_raised = (frame[LM['left_wrist']].y < frame[LM['left_shoulder']].y and
                    frame[LM['right_wrist']].y < frame[LM['right_shoulder']].y)

    l_ank, r_ank = frame[LM['left_ankle']], frame[LM['right_ankle']]
    l_knee, r_knee = frame[LM['left_knee']], frame[LM['right_knee']]
    left_foot_up = abs(l_ank.x - r_knee.x) < d and abs(l_ank.y - r_knee.y) < d
    right_foot_up = abs(r_ank.x - l_knee.x) < d and abs(r_ank.y - l_knee.y) < d

    return hands_raised and (left_foot_up or right_foot_up)


def is_squat_pose(frame: PersonFrame, rules: Optional[PoseRules] = None) -> bool:
    """Both knees bent, hips below knees, feet level."""
    rules = rules or PoseRules()
    l_hip, r_hip = frame[LM['left_hip']], frame[LM['right_hip']]
    l_knee, r_knee = frame[LM['left_knee']], frame[LM['right_knee']]
    l_ank, r_ank = frame[LM['left_ankle']], frame[LM['right_ankle']]

    left_angle = calculate_angle(_xy(l_hip), _xy(l_knee), _xy(l_ank))
    right_angle = calculate_angle(_xy(r_hip), _xy(r_knee), _xy(r_ank))

    knees_bent = left_angle < rules.squat_knee_angle and right_angle < rules.squat_knee_angle
    hips_lowered = l_hip.y > l_knee.y and r_hip.y > r_knee.y
    feet_level = abs(l_ank.y - r_ank.y) < rules.feet_level_threshold
    return knees_bent and hips_lowered and feet_level


def evaluate_all(frame: PersonFrame,
                 rules: Optional[PoseRules] = None) -> Dict[PoseActivity, bool]:
    """Evaluate every rule independently."""
    rules = rules or PoseRules()
    return {
        PoseActivity.PLANK: is_plank_pose(frame, rules),
        PoseActivity.TREE: is_tree_pose(frame, rules),
        PoseActivity.RIGHT_HAND_RAISED: is_right_hand_raised(frame),
        PoseActivity.SQUAT: is_squat_pose(frame, rules),
    }


def evaluate_rules(frame: Optional[PersonFrame],
                   rules: Optional[PoseRules] = None) -> PoseActivity:
    """Combine all rules into one label using RULE_PRECEDENCE."""
    if frame is None:
        return PoseActivity.UNKNOWN
    verdicts = evaluate_all(frame, rules)
    for activity in RULE_PRECEDENCE:
        if verdicts[activity]:
            return activity
    return PoseActivity.UNKNOWN
