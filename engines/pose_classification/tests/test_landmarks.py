"""
Tests for the landmark data model and normalize().
"""

import numpy as np
import pytest

from engines.pose_classification.errors import InvalidLandmarkCount
from engines.pose_classification.landmarks import (
    FEATURE_SIZE, LANDMARK_NAMES, LM, FeatureLayout, Keypoint, PersonFrame,
    frames_from_arrays, normalize,
)


def _make_frame(count=33, with_presence=True):
    """Distinct, exactly representable coordinates per keypoint."""
    return PersonFrame(tuple(
        Keypoint(
            x=i / 64.0,
            y=(i + 1) / 64.0,
            z=-i / 128.0,
            presence=0.5 if with_presence else None,
        )
        for i in range(count)
    ))


class TestLandmarkLayout:
    def test_33_named_landmarks(self):
        assert len(LANDMARK_NAMES) == 33
        assert len(set(LANDMARK_NAMES)) == 33

    def test_canonical_indices(self):
        assert LM['nose'] == 0
        assert LM['left_shoulder'] == 11
        assert LM['right_shoulder'] == 12
        assert LM['left_wrist'] == 15
        assert LM['right_wrist'] == 16
        assert LM['left_hip'] == 23
        assert LM['right_knee'] == 26
        assert LM['right_foot_index'] == 32

    def test_point_by_name(self):
        frame = _make_frame()
        assert frame.point('left_hip') == frame[23]


class TestNormalize:
    @pytest.mark.parametrize('count', [0, 1, 17, 32, 34, 66])
    def test_wrong_count_rejected(self, count):
        with pytest.raises(InvalidLandmarkCount) as exc:
            normalize(_make_frame(count))
        assert exc.value.actual == count
        assert exc.value.expected == 33

    def test_output_length(self):
        vector = normalize(_make_frame())
        assert vector.shape == (FEATURE_SIZE,)
        assert vector.dtype == np.float32

    def test_xyz_layout_in_landmark_order(self):
        frame = _make_frame()
        vector = normalize(frame, FeatureLayout.XYZ)
        for i, kp in enumerate(frame.keypoints):
            assert vector[3 * i] == kp.x
            assert vector[3 * i + 1] == kp.y
            assert vector[3 * i + 2] == kp.z

    def test_presence_layout(self):
        frame = _make_frame()
        vector = normalize(frame, FeatureLayout.XY_PRESENCE)
        for i, kp in enumerate(frame.keypoints):
            assert vector[3 * i] == kp.x
            assert vector[3 * i + 1] == kp.y
            assert vector[3 * i + 2] == 0.5

    def test_missing_presence_defaults_to_zero(self):
        vector = normalize(_make_frame(with_presence=False), FeatureLayout.XY_PRESENCE)
        assert np.all(vector[2::3] == 0.0)

    def test_no_smoothing_between_calls(self):
        frame = _make_frame()
        first = normalize(frame)
        second = normalize(frame)
        np.testing.assert_array_equal(first, second)


class TestFromArray:
    def test_xyz_array(self):
        arr = np.zeros((33, 3))
        arr[5] = [0.25, 0.5, 0.75]
        frame = PersonFrame.from_array(arr)
        assert len(frame) == 33
        assert frame[5] == Keypoint(0.25, 0.5, 0.75, None)

    def test_xyz_presence_array(self):
        arr = np.full((33, 4), 0.5)
        frame = PersonFrame.from_array(arr)
        assert frame[0].presence == 0.5

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            PersonFrame.from_array(np.zeros((33, 2)))

    def test_short_array_builds_but_does_not_normalize(self):
        frame = PersonFrame.from_array(np.zeros((20, 3)))
        assert len(frame) == 20
        with pytest.raises(InvalidLandmarkCount):
            normalize(frame)

    def test_frames_from_arrays(self):
        frames = frames_from_arrays(np.zeros((2, 33, 4)))
        assert len(frames) == 2
        assert all(len(f) == 33 for f in frames)
