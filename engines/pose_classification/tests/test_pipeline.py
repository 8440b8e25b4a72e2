"""
End-to-end cycle tests for PoseSequencePipeline with recording fake models.
"""

from dataclasses import replace

import numpy as np
import pytest
import torch
import torch.nn as nn

from engines.pose_classification.classifier import (
    INVALID_POSE_INPUT, MODEL_NOT_INITIALIZED, PoseClassifier,
)
from engines.pose_classification.labels import LabelTable
from engines.pose_classification.landmarks import Keypoint, PersonFrame
from engines.pose_classification.pipeline import (
    FrameInput, PoseSequencePipeline, frame_from_arrays,
)
from engines.pose_classification.rules import PoseActivity
from engines.pose_classification.sequence_buffer import PersonKey, SequenceBuffer
from engines.pose_classification.temporal import TemporalClassifier


LABELS = LabelTable.from_mapping({"0": "Downdog", "1": "Goddess", "2": "Plank"})


class _PoseModel(nn.Module):
    input_dim = 99
    num_classes = 3

    def __init__(self):
        super().__init__()
        self.calls = 0

    def forward(self, x):
        self.calls += 1
        return torch.tensor([[0.1, 0.2, 0.7]])


class _ViolenceModel(nn.Module):
    def __init__(self, score=0.9, fail=False):
        super().__init__()
        self.score = score
        self.fail = fail
        self.inputs = []

    def forward(self, x):
        self.inputs.append(x.clone())
        if self.fail:
            raise RuntimeError("interpreter error")
        return torch.tensor([[self.score]])


def _person(t, count=33, shift=0.0):
    """Frame t: x encodes t exactly, presence 1."""
    return PersonFrame(tuple(
        Keypoint(x=t / 16.0 + shift, y=0.5, z=0.0, presence=1.0) for _ in range(count)
    ))


def _frame(t, persons):
    return FrameInput(timestamp_ms=t * 33.0, persons=tuple(persons),
                      image_width=640, image_height=480)


def _pipeline(violence_model=None, pose_model=None, window=10, clock=lambda: 0.0, **kwargs):
    violence_model = violence_model if violence_model is not None else _ViolenceModel()
    pose_model = pose_model if pose_model is not None else _PoseModel()
    return PoseSequencePipeline(
        PoseClassifier(pose_model, LABELS),
        TemporalClassifier(violence_model, sequence_length=window),
        clock=clock,
        **kwargs,
    )


class TestEndToEnd:
    def test_nine_frames_do_not_invoke_temporal_model(self):
        model = _ViolenceModel()
        pipeline = _pipeline(model)
        for t in range(9):
            result = pipeline.run_cycle(_frame(t, [_person(t)]))
            assert result.violence == (False,)
        assert model.inputs == []

    def test_tenth_frame_invokes_once_oldest_first(self):
        model = _ViolenceModel()
        pipeline = _pipeline(model)
        for t in range(10):
            result = pipeline.run_cycle(_frame(t, [_person(t)]))

        assert len(model.inputs) == 1
        seen = model.inputs[0]
        assert seen.numel() == 990
        assert seen.shape == (1, 10, 99)
        assert [seen[0, i, 0].item() for i in range(10)] == [t / 16.0 for t in range(10)]
        # presence layout: x, y, presence
        assert seen[0, 0, 1].item() == 0.5
        assert seen[0, 0, 2].item() == 1.0
        assert result.violence == (True,)
        assert result.is_violent

    def test_eleventh_frame_evicts_oldest(self):
        model = _ViolenceModel()
        pipeline = _pipeline(model)
        for t in range(11):
            pipeline.run_cycle(_frame(t, [_person(t)]))

        assert len(model.inputs) == 2
        latest = model.inputs[1]
        assert [latest[0, i, 0].item() for i in range(10)] == [t / 16.0 for t in range(1, 11)]

    def test_labels_every_cycle(self):
        pose_model = _PoseModel()
        pipeline = _pipeline(pose_model=pose_model)
        for t in range(3):
            result = pipeline.run_cycle(_frame(t, [_person(t), _person(t, shift=0.25)]))
        assert result.pose_labels == ('Plank', 'Plank')
        assert pose_model.calls == 6

    def test_result_carries_frame_metadata(self):
        result = _pipeline().run_cycle(_frame(2, [_person(2)]))
        assert result.timestamp_ms == 66.0
        assert result.image_width == 640
        assert result.image_height == 480

    def test_empty_frame(self):
        result = _pipeline().run_cycle(_frame(0, []))
        assert result.pose_labels == ()
        assert result.violence == ()
        assert result.activity == PoseActivity.UNKNOWN
        assert result.status == 'No Violent Activity'


class TestLatency:
    def test_measured_from_cycle_start(self):
        pipeline = _pipeline(clock=iter([100.0, 130.0]).__next__)
        result = pipeline.run_cycle(_frame(50, [_person(0)]))
        assert result.inference_time_ms == 30.0
        assert result.timestamp_ms == 1650.0

    def test_measured_from_arrival(self):
        pipeline = _pipeline(clock=lambda: 25.0)
        frame = replace(_frame(0, [_person(0)]), received_ms=10.0)
        assert pipeline.run_cycle(frame).inference_time_ms == 15.0

    def test_recorded_timestamp_with_default_clock(self):
        pipeline = PoseSequencePipeline(
            PoseClassifier(_PoseModel(), LABELS),
            TemporalClassifier(_ViolenceModel()),
        )
        frame = frame_from_arrays(1200.0, [np.full((33, 4), 0.5)])
        result = pipeline.run_cycle(frame)
        assert 0.0 <= result.inference_time_ms < 1000.0
        assert result.timestamp_ms == 1200.0


class TestSlotMaintenance:
    def test_disappearing_person_restarts_window(self):
        model = _ViolenceModel()
        pipeline = _pipeline(model, window=3)
        for t in range(3):
            pipeline.run_cycle(_frame(t, [_person(t)]))
        assert len(model.inputs) == 1

        pipeline.run_cycle(_frame(3, []))
        assert len(pipeline.buffer) == 0

        for t in range(4, 6):
            result = pipeline.run_cycle(_frame(t, [_person(t)]))
            assert result.violence == (False,)
        assert len(model.inputs) == 1
        pipeline.run_cycle(_frame(6, [_person(6)]))
        assert len(model.inputs) == 2

    def test_person_count_drop_prunes_slots(self):
        pipeline = _pipeline(window=3)
        for t in range(3):
            pipeline.run_cycle(_frame(t, [_person(t), _person(t, shift=0.25)]))
        assert pipeline.buffer.keys() == [0, 1]
        result = pipeline.run_cycle(_frame(3, [_person(3)]))
        assert pipeline.buffer.keys() == [0]
        assert result.violence == (True,)


class TestInvalidInput:
    def test_rejected_person_isolated(self):
        model = _ViolenceModel()
        pipeline = _pipeline(model, window=2)
        for t in range(2):
            result = pipeline.run_cycle(_frame(t, [_person(t), _person(t, count=20)]))

        assert result.pose_labels == ('Plank', INVALID_POSE_INPUT)
        assert result.violence == (True, False)
        assert result.rejected == (1,)
        assert pipeline.buffer.keys() == [0]
        assert len(model.inputs) == 1

    def test_rejected_frame_does_not_append(self):
        pipeline = _pipeline(window=3)
        pipeline.run_cycle(_frame(0, [_person(0)]))
        pipeline.run_cycle(_frame(1, [_person(1, count=10)]))
        assert len(pipeline.buffer.window(0)) == 1

    def test_rejected_first_person_gives_unknown_activity(self):
        result = _pipeline().run_cycle(_frame(0, [_person(0, count=32), _person(0)]))
        assert result.activity == PoseActivity.UNKNOWN


class TestFailureContainment:
    def test_temporal_failure_is_not_violent(self):
        model = _ViolenceModel(fail=True)
        pipeline = _pipeline(model, window=2)
        for t in range(3):
            result = pipeline.run_cycle(_frame(t, [_person(t)]))
        assert result.violence == (False,)
        assert result.pose_labels == ('Plank',)
        assert len(model.inputs) == 2

    def test_uninitialized_classifiers_keep_running(self):
        pipeline = PoseSequencePipeline(
            PoseClassifier(None, None),
            TemporalClassifier(None, sequence_length=2),
            clock=lambda: 0.0,
        )
        for t in range(3):
            result = pipeline.run_cycle(_frame(t, [_person(t)]))
        assert result.pose_labels == (MODEL_NOT_INITIALIZED,)
        assert result.violence == (False,)
        # sequences still buffer
        assert len(pipeline.buffer.window(0)) == 2

    def test_threshold_boundary(self):
        at = _pipeline(_ViolenceModel(score=0.3), window=1)
        above = _pipeline(_ViolenceModel(score=0.30001), window=1)
        assert at.run_cycle(_frame(0, [_person(0)])).violence == (False,)
        assert above.run_cycle(_frame(0, [_person(0)])).violence == (True,)


class TestConfiguration:
    def test_buffer_must_match_window(self):
        with pytest.raises(ValueError):
            _pipeline(window=10, buffer=SequenceBuffer(5))

    def test_bad_person_key_rejected(self):
        class Duplicates(PersonKey):
            def assign(self, frames):
                return [0] * len(frames)

        pipeline = _pipeline(person_key=Duplicates())
        with pytest.raises(ValueError):
            pipeline.run_cycle(_frame(0, [_person(0), _person(0)]))

    def test_reset_clears_buffer(self):
        pipeline = _pipeline()
        pipeline.run_cycle(_frame(0, [_person(0)]))
        pipeline.reset()
        assert len(pipeline.buffer) == 0

    def test_stats(self):
        pipeline = _pipeline()
        pipeline.run_cycle(_frame(0, [_person(0)]))
        stats = pipeline.get_stats()
        assert stats['cycles'] == 1
        assert stats['buffer']['slots'] == 1
        assert stats['temporal']['sequence_length'] == 10


class TestFrameFromArrays:
    def test_builds_persons(self):
        frame = frame_from_arrays(5.0, [np.zeros((33, 4)), np.zeros((33, 3))], 320, 240)
        assert len(frame.persons) == 2
        assert frame.image_width == 320

    def test_feeds_pipeline(self):
        pipeline = _pipeline(window=1)
        result = pipeline.run_cycle(frame_from_arrays(0.0, [np.full((33, 4), 0.5)]))
        assert result.violence == (True,)
