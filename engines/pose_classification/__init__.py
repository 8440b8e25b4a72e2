"""
Pose Classification Engine
Classifies 33-keypoint pose landmarks per frame (learned + geometric rules)
and per person over a sliding window (violence LSTM).

Usage:
    from engines.pose_classification import (
        PoseClassifier, TemporalClassifier, PoseSequencePipeline, FrameInput,
    )

    pipeline = PoseSequencePipeline(classifier, temporal)
    result = pipeline.run_cycle(FrameInput(timestamp_ms, persons, width, height))
"""

from engines.pose_classification.landmarks import (
    Keypoint, PersonFrame, FeatureLayout, normalize, LANDMARK_NAMES, FEATURE_SIZE,
)
from engines.pose_classification.rules import PoseActivity, PoseRules, evaluate_rules, calculate_angle
from engines.pose_classification.labels import LabelTable
from engines.pose_classification.classifier import PoseClassifier
from engines.pose_classification.sequence_buffer import (
    SequenceBuffer, SlotState, PersonKey, PositionalPersonKey,
)
from engines.pose_classification.tracker import CentroidPersonKey
from engines.pose_classification.temporal import TemporalClassifier
from engines.pose_classification.aggregator import ClassificationResult, aggregate
from engines.pose_classification.pipeline import PoseSequencePipeline, FrameInput, frame_from_arrays
from engines.pose_classification.settings import PipelineSettings, Delegate, ModelVariant

__all__ = [
    'Keypoint', 'PersonFrame', 'FeatureLayout', 'normalize', 'LANDMARK_NAMES', 'FEATURE_SIZE',
    'PoseActivity', 'PoseRules', 'evaluate_rules', 'calculate_angle',
    'LabelTable', 'PoseClassifier',
    'SequenceBuffer', 'SlotState', 'PersonKey', 'PositionalPersonKey', 'CentroidPersonKey',
    'TemporalClassifier',
    'ClassificationResult', 'aggregate',
    'PoseSequencePipeline', 'FrameInput', 'frame_from_arrays',
    'PipelineSettings', 'Delegate', 'ModelVariant',
]
