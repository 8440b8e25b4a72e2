"""
Pose Session — owned bundle of settings, loaded models and sequence state.

A session is never mutated in place. Changing any setting tears the old
session down and builds a new one:

    session = session.rebuild(new_settings)

Both steps must run on the inference worker thread (services/inference_worker.py)
so a delegate is always created and released on the thread that uses it.
"""

import logging
import threading
from typing import Callable, Optional

import torch

from engines.pose_classification.aggregator import ClassificationResult
from engines.pose_classification.classifier import PoseClassifier
from engines.pose_classification.errors import AssetLoadError, LabelTableMalformed
from engines.pose_classification.labels import LabelTable
from engines.pose_classification.models import (
    load_pose_classifier, load_violence_model, resolve_device,
)
from engines.pose_classification.pipeline import FrameInput, PoseSequencePipeline
from engines.pose_classification.sequence_buffer import PersonKey, SequenceBuffer
from engines.pose_classification.settings import PipelineSettings
from engines.pose_classification.temporal import TemporalClassifier

logger = logging.getLogger(__name__)

# Error codes passed to the listener
OTHER_ERROR = 0
GPU_ERROR = 1

ErrorCallback = Callable[[str, int], None]


class Session:
    """Settings + models + buffer for one configuration."""

    def __init__(self, settings: PipelineSettings, pipeline: PoseSequencePipeline,
                 device: Optional[torch.device] = None,
                 on_error: Optional[ErrorCallback] = None,
                 person_key_factory: Optional[Callable[[], PersonKey]] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.settings = settings
        self.pipeline = pipeline
        self.device = device
        self.owner_thread = threading.get_ident()
        self._on_error = on_error
        self._person_key_factory = person_key_factory
        self._clock = clock
        self._closed = False

    @classmethod
    def create(cls, settings: PipelineSettings,
               on_error: Optional[ErrorCallback] = None,
               person_key_factory: Optional[Callable[[], PersonKey]] = None,
               clock: Optional[Callable[[], float]] = None) -> 'Session':
        """
        Load every asset for the given settings.

        Asset failures do not raise: each is logged, reported once through
        on_error (GPU_ERROR when the delegate is at fault) and the affected
        classifier runs uninitialized (fail-closed).
        """
        def report(message: str, code: int = OTHER_ERROR):
            logger.error(message)
            if on_error is not None:
                on_error(message, code)

        device = None
        try:
            device = resolve_device(settings.use_gpu)
        except AssetLoadError as e:
            report(f"Inference delegate failed to initialize: {e}",
                   GPU_ERROR if e.delegate_related else OTHER_ERROR)

        labels = None
        pose_model = None
        violence_model = None

        if device is not None:
            try:
                labels = LabelTable.load(settings.pose_labels_path)
            except (LabelTableMalformed, OSError) as e:
                report(f"Pose labels failed to load: {e}")

            try:
                pose_model = load_pose_classifier(settings.pose_classifier_path, device)
            except AssetLoadError as e:
                report(f"Pose classifier failed to load: {e}",
                       GPU_ERROR if e.delegate_related else OTHER_ERROR)

            try:
                violence_model = load_violence_model(settings.violence_model_path, device,
                                                     seq_len=settings.sequence_length)
            except AssetLoadError as e:
                report(f"Violence model failed to load: {e}",
                       GPU_ERROR if e.delegate_related else OTHER_ERROR)

        try:
            classifier = PoseClassifier(pose_model, labels, device)
        except LabelTableMalformed as e:
            report(f"Pose classifier does not match its label table: {e}")
            classifier = PoseClassifier(None, labels, device)

        temporal = TemporalClassifier(
            violence_model,
            sequence_length=settings.sequence_length,
            threshold=settings.violence_threshold,
            device=device,
        )
        pipeline = PoseSequencePipeline(
            classifier,
            temporal,
            buffer=SequenceBuffer(capacity=settings.sequence_length),
            person_key=person_key_factory() if person_key_factory else None,
            clock=clock,
        )

        logger.info(
            f"Session ready (delegate={settings.delegate.value}, "
            f"classifier={classifier.available}, violence={temporal.available}, "
            f"window={settings.sequence_length})"
        )
        return cls(settings, pipeline, device, on_error, person_key_factory, clock)

    @property
    def closed(self) -> bool:
        return self._closed

    def run_cycle(self, frame: FrameInput) -> ClassificationResult:
        if self._closed:
            raise RuntimeError("Session is closed")
        return self.pipeline.run_cycle(frame)

    def rebuild(self, settings: PipelineSettings,
                factory: Optional[Callable[[PipelineSettings], 'Session']] = None) -> 'Session':
        """
        Tear this session down and return a fresh one for settings.

        Args:
            factory: builds the replacement; defaults to Session.create with
                this session's callbacks
        """
        self.close()
        if factory is not None:
            return factory(settings)
        return Session.create(settings, self._on_error, self._person_key_factory, self._clock)

    def close(self) -> None:
        """Release models and drop all buffered sequences."""
        if self._closed:
            return
        self._closed = True
        self.pipeline.reset()
        self.pipeline.classifier.model = None
        self.pipeline.temporal.model = None
        if self.device is not None and self.device.type == 'cuda':
            torch.cuda.empty_cache()
        logger.info("Session closed")

    def get_stats(self) -> dict:
        stats = self.pipeline.get_stats()
        stats['settings'] = self.settings.to_dict()
        stats['closed'] = self._closed
        return stats
