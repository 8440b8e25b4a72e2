"""
Pose Classification Errors — failures raised inside the classification core.

Every error is contained at the smallest unit that produced it (one person
frame, one person slot, one classifier call). Only asset loading failures
escalate to the listener.
"""


class PoseClassificationError(Exception):
    """Base class for all pose classification failures."""


class InvalidLandmarkCount(PoseClassificationError):
    """A person frame does not carry exactly the expected number of landmarks."""

    def __init__(self, actual: int, expected: int = 33):
        super().__init__(f"Expected {expected} landmarks, got {actual}")
        self.actual = actual
        self.expected = expected


class EmptyInput(PoseClassificationError):
    """Classifier called with an empty feature vector."""


class ShapeMismatch(PoseClassificationError):
    """Classifier input width differs from what the model declares."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Invalid input size: Expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ModelUninitialized(PoseClassificationError):
    """The backing model was never loaded (or failed to load)."""


class InferenceFailure(PoseClassificationError):
    """The forward pass raised at runtime."""


class SlotNotReady(PoseClassificationError):
    """Temporal classification requested on a window that is not full."""

    def __init__(self, length: int, required: int):
        super().__init__(f"Window holds {length} frames, {required} required")
        self.length = length
        self.required = required


class LabelTableMalformed(PoseClassificationError):
    """Label resource is not a contiguous ordinal -> label mapping."""


class AssetLoadError(PoseClassificationError):
    """A model or label asset could not be acquired at startup."""

    def __init__(self, message: str, delegate_related: bool = False):
        super().__init__(message)
        self.delegate_related = delegate_related
