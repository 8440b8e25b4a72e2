"""
Sequence Buffer — per-person sliding windows of feature vectors.

Each person slot is a bounded FIFO of the last N feature vectors:

    ABSENT -> FILLING (1..N-1) -> READY (N) -> sliding READY -> ABSENT

A slot is deleted the first cycle its key is missing; a person who comes
back starts again from an empty window.

Person identity comes from a PersonKey. The default, PositionalPersonKey,
uses the detection index within the frame, so identities shift when the
detector reorders people between frames. CentroidPersonKey (tracker.py)
can be swapped in without touching the buffer.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Dict, Hashable, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from engines.pose_classification.landmarks import PersonFrame

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE_LENGTH = 10


class SlotState(str, Enum):
    ABSENT = 'absent'
    FILLING = 'filling'
    READY = 'ready'


class PersonKey(ABC):
    """Assigns a slot key to every person detected in a cycle."""

    @abstractmethod
    def assign(self, frames: Sequence[PersonFrame]) -> List[Hashable]:
        """Return one distinct key per frame, in frame order."""

    def reset(self) -> None:
        """Forget any identity state."""


class PositionalPersonKey(PersonKey):
    """Identity is the person's index in the detector output."""

    def assign(self, frames: Sequence[PersonFrame]) -> List[Hashable]:
        return list(range(len(frames)))


class SequenceBuffer:
    """Owns every person slot; mutated only by the inference worker."""

    def __init__(self, capacity: int = DEFAULT_SEQUENCE_LENGTH):
        if capacity < 1:
            raise ValueError(f"Sequence length must be positive, got {capacity}")
        self.capacity = capacity
        self._slots: Dict[Hashable, deque] = {}

    def update(self, present_keys: Iterable[Hashable],
               vectors: Mapping[Hashable, np.ndarray]) -> List[Hashable]:
        """
        Run one cycle of buffer maintenance.

        Args:
            present_keys: every person key detected this cycle
            vectors: key -> feature vector for the persons whose frame was
                valid (subset of present_keys)
        Returns:
            keys that are READY and received a vector this cycle, in
            present_keys order
        """
        present = list(present_keys)
        present_set = set(present)

        for key, vector in vectors.items():
            if key not in present_set:
                raise KeyError(f"Vector supplied for key {key!r} that is not present this cycle")
            slot = self._slots.get(key)
            if slot is None:
                slot = deque(maxlen=self.capacity)
                self._slots[key] = slot
                logger.debug(f"Person slot {key!r} created")
            # deque(maxlen) drops the oldest entry on overflow
            slot.append(vector)

        # Disappearance is immediate: no grace period
        for key in [k for k in self._slots if k not in present_set]:
            del self._slots[key]
            logger.debug(f"Person slot {key!r} removed (absent)")

        return [k for k in present
                if k in vectors and len(self._slots[k]) == self.capacity]

    def state(self, key: Hashable) -> SlotState:
        slot = self._slots.get(key)
        if slot is None:
            return SlotState.ABSENT
        if len(slot) == self.capacity:
            return SlotState.READY
        return SlotState.FILLING

    def window(self, key: Hashable) -> Tuple[np.ndarray, ...]:
        """Buffered vectors for a slot, oldest first."""
        slot = self._slots.get(key)
        if slot is None:
            return ()
        return tuple(slot)

    def keys(self) -> List[Hashable]:
        return list(self._slots)

    def clear(self) -> None:
        self._slots.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def get_stats(self) -> dict:
        return {
            'capacity': self.capacity,
            'slots': len(self._slots),
            'ready': sum(1 for s in self._slots.values() if len(s) == self.capacity),
        }
