"""
Label Table — ordinal -> label mapping for the per-frame pose classifier.

Loaded once from a JSON key/value file such as:
    {"0": "Downdog", "1": "Goddess", "2": "Plank", "3": "Tree", "4": "Warrior2"}

Ordinals must be contiguous from 0; anything else fails fast with
LabelTableMalformed instead of producing "Unknown" at classification time.
"""

import json
import logging
from typing import Iterator, Mapping, Tuple

from engines.pose_classification.errors import LabelTableMalformed

logger = logging.getLogger(__name__)


class LabelTable:
    """Immutable, validated ordinal -> label table."""

    __slots__ = ('_labels',)

    def __init__(self, labels: Tuple[str, ...]):
        self._labels = tuple(labels)

    @classmethod
    def from_mapping(cls, mapping: Mapping) -> 'LabelTable':
        if not mapping:
            raise LabelTableMalformed("Label table is empty")

        ordinals = {}
        for key, value in mapping.items():
            try:
                ordinal = int(key)
            except (TypeError, ValueError):
                raise LabelTableMalformed(f"Label key {key!r} is not an integer ordinal")
            if isinstance(key, str) and key.strip() != str(ordinal):
                raise LabelTableMalformed(f"Label key {key!r} is not a canonical ordinal")
            if ordinal in ordinals:
                raise LabelTableMalformed(f"Duplicate label ordinal {ordinal}")
            if not isinstance(value, str) or not value.strip():
                raise LabelTableMalformed(f"Label for ordinal {ordinal} must be a non-empty string")
            ordinals[ordinal] = value

        expected = set(range(len(ordinals)))
        if set(ordinals) != expected:
            missing = sorted(expected - set(ordinals))
            raise LabelTableMalformed(
                f"Label ordinals must be contiguous from 0 (missing {missing}, "
                f"got {sorted(ordinals)})"
            )

        return cls(tuple(ordinals[i] for i in range(len(ordinals))))

    @classmethod
    def load(cls, path: str) -> 'LabelTable':
        """Load and validate a JSON label file."""
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise LabelTableMalformed(f"Label file {path} is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise LabelTableMalformed(f"Label file {path} must hold a JSON object")

        table = cls.from_mapping(data)
        logger.info(f"Loaded {len(table)} pose labels from {path}")
        return table

    def __getitem__(self, ordinal: int) -> str:
        return self._labels[ordinal]

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __eq__(self, other) -> bool:
        return isinstance(other, LabelTable) and self._labels == other._labels

    def __hash__(self) -> int:
        return hash(self._labels)

    def __repr__(self) -> str:
        return f"LabelTable({list(self._labels)!r})"

    def to_dict(self) -> dict:
        return {str(i): label for i, label in enumerate(self._labels)}
