"""
Replay recorded pose landmarks through the classification pipeline.

Input is a JSON-lines file, one camera frame per line:

    {"timestamp_ms": 1200, "width": 640, "height": 480,
     "persons": [[[x, y, z, presence], ... 33 rows], ...]}

Batch mode (default) runs every frame synchronously, in order.
Live mode (--live) submits frames as a camera would; frames arriving while
the worker is busy are superseded.

Usage:
    python scripts/replay_landmarks.py recording.jsonl
    python scripts/replay_landmarks.py recording.jsonl --delegate gpu --window 10 --output results.jsonl
"""

import sys
import os

# Ensure parent directory is in path for imports
if __name__ == '__main__':
    parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

import argparse
import json
import logging
from typing import Iterator, List

from config import Config
from engines.pose_classification.aggregator import ClassificationResult
from engines.pose_classification.pipeline import FrameInput, frame_from_arrays
from engines.pose_classification.settings import PipelineSettings
from engines.pose_classification.tracker import CentroidPersonKey
from services.inference_worker import GPU_ERROR, InferenceWorker, ResultListener

logger = logging.getLogger("replay")


def setup_logging(level: str, log_file: str) -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def read_frames(path: str) -> Iterator[FrameInput]:
    """Parse a JSON-lines landmark recording."""
    with open(path, encoding='utf-8') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
                frame = frame_from_arrays(
                    timestamp_ms=float(data['timestamp_ms']),
                    persons=data.get('persons', []),
                    image_width=int(data.get('width', 0)),
                    image_height=int(data.get('height', 0)),
                )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping line {line_no}: {e}")
                continue
            yield frame


class PrintingListener(ResultListener):
    """Writes each result as a JSON line."""

    def __init__(self, out):
        self.out = out
        self.results: List[ClassificationResult] = []

    def on_results(self, result: ClassificationResult) -> None:
        self.results.append(result)
        self.out.write(json.dumps(result.to_dict()) + '\n')
        self.out.flush()

    def on_error(self, message: str, error_code: int = 0) -> None:
        hint = " (try --delegate cpu)" if error_code == GPU_ERROR else ""
        logger.error(f"Pipeline error: {message}{hint}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Replay pose landmarks through the classifiers')
    parser.add_argument('input', help='JSON-lines landmark recording')
    parser.add_argument('--output', type=str, default='',
                        help='Write results here instead of stdout')
    parser.add_argument('--delegate', choices=['cpu', 'gpu'], default=Config.DELEGATE.lower())
    parser.add_argument('--window', type=int, default=Config.SEQUENCE_LENGTH,
                        help='Sequence window length (frames)')
    parser.add_argument('--threshold', type=float, default=Config.VIOLENCE_THRESHOLD,
                        help='Violence decision threshold')
    parser.add_argument('--track', action='store_true',
                        help='Match people across frames instead of by detection index')
    parser.add_argument('--live', action='store_true',
                        help='Submit frames as a live stream (latest-frame-wins)')
    args = parser.parse_args(argv)

    setup_logging(Config.LOG_LEVEL, Config.LOG_FILE)

    settings = PipelineSettings.from_config(Config).with_changes(
        delegate=args.delegate,
        sequence_length=args.window,
        violence_threshold=args.threshold,
    )

    out = open(args.output, 'w', encoding='utf-8') if args.output else sys.stdout
    try:
        listener = PrintingListener(out)
        worker = InferenceWorker(
            settings,
            listener=listener,
            person_key_factory=CentroidPersonKey if args.track else None,
        )
        with worker:
            for frame in read_frames(args.input):
                if args.live:
                    worker.submit(frame)
                else:
                    listener.on_results(worker.process(frame))

        violent = sum(1 for r in listener.results if r.is_violent)
        logger.info(
            f"Replayed {worker.frames_received or worker.cycles} frames: "
            f"{worker.cycles} cycles, {worker.frames_dropped} dropped, "
            f"{violent} violent"
        )
    finally:
        if out is not sys.stdout:
            out.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
