"""
Inference Worker — single background thread running every classification cycle.

    camera thread  --submit(frame)-->  [latest frame slot]  \
    batch caller   --process(frame)--> [task queue]          >-- worker thread --> session.run_cycle()
    settings UI    --reconfigure()-->  [task queue]         /          |
                                                                       v
                                                   presentation thread --> listener.on_results()

Rules:
- One cycle at a time; buffer mutation, inference, session rebuild and
  session close all happen on the worker thread.
- Live frames use keep-only-latest backpressure: a frame still waiting
  when a newer one arrives is replaced, never queued behind it.
- The worker never waits on the listener.
- shutdown() drains queued work and joins the worker with no timeout.

Usage:
    worker = InferenceWorker(PipelineSettings.from_config(Config), listener)
    worker.start()
    worker.submit(frame)           # live stream
    result = worker.process(frame) # batch, blocks until the cycle is done
    worker.shutdown()
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import replace
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from engines.pose_classification.aggregator import ClassificationResult
from engines.pose_classification.pipeline import FrameInput, monotonic_ms
from engines.pose_classification.sequence_buffer import PersonKey
from engines.pose_classification.settings import PipelineSettings
from services.pose_session import GPU_ERROR, OTHER_ERROR, Session

logger = logging.getLogger(__name__)

__all__ = ['InferenceWorker', 'ResultListener', 'GPU_ERROR', 'OTHER_ERROR']


class ResultListener(ABC):
    """Presentation-side collaborator. Called on the presentation thread."""

    @abstractmethod
    def on_results(self, result: ClassificationResult) -> None: ...

    @abstractmethod
    def on_error(self, message: str, error_code: int = OTHER_ERROR) -> None: ...


class _Task:
    __slots__ = ('kind', 'payload', 'future')

    def __init__(self, kind: str, payload: Any = None, future: Optional[Future] = None):
        self.kind = kind
        self.payload = payload
        self.future = future


class InferenceWorker:
    """Serializes all pose classification work onto one thread."""

    def __init__(self, settings: PipelineSettings,
                 listener: Optional[ResultListener] = None,
                 session_factory: Callable[..., Session] = Session.create,
                 person_key_factory: Optional[Callable[[], PersonKey]] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.settings = settings
        self.listener = listener
        self._session_factory = session_factory
        self._person_key_factory = person_key_factory
        self._clock = clock
        self._now = clock or monotonic_ms

        self.session: Optional[Session] = None
        self._cond = threading.Condition()
        self._tasks: deque = deque()
        self._pending_frame: Optional[_Task] = None
        self._accepting = False
        self._thread: Optional[threading.Thread] = None
        self._presenter: Optional[ThreadPoolExecutor] = None

        self.frames_received = 0
        self.frames_dropped = 0
        self.cycles = 0
        self.errors = 0

    # ── Lifecycle ──

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def thread_id(self) -> Optional[int]:
        return self._thread.ident if self._thread is not None else None

    def start(self) -> 'InferenceWorker':
        with self._cond:
            if self._thread is not None:
                raise RuntimeError("Worker already started")
            self._presenter = ThreadPoolExecutor(max_workers=1,
                                                 thread_name_prefix='presentation')
            self._accepting = True
            # Session is built on the worker thread, like every rebuild
            self._tasks.append(_Task('build', self.settings))
            self._thread = threading.Thread(target=self._run, name='inference-worker')
            self._thread.start()
        logger.info("Inference worker started")
        return self

    def shutdown(self) -> None:
        """Stop accepting work, drain the queue, join the worker, release models."""
        with self._cond:
            if self._thread is None or not self._accepting:
                thread = None
            else:
                self._accepting = False
                self._cond.notify_all()
                thread = self._thread
        if thread is None:
            return

        thread.join()
        if self._presenter is not None:
            self._presenter.shutdown(wait=True)
        logger.info(
            f"Inference worker stopped ({self.cycles} cycles, "
            f"{self.frames_dropped} frames dropped, {self.errors} errors)"
        )

    def __enter__(self) -> 'InferenceWorker':
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ── Producers ──

    def submit(self, frame: FrameInput) -> bool:
        """
        Hand a live-stream frame to the worker without blocking.

        Returns False if the worker is not accepting frames.
        """
        with self._cond:
            if not self._accepting:
                logger.debug(f"Frame {frame.timestamp_ms} ignored: worker not running")
                return False
            frame = self._stamp(frame)
            self.frames_received += 1
            if self._pending_frame is not None:
                # Superseded before the worker got to it
                self._pending_frame.payload = frame
                self.frames_dropped += 1
            else:
                task = _Task('frame', frame)
                self._tasks.append(task)
                self._pending_frame = task
                self._cond.notify()
        return True

    def process(self, frame: FrameInput) -> ClassificationResult:
        """Run one cycle for a batch frame and wait for its result."""
        if threading.get_ident() == self.thread_id:
            raise RuntimeError("process() called from the inference worker thread")
        return self._enqueue('process', self._stamp(frame)).result()

    def reconfigure(self, settings: PipelineSettings) -> Future:
        """
        Schedule a destructive session rebuild with new settings.

        Returns a Future resolving to the new Session once the worker has
        torn down the old one and built the replacement.
        """
        return self._enqueue('rebuild', settings)

    def _stamp(self, frame: FrameInput) -> FrameInput:
        # Latency is measured on the session clock from arrival here
        return replace(frame, received_ms=self._now())

    def _enqueue(self, kind: str, payload: Any) -> Future:
        future: Future = Future()
        with self._cond:
            if not self._accepting:
                raise RuntimeError("Inference worker is not running")
            self._tasks.append(_Task(kind, payload, future))
            self._cond.notify()
        return future

    # ── Worker thread ──

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._tasks and self._accepting:
                    self._cond.wait()
                if not self._tasks:
                    break
                task = self._tasks.popleft()
                if task is self._pending_frame:
                    self._pending_frame = None
            self._execute(task)

        if self.session is not None:
            self.session.close()

    def _execute(self, task: _Task) -> None:
        try:
            if task.kind == 'build':
                self.session = self._build_session(task.payload)
                result = self.session
            elif task.kind == 'rebuild':
                self.settings = task.payload
                # Cleared first: if the replacement fails there is no session
                old, self.session = self.session, None
                if old is None:
                    self.session = self._build_session(task.payload)
                else:
                    self.session = old.rebuild(task.payload, factory=self._build_session)
                result = self.session
            elif task.kind == 'frame':
                result = self._cycle(task.payload)
                self._dispatch(result)
            elif task.kind == 'process':
                result = self._cycle(task.payload)
            else:
                raise ValueError(f"Unknown task kind {task.kind!r}")
        except Exception as e:
            self.errors += 1
            logger.error(f"Inference worker task '{task.kind}' failed: {e}", exc_info=True)
            self._report_error(f"{task.kind} failed: {e}", OTHER_ERROR)
            if task.future is not None:
                task.future.set_exception(e)
            return

        if task.future is not None:
            task.future.set_result(result)

    def _build_session(self, settings: PipelineSettings) -> Session:
        return self._session_factory(
            settings,
            on_error=self._report_error,
            person_key_factory=self._person_key_factory,
            clock=self._clock,
        )

    def _cycle(self, frame: FrameInput) -> ClassificationResult:
        if self.session is None:
            raise RuntimeError("No session available")
        result = self.session.run_cycle(frame)
        self.cycles += 1
        if self.cycles % 100 == 0:
            logger.info(
                f"Processed {self.cycles} cycles "
                f"(received: {self.frames_received}, dropped: {self.frames_dropped}, "
                f"last: {result.inference_time_ms:.0f}ms, persons: {result.person_count})"
            )
        return result

    # ── Presentation thread ──

    def _dispatch(self, result: ClassificationResult) -> None:
        if self.listener is None or self._presenter is None:
            return
        self._presenter.submit(self._deliver, self.listener.on_results, result)

    def _report_error(self, message: str, error_code: int = OTHER_ERROR) -> None:
        if self.listener is None or self._presenter is None:
            return
        self._presenter.submit(self._deliver, self.listener.on_error, message, error_code)

    @staticmethod
    def _deliver(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Listener callback failed: {e}", exc_info=True)

    def get_stats(self) -> dict:
        return {
            'running': self.running,
            'frames_received': self.frames_received,
            'frames_dropped': self.frames_dropped,
            'cycles': self.cycles,
            'errors': self.errors,
            'session': self.session.get_stats() if self.session is not None else None,
        }
