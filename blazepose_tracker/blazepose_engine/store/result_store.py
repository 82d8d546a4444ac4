# blazepose_tracker/blazepose_engine/store/result_store.py
"""
Double-buffered result publication.

The execution unit writes a whole frame (image landmarks, world landmarks and
detections) into the back slot, then swaps. Readers copy the front slot under
the swap lock, and never wait for it: if the lock is busy they get the last
copy they were handed, which is always a complete frame.
"""

import logging
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..common.models import Detection

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FrameSnapshot:
    sequence: int
    landmarks: np.ndarray
    world_landmarks: np.ndarray
    detections: List[Detection] = field(default_factory=list)

    @property
    def detection_count(self) -> int:
        return len(self.detections)

    def copy(self) -> "FrameSnapshot":
        return FrameSnapshot(
            sequence=self.sequence,
            landmarks=self.landmarks.copy(),
            world_landmarks=self.world_landmarks.copy(),
            detections=list(self.detections),
        )


class DoubleBuffer:
    """Two preallocated frame slots: one being written, one being read."""

    def __init__(self, vertex_count: int, dtype=np.float32):
        shape = (vertex_count + 1, 4)
        self._slots = [
            FrameSnapshot(0, np.zeros(shape, dtype=dtype), np.zeros(shape, dtype=dtype)),
            FrameSnapshot(0, np.zeros(shape, dtype=dtype), np.zeros(shape, dtype=dtype)),
        ]
        self._front = 0
        self._lock = threading.Lock()
        self._last_read = self._slots[0].copy()

    @property
    def sequence(self) -> int:
        return self._slots[self._front].sequence

    @contextmanager
    def write(self, sequence: int) -> Iterator[FrameSnapshot]:
        """
        Yields the back slot. The swap only happens when the block exits
        cleanly, so a failed write is never observed by readers.
        """
        back = self._slots[1 - self._front]
        yield back
        back.sequence = sequence
        with self._lock:
            self._front = 1 - self._front

    def try_read(self, blocking: bool = False) -> FrameSnapshot:
        if not self._lock.acquire(blocking=blocking):
            return self._last_read.copy()
        try:
            self._last_read = self._slots[self._front].copy()
        finally:
            self._lock.release()
        return self._last_read.copy()


class ResultStore:
    """Latest complete outputs of the pipeline, readable from any thread."""

    def __init__(self, vertex_count: int):
        self.vertex_count = vertex_count
        self._frames = DoubleBuffer(vertex_count)
        self._sequence = 0
        self._count = 0
        self._pending: List[Tuple[int, Future]] = []
        self._pending_lock = threading.Lock()
        self._closed = False

    @property
    def sequence(self) -> int:
        return self._sequence

    def publish(self, sequence: int, landmarks: np.ndarray, world_landmarks: np.ndarray, detections: Sequence[Detection]) -> None:
        with self._frames.write(sequence) as back:
            back.landmarks[...] = landmarks
            back.world_landmarks[...] = world_landmarks
            back.detections = list(detections)
        # Readers may see the new frame before its count.
        self._count = len(detections)
        self._sequence = sequence
        self._resolve_pending()

    def try_get_landmarks(self) -> Tuple[np.ndarray, int]:
        frame = self._frames.try_read()
        return frame.landmarks, frame.sequence

    def try_get_world_landmarks(self) -> Tuple[np.ndarray, int]:
        frame = self._frames.try_read()
        return frame.world_landmarks, frame.sequence

    def try_get_detections(self) -> Tuple[List[Detection], int]:
        frame = self._frames.try_read()
        return frame.detections, frame.sequence

    def detection_count(self) -> int:
        return self._count

    def try_get_latest(self) -> Tuple[FrameSnapshot, int]:
        return self._read_latest(blocking=False)

    def _read_latest(self, blocking: bool) -> Tuple[FrameSnapshot, int]:
        frame = self._frames.try_read(blocking)
        return frame, frame.sequence

    def request_readback(self, after_sequence: Optional[int] = None) -> Future:
        """
        Returns a future for the first frame published after ``after_sequence``
        (default: the current one). Resolves immediately if it already exists.
        """
        future: Future = Future()
        target = self._sequence if after_sequence is None else after_sequence
        with self._pending_lock:
            if self._closed:
                future.cancel()
                return future
            self._pending.append((target, future))
        self._resolve_pending()
        return future

    def _resolve_pending(self) -> None:
        with self._pending_lock:
            if not self._pending:
                return
            ready = [(t, f) for t, f in self._pending if self._sequence > t]
            self._pending = [(t, f) for t, f in self._pending if self._sequence <= t]
        if not ready:
            return
        # Runs on the producer thread
        snapshot, _ = self._read_latest(blocking=True)
        for _, future in ready:
            if future.set_running_or_notify_cancel():
                future.set_result(snapshot)

    def close(self) -> None:
        with self._pending_lock:
            self._closed = True
            pending, self._pending = self._pending, []
        for _, future in pending:
            future.cancel()
        logger.debug("Result store closed, %d pending readbacks cancelled", len(pending))
