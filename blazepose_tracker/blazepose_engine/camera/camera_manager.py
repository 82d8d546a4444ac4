# blazepose_tracker/blazepose_engine/camera/camera_manager.py
import cv2
import time
import logging
import threading
import numpy as np
from collections import deque
from typing import Tuple, Optional
from ..common.config import CameraConfig
from ..common.models import FrameMetadata

logger = logging.getLogger(__name__)

class CameraManager:
    """
    Reads frames on a dedicated thread so capture latency never stalls the pipeline.

    Only the newest frame is handed out; frames captured in between are
    counted as skipped and show up downstream as a longer frame interval.
    """

    def __init__(self, config: CameraConfig):
        self.config = config
        self._cap = cv2.VideoCapture(config.source)
        if not self._cap.isOpened():
            self._cap.release()
            raise IOError(f"Cannot open camera source: {config.source}")

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.resolution[0])
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.resolution[1])
        self._cap.set(cv2.CAP_PROP_FPS, config.target_fps)

        self._buffer = deque(maxlen=config.buffer_size)
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._update, name="camera-capture", daemon=True)
        self._running = False
        self._frame_id = 0
        self._last_delivered_id = 0
        self._failed_reads = 0
        self._skipped_frames = 0

    def _update(self):
        """The frame-grabbing loop running on the capture thread."""
        while self._running:
            if not self._cap.grab():
                self._failed_reads += 1
                time.sleep(0.01)
                continue

            ret, frame = self._cap.retrieve()
            if not ret:
                self._failed_reads += 1
                continue
            timestamp = time.perf_counter()
            with self._lock:
                self._frame_id += 1
                self._buffer.append((frame, self._frame_id, timestamp))

    def get_frame(self) -> Tuple[Optional[np.ndarray], Optional[FrameMetadata]]:
        """Returns the newest unseen frame and its metadata, or (None, None)."""
        with self._lock:
            if not self._buffer:
                return None, None
            frame, frame_id, timestamp = self._buffer[-1]
            self._buffer.clear()
            if frame_id > self._last_delivered_id + 1:
                self._skipped_frames += frame_id - self._last_delivered_id - 1
            self._last_delivered_id = frame_id

        metadata = FrameMetadata(
            frame_id=frame_id,
            timestamp=timestamp,
            source_resolution=(frame.shape[1], frame.shape[0])
        )
        return frame.copy(), metadata

    def get_stats(self) -> dict:
        return {
            "is_running": self.is_running(),
            "buffer_size": len(self._buffer),
            "captured_frames": self._frame_id,
            "skipped_frames": self._skipped_frames,
            "failed_reads": self._failed_reads,
            "target_fps": self.config.target_fps,
            "actual_resolution": (self._cap.get(cv2.CAP_PROP_FRAME_WIDTH), self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        }

    def is_running(self) -> bool:
        return self._running

    def __enter__(self):
        self._running = True
        self._thread.start()
        logger.info("CameraManager started on source %s", self.config.source)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._running = False
        if self._thread.is_alive():
            self._thread.join()
        self._cap.release()
        logger.info("CameraManager stopped and resources released.")
