# blazepose_tracker/blazepose_engine/processing/pose_processor.py
import logging
import threading
import time
from collections import deque
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

import numpy as np

from . import stages
from .landmark_remapper import LandmarkPostProcessor, PostProcessResult
from .region_cropper import RegionCropper
from .relative_velocity_filter import normalized_delta_time
from ..common.config import EngineConfig
from ..common.enums import BlazePoseModel, PoseState
from ..common.errors import ConfigurationError, ReadbackError
from ..common.models import Detection, FrameMetadata, PoseRegion, PoseResult
from ..detection.region_selector import RegionTracker
from ..inference.base import LandmarkRegressor, PoseDetector
from ..store.result_store import FrameSnapshot, ResultStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameRequest:
    sequence: int
    model: BlazePoseModel
    pose_threshold: float
    iou_threshold: float


class PoseProcessor:
    """
    Orchestrates the two-stage BlazePose pipeline with temporal filtering and state management.

    Frames are dispatched to a single-worker execution unit and processed in
    submission order, so filter state only ever sees one frame at a time.
    ``submit_frame`` never waits; ``process_frame`` is the blocking variant
    of the same path. The processor takes ownership of the detector and the
    regressor and closes them on teardown.
    """

    def __init__(self, config: EngineConfig, detector: PoseDetector, regressor: LandmarkRegressor):
        self.config = config
        self.state = PoseState.INITIALIZING

        with ExitStack() as stack:
            stack.callback(detector.close)
            stack.callback(regressor.close)

            vertex_count = regressor.vertex_count
            if vertex_count != config.pipeline.model.vertex_count:
                raise ConfigurationError(
                    f"Regressor '{regressor.name()}' emits {vertex_count} landmarks, "
                    f"model '{config.pipeline.model.value}' expects {config.pipeline.model.vertex_count}"
                )
            if config.region.center_keypoint == config.region.rotation_keypoint:
                raise ConfigurationError("Region center and rotation keypoints must differ")

            self.store = ResultStore(vertex_count)
            stack.callback(self.store.close)
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-exec")
            stack.callback(self._executor.shutdown, wait=True)
            self._resources = stack.pop_all()

        self.detector = detector
        self.regressor = regressor
        self.vertex_count = vertex_count
        self._cropper = RegionCropper(
            input_size=config.pipeline.landmark_input_size,
            padding_ratio=config.region.padding_ratio,
            center_keypoint=config.region.center_keypoint,
            rotation_keypoint=config.region.rotation_keypoint,
        )
        self._tracker = RegionTracker(self._cropper, config.region.smoothing)
        self._postprocessor = LandmarkPostProcessor(vertex_count, config.filter)

        self._model = config.pipeline.model
        self._last_timestamp: Optional[float] = None
        self._lost_frames = 0
        self._sequence = 0
        self._submit_lock = threading.Lock()
        self._closed = False

        self.state = PoseState.SEARCHING
        logger.info(
            "PoseProcessor ready: detector=%s regressor=%s model=%s",
            detector.name(), regressor.name(), self._model.value,
        )

    # --- Dispatch ---

    def submit_frame(
        self,
        frame: np.ndarray,
        metadata: FrameMetadata,
        model: Optional[BlazePoseModel] = None,
        pose_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> "Future[PoseResult]":
        """Queues a frame and returns immediately. The frame must not be mutated until the future resolves."""
        pipeline = self.config.pipeline
        with self._submit_lock:
            if self._closed:
                raise RuntimeError("PoseProcessor is closed")
            self._sequence += 1
            request = FrameRequest(
                sequence=self._sequence,
                model=BlazePoseModel(model) if model is not None else pipeline.model,
                pose_threshold=pipeline.pose_threshold if pose_threshold is None else pose_threshold,
                iou_threshold=pipeline.iou_threshold if iou_threshold is None else iou_threshold,
            )
            return self._executor.submit(self._run_frame, frame, metadata, request)

    def process_frame(self, frame: np.ndarray, metadata: FrameMetadata, **kwargs) -> PoseResult:
        """Processes a single frame and waits for its result."""
        return self.submit_frame(frame, metadata, **kwargs).result()

    def reset(self) -> None:
        """Re-initializes filter state and the tracked region, after any queued frames."""
        with self._submit_lock:
            if self._closed:
                return
            future = self._executor.submit(self._reset_tracking)
        future.result()

    # --- Non-blocking result access ---

    def try_get_latest(self) -> Tuple[FrameSnapshot, int]:
        return self.store.try_get_latest()

    def get_detections(self) -> List[Detection]:
        return self.store.try_get_detections()[0]

    def detection_count(self) -> int:
        return self.store.detection_count()

    def request_readback(self, after_sequence: Optional[int] = None) -> Future:
        return self.store.request_readback(after_sequence)

    # --- Execution unit ---

    def _reset_tracking(self) -> None:
        self._postprocessor.reset()
        self._tracker.reset()
        self._lost_frames = 0
        self._last_timestamp = None

    def _delta_time(self, timestamp: float) -> float:
        """Filter time step since the last frame the filters were applied to."""
        # Skipped or unfiltered frames widen the interval to the next filtered one.
        if self._last_timestamp is None:
            real_dt = self.config.pipeline.default_frame_interval
        else:
            real_dt = timestamp - self._last_timestamp
        return normalized_delta_time(real_dt, self.config.filter.responsiveness, self.config.filter.min_delta_time)

    def _update_presence(self, presence: float) -> PoseState:
        tracking = self.config.tracking
        if presence >= tracking.presence_threshold:
            self._lost_frames = 0
            return PoseState.TRACKING
        self._lost_frames += 1
        if self._lost_frames >= tracking.reset_after_lost_frames:
            logger.info("Target lost for %d frames, resetting filters", self._lost_frames)
            self._reset_tracking()
            return PoseState.LOST_TARGET
        return PoseState.SEARCHING

    def _run_frame(self, frame: np.ndarray, metadata: FrameMetadata, request: FrameRequest) -> PoseResult:
        start_time = time.perf_counter()
        metrics = {}

        try:
            letterboxed = stages.letterbox_stage(
                frame, self.config.pipeline.detection_input_size, self.config.pipeline.input_color_order
            )
        except ConfigurationError as e:
            logger.error("Frame %d rejected: %s", metadata.frame_id, e)
            return self._result(metadata, request, start_time, PoseState.ERROR, warnings=[str(e)])

        if request.model != self._model:
            logger.info("Landmark model changed %s -> %s, resetting filters", self._model.value, request.model.value)
            self._reset_tracking()
            self._model = request.model

        t0 = time.perf_counter()
        try:
            detections = stages.detect_stage(
                self.detector, letterboxed, request.pose_threshold, request.iou_threshold
            )
        except Exception as e:
            return self._readback_failed(metadata, request, start_time, "detector", e)
        metrics["detection_ms"] = (time.perf_counter() - t0) * 1000

        box = self._tracker.update(detections[0] if detections else None, metadata.timestamp)
        if box is None:
            held = self._postprocessor.held(presence=0.0)
            self.state = self._update_presence(0.0)
            self.store.publish(request.sequence, held.landmarks, held.world_landmarks, detections)
            return self._result(metadata, request, start_time, self.state, post=held, detections=detections, metrics=metrics)

        t0 = time.perf_counter()
        try:
            crop = stages.crop_stage(self._cropper, box, letterboxed)
            output = stages.regress_stage(self.regressor, crop, request.model)
        except Exception as e:
            return self._readback_failed(metadata, request, start_time, "regressor", e)
        metrics["landmark_ms"] = (time.perf_counter() - t0) * 1000

        t0 = time.perf_counter()
        post = self._postprocessor.process(output, crop.transform, self._delta_time(metadata.timestamp), request.sequence)
        if post.applied:
            self._last_timestamp = metadata.timestamp
        metrics["filter_ms"] = (time.perf_counter() - t0) * 1000

        self.state = self._update_presence(post.presence)
        self.store.publish(request.sequence, post.landmarks, post.world_landmarks, detections)
        return self._result(
            metadata, request, start_time, self.state,
            post=post, detections=detections, region=crop.transform.region(),
            warnings=[str(w) for w in post.warnings], metrics=metrics,
        )

    def _readback_failed(self, metadata, request, start_time, stage: str, error: Exception) -> PoseResult:
        failure = ReadbackError(f"{stage} failed on frame {metadata.frame_id}: {error}")
        logger.error("%s", failure, exc_info=error)
        held = self._postprocessor.held(presence=0.0)
        self.state = self._update_presence(0.0)
        self.store.publish(request.sequence, held.landmarks, held.world_landmarks, [])
        return self._result(metadata, request, start_time, self.state, post=held, warnings=[str(failure)])

    def _result(
        self,
        metadata: FrameMetadata,
        request: FrameRequest,
        start_time: float,
        status: PoseState,
        post: Optional[PostProcessResult] = None,
        detections: Optional[List[Detection]] = None,
        region: Optional[PoseRegion] = None,
        warnings: Optional[List[str]] = None,
        metrics: Optional[dict] = None,
    ) -> PoseResult:
        return PoseResult(
            timestamp=metadata.timestamp,
            frame_id=metadata.frame_id,
            sequence=request.sequence,
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
            status=status,
            landmarks=None if post is None else post.landmarks,
            world_landmarks=None if post is None else post.world_landmarks,
            low_confidence=None if post is None else post.low_confidence,
            presence=0.0 if post is None else post.presence,
            region=region,
            detections=detections or [],
            warnings=warnings or [],
            performance_metrics=metrics or {},
        )

    # --- Lifecycle ---

    def close(self):
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
        self._resources.close()
        logger.info("PoseProcessor closed and resources released.")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class InFlightFrames:
    """
    Bounded window of frames submitted to a PoseProcessor and not yet consumed.

    When the window is full the offered frame is dropped rather than queued;
    the processor sees it as a longer interval to the next frame.
    """

    def __init__(self, processor: PoseProcessor, max_in_flight: int = 2):
        self.processor = processor
        self.max_in_flight = max_in_flight
        self.dropped = 0
        self._queue: Deque[Tuple[np.ndarray, "Future[PoseResult]"]] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    def offer(self, frame: np.ndarray, metadata: FrameMetadata, **kwargs) -> bool:
        if len(self._queue) >= self.max_in_flight:
            self.dropped += 1
            logger.debug("Dropping frame %d, %d frames in flight", metadata.frame_id, len(self._queue))
            return False
        self._queue.append((frame, self.processor.submit_frame(frame, metadata, **kwargs)))
        return True

    def pop_ready(self, timeout: Optional[float] = 0.0) -> Optional[Tuple[np.ndarray, PoseResult]]:
        """The oldest frame and its result once finished, in submission order; None while it is pending."""
        if not self._queue:
            return None
        frame, future = self._queue[0]
        try:
            result = future.result(timeout=timeout)
        except FuturesTimeout:
            return None
        except CancelledError:
            self._queue.popleft()
            return None
        self._queue.popleft()
        return frame, result

    def cancel(self) -> None:
        while self._queue:
            _, future = self._queue.popleft()
            future.cancel()
