"""Integration tests for the pose processing pipeline with fake networks."""
import time

import numpy as np
import pytest

from blazepose_engine.common.config import EngineConfig
from blazepose_engine.common.enums import BlazePoseModel, PoseState
from blazepose_engine.common.errors import ConfigurationError
from blazepose_engine.processing.pose_processor import InFlightFrames, PoseProcessor
from blazepose_engine.processing.relative_velocity_filter import normalized_delta_time
from fakes import FakeDetector, FakeRegressor, make_detection


class TestConstruction:
    """Test setup and teardown of the processor."""

    def test_ready_after_construction(self, processor):
        assert processor.state == PoseState.SEARCHING
        assert processor.vertex_count == 33

    def test_vertex_mismatch_closes_collaborators(self, engine_config):
        detector, regressor = FakeDetector(), FakeRegressor(vertex_count=17)
        with pytest.raises(ConfigurationError):
            PoseProcessor(engine_config, detector, regressor)
        assert detector.closed
        assert regressor.closed

    def test_same_center_and_rotation_keypoint_rejected(self):
        config = EngineConfig.model_validate({"region": {"center_keypoint": 1, "rotation_keypoint": 1}})
        detector, regressor = FakeDetector(), FakeRegressor()
        with pytest.raises(ConfigurationError):
            PoseProcessor(config, detector, regressor)
        assert detector.closed and regressor.closed

    def test_close_releases_collaborators_once(self, engine_config, frame, metadata_factory):
        detector, regressor = FakeDetector(), FakeRegressor()
        with PoseProcessor(engine_config, detector, regressor) as proc:
            proc.process_frame(frame, metadata_factory(1))
        assert detector.closed and regressor.closed
        proc.close()
        with pytest.raises(RuntimeError):
            proc.submit_frame(frame, metadata_factory(2))


class TestFrameProcessing:
    """Test the per-frame path."""

    def test_tracking_result(self, processor, frame, metadata_factory):
        result = processor.process_frame(frame, metadata_factory(1))

        assert result.status == PoseState.TRACKING
        assert result.sequence == 1
        assert result.landmarks.shape == (34, 4)
        assert result.world_landmarks.shape == (34, 4)
        assert result.presence == pytest.approx(0.9)
        assert result.landmarks[-1, 0] == pytest.approx(0.9)
        assert result.detection_count == 1
        assert result.region is not None
        assert set(result.performance_metrics) == {"detection_ms", "landmark_ms", "filter_ms"}

    def test_landmarks_remapped_to_frame(self, processor, frame, metadata_factory):
        result = processor.process_frame(frame, metadata_factory(1))
        # Every fake landmark sits at the crop center, which is the detection center
        np.testing.assert_allclose(result.landmarks[:-1, :2], 0.5, atol=1e-5)
        np.testing.assert_allclose(result.landmarks[:-1, 3], 0.9, atol=1e-6)
        assert not result.low_confidence.any()

    def test_detector_receives_letterboxed_input(self, processor, detector, frame, metadata_factory):
        processor.process_frame(frame, metadata_factory(1))
        assert detector.last_input.shape == (128, 128, 3)
        assert detector.last_input.dtype == np.float32

    def test_results_are_published(self, processor, frame, metadata_factory):
        result = processor.process_frame(frame, metadata_factory(1))
        snapshot, seq = processor.try_get_latest()
        assert seq == result.sequence
        np.testing.assert_allclose(snapshot.landmarks, result.landmarks)
        assert processor.detection_count() == 1
        assert len(processor.get_detections()) == 1

    def test_three_people_reported(self, engine_config, regressor, frame, metadata_factory):
        detector = FakeDetector([
            make_detection(score=0.9, center=(0.2, 0.5), size=(0.1, 0.1)),
            make_detection(score=0.85, center=(0.5, 0.5), size=(0.1, 0.1)),
            make_detection(score=0.8, center=(0.8, 0.5), size=(0.1, 0.1)),
        ])
        with PoseProcessor(engine_config, detector, regressor) as proc:
            result = proc.process_frame(frame, metadata_factory(1))
            assert result.detection_count == 3
            assert proc.detection_count() == 3

    def test_zero_size_frame_reports_error(self, processor, metadata_factory):
        result = processor.process_frame(np.zeros((0, 0, 3), dtype=np.uint8), metadata_factory(1))
        assert result.status == PoseState.ERROR
        assert result.warnings
        assert processor.try_get_latest()[1] == 0

    def test_detector_failure_yields_empty_frame(self, engine_config, regressor, frame, metadata_factory):
        detector = FakeDetector(error=RuntimeError("inference backend lost"))
        with PoseProcessor(engine_config, detector, regressor) as proc:
            result = proc.process_frame(frame, metadata_factory(1))
            assert result.presence == 0.0
            assert result.detection_count == 0
            assert any("detector failed" in w for w in result.warnings)
            # The execution unit keeps going
            detector.error = None
            assert proc.process_frame(frame, metadata_factory(2)).status == PoseState.TRACKING

    def test_no_detection_holds_previous_region(self, processor, detector, regressor, frame, metadata_factory):
        processor.process_frame(frame, metadata_factory(1))
        detector.detections = []
        result = processor.process_frame(frame, metadata_factory(2))
        assert regressor.calls == 2
        assert result.detection_count == 0
        assert result.status == PoseState.TRACKING

    def test_no_person_yet_is_searching(self, engine_config, regressor, frame, metadata_factory):
        with PoseProcessor(engine_config, FakeDetector([]), regressor) as proc:
            result = proc.process_frame(frame, metadata_factory(1))
            assert result.status == PoseState.SEARCHING
            assert regressor.calls == 0


class TestTracking:
    """Test presence handling and filter resets."""

    def test_presence_loss_resets_after_five_frames(self, engine_config, detector, frame, metadata_factory):
        regressor = FakeRegressor(presence=[0.9, 0.1])
        with PoseProcessor(engine_config, detector, regressor) as proc:
            statuses = [proc.process_frame(frame, metadata_factory(i)).status for i in range(1, 7)]
            assert statuses[0] == PoseState.TRACKING
            assert statuses[1:5] == [PoseState.SEARCHING] * 4
            assert statuses[5] == PoseState.LOST_TARGET
            assert proc._postprocessor.image_state.history_count.max() == 0

    def test_model_change_resets_filters(self, processor, regressor, frame, metadata_factory):
        for i in range(1, 4):
            processor.process_frame(frame, metadata_factory(i))
        assert processor._postprocessor.image_state.history_count.max() == 3

        processor.process_frame(frame, metadata_factory(4), model=BlazePoseModel.HEAVY)
        assert processor._postprocessor.image_state.history_count.max() == 1
        assert regressor.models[-1] == BlazePoseModel.HEAVY

    def test_reset(self, processor, frame, metadata_factory):
        processor.process_frame(frame, metadata_factory(1))
        processor.reset()
        assert processor._postprocessor.image_state.history_count.max() == 0


class TestAsyncExecution:
    """Test non-blocking submission."""

    def test_frames_complete_in_submission_order(self, processor, frame, metadata_factory):
        futures = [processor.submit_frame(frame, metadata_factory(i)) for i in range(1, 9)]
        results = [f.result(timeout=10) for f in futures]
        assert [r.sequence for r in results] == list(range(1, 9))
        assert processor.try_get_latest()[1] == 8

    def test_readback_future(self, processor, frame, metadata_factory):
        readback = processor.request_readback()
        processor.submit_frame(frame, metadata_factory(1))
        snapshot = readback.result(timeout=10)
        assert snapshot.sequence == 1
        assert snapshot.detection_count == 1

    def test_cancelled_frame_is_skipped(self, processor, frame, metadata_factory):
        futures = [processor.submit_frame(frame, metadata_factory(i)) for i in range(1, 6)]
        futures[-1].cancel()
        done = [f.result(timeout=10) for f in futures[:-1]]
        assert done[-1].sequence == 4


class TestFilterTiming:
    """Test the time step handed to the landmark filters."""

    def test_unfiltered_frame_widens_next_interval(self, processor, detector, frame, metadata_factory):
        processor.process_frame(frame, metadata_factory(1))
        processor.process_frame(frame, metadata_factory(2))
        detector.error = RuntimeError("dropped inference")
        processor.process_frame(frame, metadata_factory(3))
        detector.error = None
        processor.process_frame(frame, metadata_factory(4))

        expected = normalized_delta_time(2 / 30.0)
        assert processor._postprocessor.image_state.history_dt[-1, 0] == pytest.approx(expected)
        assert processor._postprocessor.world_state.history_dt[-1, 0] == pytest.approx(expected)

    def test_frames_without_region_do_not_advance_clock(self, engine_config, regressor, frame, metadata_factory):
        detector = FakeDetector([])
        with PoseProcessor(engine_config, detector, regressor) as proc:
            proc.process_frame(frame, metadata_factory(1))
            proc.process_frame(frame, metadata_factory(2))
            assert proc._last_timestamp is None
            detector.detections = [make_detection()]
            proc.process_frame(frame, metadata_factory(3))
            assert proc._last_timestamp == pytest.approx(3 / 30.0)

    def test_reset_clears_clock(self, processor, frame, metadata_factory):
        processor.process_frame(frame, metadata_factory(1))
        processor.reset()
        assert processor._last_timestamp is None


class TestInFlightFrames:
    """Test the bounded window of asynchronously submitted frames."""

    def test_full_window_drops_frames(self, processor, frame, metadata_factory):
        window = InFlightFrames(processor, max_in_flight=2)
        assert window.offer(frame, metadata_factory(1))
        assert window.offer(frame, metadata_factory(2))
        assert not window.offer(frame, metadata_factory(3))
        assert len(window) == 2
        assert window.dropped == 1

    def test_results_come_back_in_order(self, processor, frame, metadata_factory):
        window = InFlightFrames(processor, max_in_flight=3)
        for i in range(1, 4):
            window.offer(frame, metadata_factory(i))
        sequences = [window.pop_ready(timeout=10)[1].sequence for _ in range(3)]
        assert sequences == [1, 2, 3]
        assert len(window) == 0
        assert window.pop_ready() is None

    def test_window_stays_bounded_when_consumer_lags(self, processor, frame, metadata_factory):
        window = InFlightFrames(processor, max_in_flight=2)
        for i in range(1, 21):
            window.offer(frame, metadata_factory(i))
            assert len(window) <= 2
        assert window.dropped == 18

    def test_pending_frame_is_not_popped(self, processor, frame, metadata_factory):
        window = InFlightFrames(processor, max_in_flight=2)
        gate = processor._executor.submit(time.sleep, 0.2)
        window.offer(frame, metadata_factory(1))
        assert window.pop_ready() is None
        assert len(window) == 1
        gate.result()
        assert window.pop_ready(timeout=10)[1].sequence == 1

    def test_cancel_empties_window(self, processor, frame, metadata_factory):
        window = InFlightFrames(processor, max_in_flight=2)
        window.offer(frame, metadata_factory(1))
        window.offer(frame, metadata_factory(2))
        window.cancel()
        assert len(window) == 0
