"""Unit tests for the threaded camera reader, with the capture device faked."""
import time

import numpy as np
import pytest

from blazepose_engine.camera import camera_manager
from blazepose_engine.camera.camera_manager import CameraManager
from blazepose_engine.common.config import CameraConfig


class FakeCapture:
    """Yields ``total`` numbered frames, then reports read failures."""

    total = 5
    opened = True

    def __init__(self, source):
        self.source = source
        self.produced = 0
        self.released = False
        self.props = {}

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return self.props.get(prop, 0.0)

    def grab(self):
        if self.produced >= self.total:
            return False
        self.produced += 1
        return True

    def retrieve(self):
        return True, np.full((48, 64, 3), self.produced, dtype=np.uint8)

    def release(self):
        self.released = True


@pytest.fixture
def fake_capture(monkeypatch):
    monkeypatch.setattr(camera_manager.cv2, "VideoCapture", FakeCapture)
    return FakeCapture


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


class TestCameraManager:

    def test_unopened_source_raises(self, monkeypatch, fake_capture):
        monkeypatch.setattr(FakeCapture, "opened", False)
        with pytest.raises(IOError):
            CameraManager(CameraConfig(source=3))

    def test_newest_frame_is_delivered(self, fake_capture):
        with CameraManager(CameraConfig()) as camera:
            assert _wait_for(lambda: camera.get_stats()["captured_frames"] == 5)
            frame, metadata = camera.get_frame()
            assert metadata.frame_id == 5
            assert metadata.source_resolution == (64, 48)
            assert frame[0, 0, 0] == 5
            assert camera.get_stats()["skipped_frames"] == 4
            assert camera.get_frame() == (None, None)
        assert not camera.is_running()

    def test_resolution_requested_from_device(self, fake_capture):
        camera = CameraManager(CameraConfig(resolution=(640, 480), target_fps=15))
        stats = camera.get_stats()
        assert stats["actual_resolution"] == (640, 480)
        assert stats["target_fps"] == 15
        assert not stats["is_running"]
