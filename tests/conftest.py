"""Shared fixtures for the pose engine tests."""
import numpy as np
import pytest

from blazepose_engine.common.config import EngineConfig
from blazepose_engine.common.models import FrameMetadata
from blazepose_engine.processing.pose_processor import PoseProcessor
from fakes import FakeDetector, FakeRegressor


@pytest.fixture
def frame():
    """A 512x384 BGR frame with a gradient, so crops are not uniform."""
    image = np.zeros((384, 512, 3), dtype=np.uint8)
    image[..., 0] = np.linspace(0, 255, 512, dtype=np.uint8)[None, :]
    image[..., 1] = np.linspace(0, 255, 384, dtype=np.uint8)[:, None]
    return image


@pytest.fixture
def metadata_factory():
    """Builds metadata for frame ``i`` of a 30 fps stream."""
    def _make(i, width=512, height=384):
        return FrameMetadata(frame_id=i, timestamp=i / 30.0, source_resolution=(width, height))
    return _make


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def regressor():
    return FakeRegressor()


@pytest.fixture
def processor(engine_config, detector, regressor):
    proc = PoseProcessor(engine_config, detector, regressor)
    yield proc
    proc.close()
