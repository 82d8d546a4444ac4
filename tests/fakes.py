"""In-process stand-ins for the detector and landmark networks."""
import numpy as np

from blazepose_engine.common.enums import POSE_VERTEX_COUNT
from blazepose_engine.common.models import Detection
from blazepose_engine.inference.base import LandmarkRegressor, PoseDetector, RegressorOutput


def make_detection(score=0.9, center=(0.5, 0.5), size=(0.3, 0.4), rotation=0.0, anchors=None):
    return Detection(
        score=score,
        center=center,
        size=size,
        rotation=rotation,
        anchor_keypoints=list(anchors or []),
    )


class FakeDetector(PoseDetector):
    """Returns a fixed candidate list, or raises ``error`` when set."""

    def __init__(self, detections=None, error=None):
        self.detections = [make_detection()] if detections is None else list(detections)
        self.error = error
        self.calls = 0
        self.closed = False
        self.last_input = None

    def name(self) -> str:
        return "fake-detector"

    def detect(self, letterboxed):
        self.calls += 1
        self.last_input = letterboxed
        if self.error is not None:
            raise self.error
        return list(self.detections)

    def close(self) -> None:
        self.closed = True


class FakeRegressor(LandmarkRegressor):
    """
    Emits every landmark at crop-local ``position`` with visibility 0.9.
    ``presence`` may be a float or a list consumed one value per call.
    """

    def __init__(self, vertex_count=POSE_VERTEX_COUNT, presence=0.9, position=(0.5, 0.5, 0.0)):
        self._vertex_count = vertex_count
        self.presence = presence
        self.position = position
        self.calls = 0
        self.closed = False
        self.models = []

    @property
    def vertex_count(self) -> int:
        return self._vertex_count

    def name(self) -> str:
        return "fake-regressor"

    def _next_presence(self):
        if isinstance(self.presence, list):
            return self.presence.pop(0) if len(self.presence) > 1 else self.presence[0]
        return self.presence

    def regress(self, crop, model):
        self.calls += 1
        self.models.append(model)
        landmarks = np.zeros((self._vertex_count, 4))
        landmarks[:, :3] = self.position
        landmarks[:, 3] = 0.9
        world = np.zeros((self._vertex_count, 4))
        world[:, 0] = np.linspace(-0.3, 0.3, self._vertex_count)
        world[:, 3] = 0.9
        return RegressorOutput(landmarks=landmarks, world_landmarks=world, presence=self._next_presence())

    def close(self) -> None:
        self.closed = True


def build_detector(**kwargs):
    return FakeDetector(**kwargs)


def build_regressor(**kwargs):
    return FakeRegressor(**kwargs)
