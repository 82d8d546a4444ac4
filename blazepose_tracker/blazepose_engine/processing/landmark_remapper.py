# blazepose_tracker/blazepose_engine/processing/landmark_remapper.py
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .relative_velocity_filter import FilterState, RelativeVelocityFilter
from ..common.config import FilterConfig
from ..common.enums import LandmarkSpace
from ..common.errors import InvalidSample
from ..geometry.transforms import CropTransform
from ..inference.base import RegressorOutput

logger = logging.getLogger(__name__)


def remap_image_landmarks(raw: np.ndarray, transform: CropTransform) -> np.ndarray:
    """Crop-local (x, y, z) -> frame-normalized (x, y) and region-relative depth."""
    out = np.empty((raw.shape[0], 3))
    out[:, :2] = transform.to_frame(raw[:, :2])
    out[:, 2] = raw[:, 2] * transform.z_scale
    return out


def remap_world_landmarks(raw: np.ndarray, rotation: float) -> np.ndarray:
    """
    World landmarks are metric and hip-centered already; only the in-plane
    rotation the crop removed is put back, about the camera axis.
    """
    c, s = math.cos(rotation), math.sin(rotation)
    x, y = raw[:, 0], raw[:, 1]
    out = np.empty((raw.shape[0], 3))
    out[:, 0] = c * x - s * y
    out[:, 1] = s * x + c * y
    out[:, 2] = raw[:, 2]
    return out


def _scores(values: np.ndarray) -> np.ndarray:
    return np.where(np.isfinite(values), values, 0.0)


@dataclass(eq=False)
class PostProcessResult:
    landmarks: np.ndarray
    world_landmarks: np.ndarray
    low_confidence: np.ndarray
    presence: float
    warnings: List[InvalidSample] = field(default_factory=list)
    # False when the frame was not fed through the filters
    applied: bool = True


class LandmarkPostProcessor:
    """
    Maps regressor output back to frame space and runs the relative velocity
    filter on image-space and world-space keypoints independently.

    Owns the only state that outlives a frame: one FilterState per space.
    """

    def __init__(self, vertex_count: int, config: Optional[FilterConfig] = None):
        config = config or FilterConfig()
        self.vertex_count = vertex_count
        self.visibility_threshold = config.visibility_threshold
        self.image_state = FilterState(vertex_count, config.window_size)
        self.world_state = FilterState(vertex_count, config.window_size)
        self._filter = RelativeVelocityFilter(
            velocity_gain=config.velocity_gain,
            scale_floor=config.scale_floor,
            min_delta_time=config.min_delta_time,
        )
        self._visibility = np.zeros(vertex_count)
        self._world_visibility = np.zeros(vertex_count)

    def reset(self) -> None:
        self.image_state.reset()
        self.world_state.reset()
        self._visibility[:] = 0.0
        self._world_visibility[:] = 0.0

    def _pack(self, positions: np.ndarray, visibility: np.ndarray, presence: float) -> np.ndarray:
        out = np.zeros((self.vertex_count + 1, 4), dtype=np.float32)
        out[:-1, :3] = positions
        out[:-1, 3] = visibility
        out[-1, 0] = presence
        return out

    def held(self, presence: float = 0.0) -> PostProcessResult:
        """The last filtered frame, re-stamped with a new presence score."""
        return PostProcessResult(
            landmarks=self._pack(self.image_state.last_filtered, self._visibility, presence),
            world_landmarks=self._pack(self.world_state.last_filtered, self._world_visibility, presence),
            low_confidence=self._visibility < self.visibility_threshold,
            presence=presence,
            applied=False,
        )

    def process(self, output: RegressorOutput, transform: CropTransform, dt: float, sequence: Optional[int] = None) -> PostProcessResult:
        image = remap_image_landmarks(output.landmarks, transform)
        world = remap_world_landmarks(output.world_landmarks, transform.rotation)

        image_out = self._filter.apply(self.image_state, image, dt, sequence)
        world_out = self._filter.apply(self.world_state, world, dt, sequence)
        presence = float(output.presence) if math.isfinite(output.presence) else 0.0
        if not image_out.applied:
            return self.held(presence)

        warnings = [
            InvalidSample(LandmarkSpace.IMAGE.value, int(k), -1 if sequence is None else sequence)
            for k in np.flatnonzero(image_out.invalid)
        ] + [
            InvalidSample(LandmarkSpace.WORLD.value, int(k), -1 if sequence is None else sequence)
            for k in np.flatnonzero(world_out.invalid)
        ]
        for warning in warnings:
            logger.warning("%s", warning)

        # Scores pass through unfiltered
        self._visibility = _scores(output.landmarks[:, 3])
        self._world_visibility = _scores(output.world_landmarks[:, 3])

        return PostProcessResult(
            landmarks=self._pack(image_out.values, self._visibility, presence),
            world_landmarks=self._pack(world_out.values, self._world_visibility, presence),
            low_confidence=self._visibility < self.visibility_threshold,
            presence=presence,
            warnings=warnings,
        )
