# blazepose_tracker/blazepose_engine/geometry/transforms.py
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from . import affine
from .letterbox import Letterbox
from ..common.models import PoseRegion


@dataclass(frozen=True, eq=False)
class CropTransform:
    """
    Invertible affine map from crop-local [0,1]^2 to frame-normalized [0,1]^2.

    Built once per frame. The same instance drives pixel extraction and the
    landmark remap, so both agree bit for bit.
    """

    matrix: np.ndarray
    center: Tuple[float, float]
    side: float
    rotation: float
    letterbox: Letterbox

    @classmethod
    def from_box(cls, center: Tuple[float, float], side: float, rotation: float, letterbox: Letterbox) -> "CropTransform":
        """``center`` and ``side`` are in letterbox-normalized units, where pixels are square."""
        crop_to_letterbox = affine.compose(
            affine.translation(center[0], center[1]),
            affine.rotation(rotation),
            affine.scaling(side, side),
            affine.translation(-0.5, -0.5),
        )
        matrix = letterbox.matrix @ crop_to_letterbox
        matrix.setflags(write=False)
        return cls(
            matrix=matrix,
            center=(float(center[0]), float(center[1])),
            side=float(side),
            rotation=float(rotation),
            letterbox=letterbox,
        )

    @property
    def inverse(self) -> np.ndarray:
        return np.linalg.inv(self.matrix)

    @property
    def z_scale(self) -> float:
        """Region width in frame-normalized x units; relative depth scales with it."""
        return self.side * self.letterbox.pad_scale[0]

    def to_frame(self, points: np.ndarray) -> np.ndarray:
        return affine.apply(self.matrix, points)

    def to_crop(self, points: np.ndarray) -> np.ndarray:
        return affine.apply(self.inverse, points)

    def region(self) -> PoseRegion:
        cx, cy = self.letterbox.to_frame(self.center)
        sx, sy = self.letterbox.pad_scale
        return PoseRegion(
            center=(float(cx), float(cy)),
            size=(self.side * sx, self.side * sy),
            rotation=self.rotation,
        )

    def pixel_matrix(self, frame_size: Tuple[int, int], crop_size: int) -> np.ndarray:
        """2x3 matrix taking crop pixels to frame pixels, for cv2.WARP_INVERSE_MAP."""
        width, height = frame_size
        m = affine.compose(
            affine.normalized_to_pixels(width, height),
            self.matrix,
            affine.pixels_to_normalized(crop_size, crop_size),
        )
        return m[:2].astype(np.float32)

    def corners(self) -> np.ndarray:
        """Frame-normalized corners of the crop, clockwise from crop-local (0, 0)."""
        return self.to_frame(np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]))
