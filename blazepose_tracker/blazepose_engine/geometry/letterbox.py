# blazepose_tracker/blazepose_engine/geometry/letterbox.py
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from . import affine
from ..common.errors import ConfigurationError

DETECTION_INPUT_IMAGE_SIZE = 128


def pad_scale_for(width: int, height: int) -> Tuple[float, float]:
    """How far the letterbox square extends past the frame along each axis."""
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Input frame has zero size ({width}x{height})")
    return (max(height / width, 1.0), max(1.0, width / height))


@dataclass(frozen=True)
class Letterbox:
    """Maps between letterbox-normalized and frame-normalized coordinates."""

    size: int
    pad_scale: Tuple[float, float]
    frame_size: Tuple[int, int]

    @classmethod
    def for_frame(cls, width: int, height: int, size: int = DETECTION_INPUT_IMAGE_SIZE) -> "Letterbox":
        return cls(size=size, pad_scale=pad_scale_for(width, height), frame_size=(width, height))

    @property
    def matrix(self) -> np.ndarray:
        """Letterbox-normalized -> frame-normalized."""
        sx, sy = self.pad_scale
        return affine.compose(
            affine.translation(0.5, 0.5),
            affine.scaling(sx, sy),
            affine.translation(-0.5, -0.5),
        )

    def to_frame(self, points: np.ndarray) -> np.ndarray:
        return (np.asarray(points, dtype=np.float64) - 0.5) * np.asarray(self.pad_scale) + 0.5

    def to_letterbox(self, points: np.ndarray) -> np.ndarray:
        return (np.asarray(points, dtype=np.float64) - 0.5) / np.asarray(self.pad_scale) + 0.5


def to_float_image(image: np.ndarray) -> np.ndarray:
    if image.dtype == np.uint8:
        return image.astype(np.float32) / 255.0
    return image.astype(np.float32, copy=False)


def letterbox_image(frame: np.ndarray, size: int = DETECTION_INPUT_IMAGE_SIZE) -> Tuple[np.ndarray, Letterbox]:
    """
    Resamples a frame of any resolution into a size x size square, padding the
    short axis with black so the aspect ratio is preserved.
    """
    if frame is None or frame.ndim < 2 or frame.size == 0:
        raise ConfigurationError("Cannot letterbox an empty frame")
    height, width = frame.shape[:2]
    box = Letterbox.for_frame(width, height, size)

    # Destination pixel -> source pixel, used with WARP_INVERSE_MAP.
    dst_to_src = affine.compose(
        affine.normalized_to_pixels(width, height),
        box.matrix,
        affine.pixels_to_normalized(size, size),
    )
    out = cv2.warpAffine(
        frame,
        dst_to_src[:2].astype(np.float32),
        (size, size),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )
    return to_float_image(out), box
