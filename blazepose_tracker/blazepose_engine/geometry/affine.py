# blazepose_tracker/blazepose_engine/geometry/affine.py
"""Homogeneous 2D affine helpers (3x3, column vectors, image y axis pointing down)."""

import math

import numpy as np


def translation(tx: float, ty: float) -> np.ndarray:
    m = np.eye(3)
    m[0, 2] = tx
    m[1, 2] = ty
    return m


def scaling(sx: float, sy: float) -> np.ndarray:
    return np.diag([sx, sy, 1.0])


def rotation(angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def compose(*matrices: np.ndarray) -> np.ndarray:
    """compose(A, B, C) applies C first, then B, then A."""
    out = np.eye(3)
    for m in matrices:
        out = out @ m
    return out


def apply(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Maps an (..., 2) array of points through a 3x3 affine matrix."""
    pts = np.asarray(points, dtype=np.float64)
    return pts @ matrix[:2, :2].T + matrix[:2, 2]


def pixels_to_normalized(width: int, height: int) -> np.ndarray:
    # Pixel centers sit at integer coordinates, matching cv2.warpAffine.
    return compose(scaling(1.0 / width, 1.0 / height), translation(0.5, 0.5))


def normalized_to_pixels(width: int, height: int) -> np.ndarray:
    return compose(translation(-0.5, -0.5), scaling(width, height))


def normalize_radians(angle: float) -> float:
    """Wraps an angle into [-pi, pi)."""
    return angle - 2 * math.pi * math.floor((angle + math.pi) / (2 * math.pi))
