# blazepose_tracker/blazepose_engine/processing/relative_velocity_filter.py
"""
Relative velocity filter for landmark trajectories.

Smoothing strength follows each keypoint's own recent motion: the
instantaneous velocity is compared with the mean velocity over a short
history window, so a fast hand and a slow torso are treated differently
without per-keypoint tuning. A large velocity relative to that scale pushes
the blend factor towards 1 (follow the sample); a small one pushes it
towards 0 (hold the previous estimate).

All arrays are vectorized over keypoints and axes.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

RVF_WINDOW_SIZE = 5
AXES = 3


def normalized_delta_time(real_delta_time: float, responsiveness: float = 4500.0, min_delta_time: float = 1e-6) -> float:
    """
    Converts wall-clock frame time into the filter's time step,
    ``1 / (responsiveness * real_delta_time)``. Non-finite or non-positive
    input (a paused clock, a rewound timestamp) clamps to ``min_delta_time``.
    """
    if real_delta_time is None or not math.isfinite(real_delta_time) or real_delta_time <= 0.0:
        return min_delta_time
    dt = 1.0 / (responsiveness * real_delta_time)
    if not math.isfinite(dt):
        return min_delta_time
    return max(dt, min_delta_time)


class FilterState:
    """
    Cross-frame state of the filter for one coordinate space.

    ``history`` is a fixed (window, keypoints, 3) ring kept in arrival order;
    only the newest ``history_count[k]`` rows are valid for keypoint ``k``.
    ``last_scale`` is the velocity scale the most recent frame was blended
    with, kept for inspection; the next frame recomputes it from the window.
    """

    def __init__(self, keypoint_count: int, window_size: int = RVF_WINDOW_SIZE):
        self.keypoint_count = keypoint_count
        self.window_size = window_size
        self.reset()

    def reset(self) -> None:
        w, n = self.window_size, self.keypoint_count
        self.history = np.zeros((w, n, AXES))
        self.history_dt = np.ones((w, n))
        self.history_count = np.zeros(n, dtype=np.int64)
        self.last_filtered = np.zeros((n, AXES))
        self.last_scale = np.zeros((n, AXES))
        self.last_sequence = -1

    @property
    def initialized(self) -> np.ndarray:
        return self.history_count > 0

    def window(self, keypoint: int) -> np.ndarray:
        """The valid history rows of one keypoint, oldest first."""
        count = int(self.history_count[keypoint])
        return self.history[self.window_size - count:, keypoint]

    def push(self, values: np.ndarray, dt: float, mask: np.ndarray) -> None:
        if not mask.any():
            return
        self.history[:, mask] = np.roll(self.history[:, mask], -1, axis=0)
        self.history_dt[:, mask] = np.roll(self.history_dt[:, mask], -1, axis=0)
        self.history[-1, mask] = values[mask]
        self.history_dt[-1, mask] = dt
        self.history_count[mask] = np.minimum(self.history_count[mask] + 1, self.window_size)

    def window_scale(self) -> np.ndarray:
        """Mean absolute step velocity over each keypoint's valid window."""
        steps = np.abs(np.diff(self.history, axis=0)) / self.history_dt[1:, :, None]
        rows = np.arange(self.window_size - 1)[:, None]
        valid = rows >= (self.window_size - self.history_count)[None, :]
        total = np.where(valid[..., None], steps, 0.0).sum(axis=0)
        return total / np.maximum(valid.sum(axis=0), 1)[:, None]


@dataclass(eq=False)
class FilterOutput:
    values: np.ndarray
    alpha: np.ndarray
    # Keypoints whose incoming sample was non-finite this frame
    invalid: np.ndarray
    applied: bool = True


class RelativeVelocityFilter:
    """
    The scale a sample is judged against is computed after the sample joins
    the history, so the current step is part of its own window. A sudden
    jump therefore raises the scale too and is followed part of the way, not
    all at once.
    """

    def __init__(self, velocity_gain: float = 1.0, scale_floor: float = 1e-6, min_delta_time: float = 1e-6):
        self.velocity_gain = velocity_gain
        self.scale_floor = scale_floor
        self.min_delta_time = min_delta_time

    def apply(self, state: FilterState, values: np.ndarray, dt: float, sequence: Optional[int] = None) -> FilterOutput:
        """
        Feeds one frame of remapped positions, shape (keypoints, 3), through
        the filter and returns the filtered positions.

        Frames must arrive in ``sequence`` order; a stale sequence number
        leaves the state untouched.
        """
        n = state.keypoint_count
        values = np.array(values, dtype=np.float64).reshape(n, AXES)
        if sequence is not None:
            if sequence <= state.last_sequence:
                logger.warning(
                    "Dropping out-of-order frame %d (last applied %d)", sequence, state.last_sequence
                )
                return FilterOutput(
                    values=state.last_filtered.copy(),
                    alpha=np.zeros((n, AXES)),
                    invalid=np.zeros(n, dtype=bool),
                    applied=False,
                )
            state.last_sequence = sequence
        if not math.isfinite(dt) or dt <= 0.0:
            dt = self.min_delta_time

        previous = state.last_filtered
        invalid = ~np.isfinite(values).all(axis=1)
        seen = state.initialized
        # A corrupt sample is replaced by the last estimate; a keypoint never
        # observed has nothing to fall back on and stays uninitialized.
        values[invalid] = previous[invalid]
        active = seen | ~invalid

        state.push(values, dt, active)

        velocity = np.abs(values - previous) / dt
        scale = np.maximum(state.window_scale(), self.scale_floor)
        alpha = np.clip(1.0 - 1.0 / (1.0 + self.velocity_gain * velocity / scale), 0.0, 1.0)
        filtered = previous + alpha * (values - previous)

        first = active & (state.history_count == 1)
        filtered[first] = values[first]
        alpha[first] = 1.0
        filtered[~active] = previous[~active]
        alpha[~active] = 0.0

        state.last_filtered = filtered
        state.last_scale[active] = scale[active]
        return FilterOutput(values=filtered.copy(), alpha=alpha, invalid=invalid)
