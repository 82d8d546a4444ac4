# blazepose_tracker/blazepose_engine/inference/base.py
"""
Interfaces to the two neural networks.

The engine never runs inference itself. A deployment plugs in a detector and
a regressor (TFLite, ONNX, a GPU runtime...) by implementing these classes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator

from ..common.enums import BlazePoseModel
from ..common.models import Detection


class RegressorOutput(BaseModel):
    """
    Raw landmark regressor output for one crop.

    - ``landmarks``: (N, 4) x, y, z, visibility; x/y normalized to the crop,
      z in the same units as x.
    - ``world_landmarks``: (N, 4) metric x, y, z around the hip midpoint, plus visibility.
    - ``presence``: probability that a person is in the crop at all.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    landmarks: np.ndarray
    world_landmarks: np.ndarray
    presence: float

    @field_validator("landmarks", "world_landmarks", mode="before")
    @classmethod
    def _as_keypoint_array(cls, v):
        arr = np.asarray(v, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] != 4:
            raise ValueError(f"expected an (N, 4) landmark array, got shape {arr.shape}")
        return arr


class PoseDetector(ABC):
    """
    Person detector adapter.

    Takes the letterboxed RGB float image (S, S, 3) and returns every raw
    candidate; thresholding and overlap suppression happen in the engine.
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def detect(self, letterboxed: np.ndarray) -> Sequence[Detection]: ...

    @abstractmethod
    def close(self) -> None: ...


class LandmarkRegressor(ABC):
    """Landmark regressor adapter working on the rotation-normalized crop."""

    @property
    @abstractmethod
    def vertex_count(self) -> int: ...

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def regress(self, crop: np.ndarray, model: BlazePoseModel) -> RegressorOutput: ...

    @abstractmethod
    def close(self) -> None: ...
