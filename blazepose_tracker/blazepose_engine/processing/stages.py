# blazepose_tracker/blazepose_engine/processing/stages.py
"""
Per-frame pipeline stages.

Each stage takes its inputs explicitly and returns a fresh output; the
pipeline orders them purely by passing one stage's result into the next.
"""

from dataclasses import dataclass
from typing import List, Union

import cv2
import numpy as np

from .region_cropper import CropResult, RegionBox, RegionCropper
from ..common.enums import BlazePoseModel
from ..common.errors import ConfigurationError
from ..common.models import Detection
from ..detection.region_selector import select_detections
from ..geometry.letterbox import Letterbox, letterbox_image
from ..inference.base import LandmarkRegressor, PoseDetector, RegressorOutput


@dataclass(frozen=True, eq=False)
class LetterboxedFrame:
    rgb: np.ndarray
    image: np.ndarray
    letterbox: Letterbox


def prepare_frame(frame: np.ndarray, color_order: str = "bgr") -> np.ndarray:
    if frame is None or not isinstance(frame, np.ndarray) or frame.ndim != 3 or frame.shape[2] != 3:
        raise ConfigurationError("Input frame must be an (H, W, 3) image")
    if frame.shape[0] == 0 or frame.shape[1] == 0:
        raise ConfigurationError(f"Input frame has zero size ({frame.shape[1]}x{frame.shape[0]})")
    if color_order == "bgr":
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    return frame


def letterbox_stage(frame: np.ndarray, size: int, color_order: str = "bgr") -> LetterboxedFrame:
    rgb = prepare_frame(frame, color_order)
    image, letterbox = letterbox_image(rgb, size)
    return LetterboxedFrame(rgb=rgb, image=image, letterbox=letterbox)


def detect_stage(detector: PoseDetector, letterboxed: LetterboxedFrame, pose_threshold: float, iou_threshold: float) -> List[Detection]:
    candidates = detector.detect(letterboxed.image)
    return select_detections(candidates, pose_threshold, iou_threshold)


def crop_stage(cropper: RegionCropper, source: Union[Detection, RegionBox], letterboxed: LetterboxedFrame) -> CropResult:
    return cropper.crop(source, letterboxed.rgb, letterboxed.letterbox)


def regress_stage(regressor: LandmarkRegressor, crop: CropResult, model: BlazePoseModel) -> RegressorOutput:
    output = regressor.regress(crop.image, model)
    if output.landmarks.shape[0] != regressor.vertex_count or output.world_landmarks.shape[0] != regressor.vertex_count:
        raise ValueError(
            f"Regressor returned {output.landmarks.shape[0]}/{output.world_landmarks.shape[0]} "
            f"landmarks, expected {regressor.vertex_count}"
        )
    return output
