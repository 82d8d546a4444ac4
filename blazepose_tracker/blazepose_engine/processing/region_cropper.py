# blazepose_tracker/blazepose_engine/processing/region_cropper.py
import math
from dataclasses import dataclass
from typing import Tuple, Union

import cv2
import numpy as np

from ..common.errors import DegenerateRegion
from ..common.models import Detection
from ..geometry.affine import normalize_radians
from ..geometry.letterbox import Letterbox, to_float_image
from ..geometry.transforms import CropTransform

LANDMARK_INPUT_IMAGE_SIZE = 256

# The person stands upright when the rotation anchor sits straight above the center.
TARGET_ANGLE = math.pi / 2


@dataclass(frozen=True)
class RegionBox:
    """Square crop box in letterbox-normalized units."""
    center: Tuple[float, float]
    side: float
    rotation: float

    def as_vector(self) -> np.ndarray:
        return np.array([self.center[0], self.center[1], self.side, self.rotation])

    @classmethod
    def from_vector(cls, v) -> "RegionBox":
        return cls(center=(float(v[0]), float(v[1])), side=float(v[2]), rotation=float(v[3]))


@dataclass(frozen=True, eq=False)
class CropResult:
    transform: CropTransform
    image: np.ndarray


def region_box_from_detection(
    detection: Detection,
    padding_ratio: float = 1.25,
    center_keypoint: int = 0,
    rotation_keypoint: int = 1,
) -> RegionBox:
    """
    Derives the square, rotation-normalized crop box for a detection.

    The box is centered on the center anchor, large enough to cover every
    anchor keypoint and the detector's own box, then padded by
    ``padding_ratio``. Rotation aligns the center->rotation anchor vector with
    the crop's vertical axis. Without enough anchors the detection's center,
    size and rotation are used as they are.

    The anchor spread alone can size the box, so a detection reporting a
    zero-sized box but distinct anchors still yields a valid region.
    DegenerateRegion is raised when the resulting side is zero or non-finite,
    or when the center or rotation is non-finite.
    """
    anchors = np.asarray(detection.anchor_keypoints, dtype=np.float64).reshape(-1, 2)
    bbox_side = max(detection.size)
    rotation = detection.rotation
    spread = 0.0

    if len(anchors) > max(center_keypoint, rotation_keypoint):
        center = anchors[center_keypoint]
        spread = 2.0 * float(np.max(np.linalg.norm(anchors - center, axis=1)))
        dx, dy = anchors[rotation_keypoint] - center
        if math.hypot(dx, dy) > 1e-9:
            rotation = TARGET_ANGLE - math.atan2(-dy, dx)
    else:
        center = np.asarray(detection.center, dtype=np.float64)

    side = padding_ratio * max(spread, bbox_side)
    if not math.isfinite(side) or side <= 0.0:
        raise DegenerateRegion(f"Detection yields a crop of side {side}")
    if not np.all(np.isfinite(center)) or not math.isfinite(rotation):
        raise DegenerateRegion("Detection has a non-finite center or rotation")

    return RegionBox(center=(float(center[0]), float(center[1])), side=side, rotation=normalize_radians(rotation))


class RegionCropper:
    """Computes the per-frame crop transform and extracts the regressor input."""

    def __init__(self, input_size=LANDMARK_INPUT_IMAGE_SIZE, padding_ratio=1.25, center_keypoint=0, rotation_keypoint=1):
        self.input_size = input_size
        self.padding_ratio = padding_ratio
        self.center_keypoint = center_keypoint
        self.rotation_keypoint = rotation_keypoint

    def region_box(self, detection: Detection) -> RegionBox:
        return region_box_from_detection(
            detection, self.padding_ratio, self.center_keypoint, self.rotation_keypoint
        )

    def transform(self, box: RegionBox, letterbox: Letterbox) -> CropTransform:
        if not math.isfinite(box.side) or box.side <= 0.0:
            raise DegenerateRegion(f"Region box has side {box.side}")
        return CropTransform.from_box(box.center, box.side, box.rotation, letterbox)

    def extract(self, frame: np.ndarray, transform: CropTransform) -> np.ndarray:
        height, width = frame.shape[:2]
        matrix = transform.pixel_matrix((width, height), self.input_size)
        crop = cv2.warpAffine(
            frame,
            matrix,
            (self.input_size, self.input_size),
            flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
            borderMode=cv2.BORDER_REPLICATE,
        )
        return to_float_image(crop)

    def crop(self, source: Union[Detection, RegionBox], frame: np.ndarray, letterbox: Letterbox) -> CropResult:
        box = self.region_box(source) if isinstance(source, Detection) else source
        transform = self.transform(box, letterbox)
        return CropResult(transform=transform, image=self.extract(frame, transform))
