# blazepose_tracker/blazepose_engine/detection/region_selector.py
import logging
from typing import List, Optional, Sequence

import numpy as np

from ..common.config import OneEuroConfig
from ..common.errors import DegenerateRegion
from ..common.models import Detection
from ..processing.one_euro_filter import OneEuroFilter
from ..processing.region_cropper import RegionBox, RegionCropper

logger = logging.getLogger(__name__)


def iou(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """IoU of one (xmin, ymin, xmax, ymax) box against an (M, 4) array of boxes."""
    x1 = np.maximum(box[0], others[:, 0])
    y1 = np.maximum(box[1], others[:, 1])
    x2 = np.minimum(box[2], others[:, 2])
    y2 = np.minimum(box[3], others[:, 3])
    inter = np.maximum(0.0, x2 - x1) * np.maximum(0.0, y2 - y1)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (others[:, 2] - others[:, 0]) * (others[:, 3] - others[:, 1])
    return inter / np.maximum(area + areas - inter, 1e-12)


def suppress_overlaps(detections: Sequence[Detection], iou_threshold: float) -> List[Detection]:
    """Greedy non-maximum suppression, highest score first."""
    if not detections:
        return []
    ordered = sorted(detections, key=lambda d: d.score, reverse=True)
    boxes = np.array([d.bounds() for d in ordered], dtype=np.float64)
    keep: List[int] = []
    remaining = np.arange(len(ordered))
    while remaining.size > 0:
        best = int(remaining[0])
        keep.append(best)
        rest = remaining[1:]
        if rest.size == 0:
            break
        overlaps = iou(boxes[best], boxes[rest])
        remaining = rest[overlaps < iou_threshold]
    return [ordered[i] for i in keep]


def select_detections(candidates: Sequence[Detection], pose_threshold: float = 0.75, iou_threshold: float = 0.3) -> List[Detection]:
    """
    Confidence thresholding followed by overlap suppression. The result is
    sorted by score, so the first entry is the active person.
    """
    confident = [d for d in candidates if d.score >= pose_threshold]
    return suppress_overlaps(confident, iou_threshold)


class RegionTracker:
    """
    Keeps the single active person region alive across frames.

    A new detection replaces the region (low-pass filtered when smoothing is
    enabled); a missing or degenerate detection holds the previous region over.
    """

    def __init__(self, cropper: RegionCropper, smoothing: Optional[OneEuroConfig] = None):
        smoothing = smoothing or OneEuroConfig()
        self.cropper = cropper
        self._smoother = None
        if smoothing.enabled:
            self._smoother = OneEuroFilter(
                min_cutoff=smoothing.min_cutoff,
                beta=smoothing.beta,
                d_cutoff=smoothing.d_cutoff,
                angular=[False, False, False, True],
            )
        self._box: Optional[RegionBox] = None

    @property
    def box(self) -> Optional[RegionBox]:
        return self._box

    def reset(self) -> None:
        self._box = None
        if self._smoother is not None:
            self._smoother.reset()

    def update(self, detection: Optional[Detection], timestamp: float) -> Optional[RegionBox]:
        if detection is None:
            return self._box
        try:
            box = self.cropper.region_box(detection)
        except DegenerateRegion as e:
            logger.warning("Holding previous region over: %s", e)
            return self._box

        if self._smoother is not None:
            box = RegionBox.from_vector(self._smoother(box.as_vector(), timestamp))
        self._box = box
        return box
