# blazepose_tracker/blazepose_engine/common/models.py
import numpy as np
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Tuple, Dict, List
from .enums import PoseState

Vec2 = Tuple[float, float]

class FrameMetadata(BaseModel):
    """Metadata associated with a single camera frame."""
    frame_id: int
    timestamp: float
    source_resolution: Tuple[int, int]

class Detection(BaseModel):
    """
    One person candidate from the region detector.

    Coordinates are normalized to the letterboxed detector input. The first
    anchor keypoint is the hip midpoint, the second the full-body scale point.
    """
    score: float = Field(ge=0.0, le=1.0)
    center: Vec2
    size: Vec2
    rotation: float = 0.0
    anchor_keypoints: List[Vec2] = Field(default_factory=list)

    def bounds(self) -> Tuple[float, float, float, float]:
        """Axis-aligned box as (xmin, ymin, xmax, ymax)."""
        cx, cy = self.center
        hw, hh = self.size[0] / 2, self.size[1] / 2
        return (cx - hw, cy - hh, cx + hw, cy + hh)

class PoseRegion(BaseModel):
    """Oriented crop region in original-frame normalized coordinates."""
    center: Vec2
    size: Vec2
    rotation: float = 0.0

class PoseResult(BaseModel):
    """Encapsulates the complete result of a single frame's pose processing."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    timestamp: float
    frame_id: int
    sequence: int
    processing_time_ms: float
    status: PoseState
    landmarks: Optional[np.ndarray] = None
    world_landmarks: Optional[np.ndarray] = None
    low_confidence: Optional[np.ndarray] = None
    presence: float = 0.0
    region: Optional[PoseRegion] = None
    detections: List[Detection] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    performance_metrics: Dict[str, float] = Field(default_factory=dict)

    @property
    def detection_count(self) -> int:
        return len(self.detections)
