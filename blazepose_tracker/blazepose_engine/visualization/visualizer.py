# blazepose_tracker/blazepose_engine/visualization/visualizer.py
import cv2
import math
import numpy as np
from typing import Optional
from ..common.config import VisualizationConfig
from ..common.models import PoseRegion, PoseResult

# BlazePose 33-point topology
POSE_CONNECTIONS = (
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8), (9, 10),
    (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    (11, 23), (12, 24), (23, 24), (23, 25), (24, 26), (25, 27), (26, 28),
    (27, 29), (28, 30), (29, 31), (30, 32), (27, 31), (28, 32),
)

class Visualizer:
    """Draws filtered landmarks, the crop region and a HUD with adaptive level of detail."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()
        self.font = cv2.FONT_HERSHEY_SIMPLEX

    def render(self, frame: np.ndarray, result: PoseResult, current_fps: float) -> np.ndarray:
        output_frame = frame.copy()
        lod_reduced = self.config.adaptive_lod and current_fps < self.config.lod_threshold_fps

        if result.region is not None and self.config.draw_region:
            self._draw_region(output_frame, result.region)

        if result.landmarks is not None and self.config.draw_landmarks and result.presence > 0.0:
            connection_color = (100, 100, 100) if lod_reduced else (200, 200, 200)
            self._draw_landmarks(output_frame, result.landmarks[:-1], connection_color, draw_points=not lod_reduced)

        if self.config.draw_hud:
            self._draw_hud(output_frame, result, current_fps, lod_reduced)

        return output_frame

    def _to_pixels(self, frame: np.ndarray, landmarks: np.ndarray) -> np.ndarray:
        h, w = frame.shape[:2]
        return np.round(landmarks[:, :2] * (w, h)).astype(np.int32)

    def _draw_landmarks(self, frame: np.ndarray, landmarks: np.ndarray, connection_color, draw_points: bool = True):
        points = self._to_pixels(frame, landmarks)
        visible = landmarks[:, 3] >= self.config.min_visibility

        for a, b in POSE_CONNECTIONS:
            if a < len(points) and b < len(points) and visible[a] and visible[b]:
                cv2.line(frame, tuple(map(int, points[a])), tuple(map(int, points[b])), connection_color, 2, cv2.LINE_AA)
        if not draw_points:
            return
        for i in np.flatnonzero(visible):
            cv2.circle(frame, tuple(map(int, points[i])), 3, (0, 255, 0), -1, cv2.LINE_AA)

    def _draw_region(self, frame: np.ndarray, region: PoseRegion):
        h, w = frame.shape[:2]
        cx, cy = region.center[0] * w, region.center[1] * h
        hw, hh = region.size[0] * w / 2, region.size[1] * h / 2
        c, s = math.cos(region.rotation), math.sin(region.rotation)
        corners = [(-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)]
        polygon = np.array([[cx + c * x - s * y, cy + s * x + c * y] for x, y in corners], dtype=np.int32)
        cv2.polylines(frame, [polygon], True, (255, 160, 0), 1, cv2.LINE_AA)

    def _draw_hud(self, frame: np.ndarray, result: PoseResult, fps: float, lod_reduced: bool):
        hud_elements = [
            f"FPS: {fps:.1f}",
            f"Processing: {result.processing_time_ms:.1f} ms",
            f"State: {result.status.value}",
            f"Presence: {result.presence:.2f}  Detections: {result.detection_count}",
        ]
        if lod_reduced:
            hud_elements.append("LOD: REDUCED")

        for i, text in enumerate(hud_elements):
            cv2.putText(frame, text, (10, 30 + i * 30), self.font, 0.7, (240, 240, 240), 2, cv2.LINE_AA)
