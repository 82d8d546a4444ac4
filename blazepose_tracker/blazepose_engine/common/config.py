# blazepose_tracker/blazepose_engine/common/config.py
"""
Configuration schema for the pose engine.

The YAML file mirrors these sections one to one. Every field has a default,
so an empty file (or a missing section) yields a working configuration.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .enums import BlazePoseModel, ExecutionMode, LogLevel
from .errors import ConfigurationError


class PipelineConfig(BaseModel):
    model: BlazePoseModel = BlazePoseModel.FULL
    pose_threshold: float = Field(0.75, ge=0.0, le=1.0)
    iou_threshold: float = Field(0.3, ge=0.0, le=1.0)
    detection_input_size: int = Field(128, gt=0)
    landmark_input_size: int = Field(256, gt=0)
    # Camera frames arrive as BGR; the networks expect RGB.
    input_color_order: str = Field("bgr", pattern="^(bgr|rgb)$")
    # Assumed frame interval (seconds) before two timestamps are available.
    default_frame_interval: float = Field(1.0 / 30.0, gt=0.0)
    execution_mode: ExecutionMode = ExecutionMode.BLOCKING
    # Async mode: frames submitted but not yet consumed before new ones are dropped.
    max_in_flight: int = Field(2, ge=1)


class FilterConfig(BaseModel):
    """Relative velocity filter tunables."""
    window_size: int = Field(5, ge=2)
    # K in dt = 1 / (K * real_delta_time).
    responsiveness: float = Field(4500.0, gt=0.0)
    velocity_gain: float = Field(1.0, gt=0.0)
    scale_floor: float = Field(1e-6, gt=0.0)
    min_delta_time: float = Field(1e-6, gt=0.0)
    visibility_threshold: float = Field(0.5, ge=0.0, le=1.0)


class OneEuroConfig(BaseModel):
    enabled: bool = True
    min_cutoff: float = Field(2.0, gt=0.0)
    beta: float = Field(1.5, ge=0.0)
    d_cutoff: float = Field(1.0, gt=0.0)


class RegionConfig(BaseModel):
    # Crop side = padding_ratio * (box covering all anchor keypoints).
    padding_ratio: float = Field(1.25, gt=0.0)
    center_keypoint: int = Field(0, ge=0)
    rotation_keypoint: int = Field(1, ge=0)
    smoothing: OneEuroConfig = Field(default_factory=OneEuroConfig)


class TrackingConfig(BaseModel):
    presence_threshold: float = Field(0.5, ge=0.0, le=1.0)
    reset_after_lost_frames: int = Field(5, ge=1)


class CameraConfig(BaseModel):
    source: Union[int, str] = 0
    resolution: Tuple[int, int] = (1280, 720)
    target_fps: int = Field(30, gt=0)
    buffer_size: int = Field(5, gt=0)


class VisualizationConfig(BaseModel):
    draw_landmarks: bool = True
    draw_region: bool = True
    draw_hud: bool = True
    adaptive_lod: bool = True
    lod_threshold_fps: float = 20.0
    min_visibility: float = Field(0.5, ge=0.0, le=1.0)


class InferenceConfig(BaseModel):
    """Dotted ``module:attribute`` factories for the external networks."""
    detector: Optional[str] = None
    regressor: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    level: LogLevel = LogLevel.INFO


class EngineConfig(BaseModel):
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)
    region: RegionConfig = Field(default_factory=RegionConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    visualization: VisualizationConfig = Field(default_factory=VisualizationConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Reads a YAML file into an EngineConfig, raising ConfigurationError on any problem."""
    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file '{path}': {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse configuration file '{path}': {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")
    try:
        return EngineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in '{path}': {e}") from e
