# blazepose_tracker/blazepose_engine/common/enums.py
from enum import Enum

# Every BlazePose landmark variant regresses the same 33-point topology.
POSE_VERTEX_COUNT = 33

class PoseState(str, Enum):
    """Defines the operational state of the PoseProcessor."""
    INITIALIZING = "INITIALIZING"
    SEARCHING = "SEARCHING"
    TRACKING = "TRACKING"
    LOST_TARGET = "LOST_TARGET"
    ERROR = "ERROR"

class LogLevel(str, Enum):
    """Defines logging levels for the engine's loggers."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

class BlazePoseModel(str, Enum):
    """Landmark regressor variants, trading accuracy for compute cost."""
    LIGHT = "light"
    FULL = "full"
    HEAVY = "heavy"

    @property
    def vertex_count(self) -> int:
        return POSE_VERTEX_COUNT

class LandmarkSpace(str, Enum):
    IMAGE = "image"
    WORLD = "world"

class ExecutionMode(str, Enum):
    """How the caller drives the pipeline: wait for each frame, or collect futures."""
    BLOCKING = "blocking"
    ASYNC = "async"
