# blazepose_tracker/blazepose_engine/common/errors.py
class PoseEngineError(Exception):
    """Base class for every error raised by the pose engine."""


class DegenerateRegion(PoseEngineError):
    """The crop region collapsed to a zero, negative or non-finite size."""


class InvalidSample(PoseEngineError):
    """A regressor landmark carried NaN/Inf coordinates and was substituted."""

    def __init__(self, space: str, keypoint: int, sequence: int = -1):
        self.space = space
        self.keypoint = keypoint
        self.sequence = sequence
        super().__init__(
            f"Non-finite {space} landmark {keypoint} in frame {sequence}; "
            f"holding previous filtered value"
        )


class ReadbackError(PoseEngineError):
    """Results could not be read back from the execution unit for a frame."""


class ConfigurationError(PoseEngineError):
    """Malformed configuration, resources or input frame."""
