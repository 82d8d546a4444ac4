# blazepose_tracker/blazepose_engine/inference/factory.py
import importlib
import logging
from typing import Any, Callable, Tuple

from .base import LandmarkRegressor, PoseDetector
from ..common.config import InferenceConfig
from ..common.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_factory(path: str) -> Callable[..., Any]:
    """Resolves a ``package.module:attribute`` string to a callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Factory '{path}' must look like 'package.module:attribute'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import '{module_name}' for factory '{path}': {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr}'") from e
    if not callable(factory):
        raise ConfigurationError(f"Factory '{path}' is not callable")
    return factory


def build_collaborators(config: InferenceConfig) -> Tuple[PoseDetector, LandmarkRegressor]:
    """Instantiates the configured detector and regressor, releasing the first if the second fails."""
    if not config.detector or not config.regressor:
        raise ConfigurationError("Both inference.detector and inference.regressor must be configured")

    detector = load_factory(config.detector)(**config.options.get("detector", {}))
    try:
        regressor = load_factory(config.regressor)(**config.options.get("regressor", {}))
    except BaseException:
        detector.close()
        raise
    if not isinstance(detector, PoseDetector) or not isinstance(regressor, LandmarkRegressor):
        detector.close()
        regressor.close()
        raise ConfigurationError("Inference factories must return a PoseDetector and a LandmarkRegressor")
    logger.info("Loaded detector %s and regressor %s", detector.name(), regressor.name())
    return detector, regressor
