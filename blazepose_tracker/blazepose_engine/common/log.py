# blazepose_tracker/blazepose_engine/common/log.py
import logging

from .enums import LogLevel

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """Installs the engine's log format on the root logger."""
    logging.basicConfig(level=getattr(logging, LogLevel(level).value), format=LOG_FORMAT)
    logging.getLogger().setLevel(LogLevel(level).value)
