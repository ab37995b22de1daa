import logging
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .config import TracerConfig

PACKAGE_LOGGER = "chrome_shift_tracer"
LOG_FORMAT = "[%(asctime)s][%(thread)d][%(levelname)s][%(lineno)d] %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO, logfile: Optional[str] = None) -> logging.Logger:
    """
    Installs console (and optionally file) handlers on the package logger.

    Calling it again replaces the handlers installed by the previous call, so
    repeated runs in one process do not duplicate output.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_shift_tracer_handler", False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler._shift_tracer_handler = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if logfile:
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler._shift_tracer_handler = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(config: "TracerConfig", logfile: Optional[str] = None) -> logging.Logger:
    return setup_logging(config.log_level, logfile)
