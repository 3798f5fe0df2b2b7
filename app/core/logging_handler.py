import logging
from typing import Optional


def setup_logger(
    name: str = "app",
    level: int | str = logging.INFO,
    handler_level: Optional[int] = None,
) -> logging.Logger:
    """Configure and return the application logger.

    Child loggers (``logging.getLogger(__name__)`` inside ``app.*``) propagate
    here, so this only needs to run once at startup.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        console_handler = logging.StreamHandler()
        console_handler.setLevel(handler_level or level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
