import logging
import sys
from typing import Optional

ROOT_LOGGER = "docchat"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    # module names are nested under one root so the level applies project-wide
    if name and not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    logger = logging.getLogger(name or ROOT_LOGGER)
    if logger.handlers:
        return logger

    from common.config import yaml_config

    logger.setLevel(yaml_config.app.log_level)
    handler = logging.StreamHandler(sys.stdout)
    fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
