
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from trackify.core.config import settings

def mkdir_safe(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)

def setup_logging(component: str = "engine", *, log_level: str = None, log_dir: str = None):
    logger_name = f"{settings.APP_NAME}.{component}"
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger
    level = log_level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, level.upper()))
    log_dir = log_dir or settings.LOG_DIR
    mkdir_safe(log_dir)
    logfile = Path(log_dir) / f"{component}.log"
    handler = RotatingFileHandler(str(logfile), maxBytes=10_000_000, backupCount=5)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if os.getenv("DEV", "").lower() in ("1","true","yes"):
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    logger.propagate = False
    return logger
