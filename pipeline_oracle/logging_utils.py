"""Logging set-up for applications embedding the Pipeline Oracle."""

import logging
import os
from typing import Optional, Union

PathLike = Union[str, os.PathLike]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "pipeline_oracle.log"


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[PathLike] = None,
    logger_name: Optional[str] = "pipeline_oracle",
) -> logging.Logger:
    """
    Attach console (and optional file) handlers to the engine's logger.

    Call once at start-up. Every engine module logs under `pipeline_oracle.*`,
    so configuring the package logger covers them all. Repeated calls only
    update the level.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_dir:
        log_dir_str = os.fspath(log_dir)
        os.makedirs(log_dir_str, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(log_dir_str, LOG_FILE_NAME), encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
