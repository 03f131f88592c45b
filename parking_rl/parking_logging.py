"""Operator logging for the demo CLI: loguru sinks with stdlib records bridged in.

The library modules only use ``logging.getLogger(__name__)``; nothing is
configured on import. 仅命令行入口调用 ``setup_logging``，库模块导入时不会改动日志配置。
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger


class InterceptHandler(logging.Handler):
    """Redirect stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    *,
    level: str = "INFO",
    console: bool = True,
    file_path: Optional[Union[str, Path]] = None,
    serialize: bool = False,
) -> None:
    """Configure console/file sinks and route stdlib logging into loguru."""
    logger.remove()
    lvl = level.upper()
    if console:
        logger.add(sys.stderr, level=lvl, backtrace=False, diagnose=False, serialize=serialize)
    if file_path:
        logger.add(
            str(file_path),
            level=lvl,
            backtrace=False,
            diagnose=False,
            serialize=serialize,
        )
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(getattr(logging, lvl, logging.INFO))
    for name in list(logging.Logger.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
