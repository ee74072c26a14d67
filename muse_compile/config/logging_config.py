"""
日志初始化

所有模块使用 logging.getLogger(__name__)，这里只负责给包根 logger 挂 handler。
"""

from __future__ import annotations

import logging
from pathlib import Path

from .runtime_config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PACKAGE_LOGGER = "muse_compile"


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """
    配置包根 logger

    重复调用不会重复添加 handler。

    Args:
        config: 日志配置，None 时使用默认值

    Returns:
        包根 logger
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if logger.handlers:
        return logger

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger
