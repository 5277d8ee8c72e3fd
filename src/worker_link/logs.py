"""日志配置。

默认输出到 stderr；WL_LOG_DEBUG 模式下输出到临时文件。
第三方库的日志保持 WARNING，只对 worker_link 命名空间启用配置的级别。
"""

from __future__ import annotations

import logging
import sys

from .config import Config, get_config

__all__ = ["setup_logging", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config | None = None) -> list[logging.Handler]:
    """配置日志输出。

    Args:
        config: 配置对象（默认使用全局配置）

    Returns:
        安装到 root logger 的 handler 列表
    """
    config = config or get_config()
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)

    # force=True: 重复调用时替换已有 handler
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    logging.getLogger("worker_link").setLevel(config.log_level)

    return log_handlers
