# search_engine_lib/core/logger.py
"""库内统一使用的日志器。

库本身不添加任何 handler，只有演示入口调用 `setup_logging` 时才挂上 Rich 控制台输出。
"""

import logging

from rich.logging import RichHandler

LOGGER_NAME = "search_engine_lib"

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO") -> None:
    """为演示入口配置 Rich 控制台日志。"""
    handler = RichHandler(
        rich_tracebacks=True,
        show_path=False,
        show_time=True,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.set_name("pretty_handler")
    handler.setFormatter(logging.Formatter(fmt="%(message)s"))

    logging.basicConfig(
        handlers=[handler], level=level.upper(), force=True, format="%(message)s"
    )
    logger.setLevel(level.upper())

    # aiohttp 的访问日志过于嘈杂
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def mask(secret: str) -> str:
    """隐藏凭据，只用于日志输出。"""
    if not secret:
        return "None"
    return "*" * 6
