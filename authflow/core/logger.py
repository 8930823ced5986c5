"""
统一日志系统 - 基于 loguru

日志级别策略:
- DEBUG: 流程状态迁移、state 签发/消费、scope 协商结果
- INFO:  token 交换、用户信息获取、刷新/撤销等关键操作
- WARNING: CSRF 校验失败、Provider 返回业务错误
- ERROR: 网络异常、需要关注的故障

authflow 作为库被嵌入，import 时不增删任何 sink，只执行 logger.disable("authflow")。
宿主应用二选一:
- 已有自己的 loguru 配置: logger.enable("authflow")
- 希望使用本模块的默认输出: setup_logging()（会替换现有 sink）

输出策略 (setup_logging):
- 控制台: 开发环境=DEBUG, 生产环境=INFO (通过 LOG_LEVEL 控制)
- 文件: 仅当设置 AUTHFLOW_LOG_DIR 时启用，保留30天，按大小轮转 (100MB)

注意: 不得在日志中输出 access_token / refresh_token / client_secret / code。

使用方式:
    from authflow.core.logger import logger

    logger.info("消息")
    logger.warning("警告")
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from loguru import logger

# ============================================================================
# 环境检测
# ============================================================================

IS_DOCKER = (
    os.path.exists("/.dockerenv")
    or os.environ.get("DOCKER_CONTAINER", "false").lower() == "true"
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if not IS_DOCKER else "INFO").upper()

# 文件日志目录，未设置时不写文件
LOG_DIR = os.getenv("AUTHFLOW_LOG_DIR", "").strip()

# ============================================================================
# 日志格式定义
# ============================================================================

CONSOLE_FORMAT_DEV = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{message}</cyan>"
)

CONSOLE_FORMAT_PROD = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# 库默认静默，不影响宿主应用的 sink
logger.disable("authflow")


def setup_logging(level: str | None = None, log_dir: str | None = None) -> None:
    """
    为独立运行的场景配置 authflow 的默认日志输出

    Args:
        level: 控制台日志级别，默认取 LOG_LEVEL
        log_dir: 文件日志目录，默认取 AUTHFLOW_LOG_DIR；为空时不写文件
    """
    level = (level or LOG_LEVEL).upper()
    log_dir = LOG_DIR if log_dir is None else log_dir.strip()

    logger.remove()

    if IS_DOCKER:
        # 生产环境：禁用 backtrace 和 diagnose，避免把局部变量（可能含密钥）打进日志
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT_PROD,
            level=level,
            colorize=False,
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT_DEV,
            level=level,
            colorize=True,
            diagnose=False,
        )

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        # enqueue=False 使用同步模式，避免 multiprocessing 信号量泄漏
        file_log_config = {
            "format": FILE_FORMAT,
            "rotation": "100 MB",
            "retention": "30 days",
            "compression": "gz",
            "enqueue": False,
            "encoding": "utf-8",
            "catch": True,
            "backtrace": False,
            "diagnose": False,
        }

        logger.add(  # type: ignore[call-overload]
            path / "authflow.log",
            level="DEBUG",
            **file_log_config,
        )

        error_log_config = file_log_config.copy()
        error_log_config["rotation"] = "50 MB"
        logger.add(  # type: ignore[call-overload]
            path / "authflow-error.log",
            level="ERROR",
            **error_log_config,
        )

    # httpx 会在 INFO 级别打印完整 URL，其中可能带 code/token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.enable("authflow")


__all__ = ["logger", "setup_logging"]
