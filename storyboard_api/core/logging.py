import sys

from loguru import logger

from storyboard_api.core.config import LOG_DIR, LOG_LEVEL, LOG_RETENTION

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <7}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = LOG_LEVEL) -> None:
    """控制台 + 按天滚动的文件日志；重复调用会先清掉已有 sink"""
    logger.remove()
    logger.add(sys.stdout, level=level, format=_CONSOLE_FORMAT)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(LOG_DIR / "{time:YYYYMMDD}.log"),
        level=level,
        rotation="00:00",
        retention=LOG_RETENTION,
        encoding="utf-8",
        enqueue=True,
    )


setup_logging()

__all__ = ["logger", "setup_logging"]
