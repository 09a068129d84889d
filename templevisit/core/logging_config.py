import os
import sys

from loguru import logger

from templevisit.core.config import settings

# channel -> (file name, retention)
_CHANNELS = {
    "booking": ("bookings.log", "4 weeks"),
    "payment": ("payments.log", "4 weeks"),
    "security": ("security.log", "12 weeks"),
}
_configured = False


def _channel_filter(name: str):
    return lambda record: record["extra"].get("log_type") == name


def configure_logging() -> None:
    """Install loguru sinks. Safe to call more than once."""
    global _configured
    if _configured:
        return
    _configured = True

    # Remove default handler
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format="{time} | {level} | {extra[log_type]} | {message}")
    logger.configure(extra={"log_type": "app"})

    if not settings.LOG_TO_FILES:
        return

    os.makedirs(settings.LOG_DIR, exist_ok=True)

    # General application log
    logger.add(
        os.path.join(settings.LOG_DIR, "app.log"),
        rotation="1 week",
        retention="4 weeks",
        level="INFO",
        enqueue=True,
        format="{time} | {level} | {message}",
    )

    for name, (filename, retention) in _CHANNELS.items():
        logger.add(
            os.path.join(settings.LOG_DIR, filename),
            rotation="1 week",
            retention=retention,
            level="INFO",
            enqueue=True,
            filter=_channel_filter(name),
            format="{time} | {level} | {message}",
        )

    # Error logs
    logger.add(
        os.path.join(settings.LOG_DIR, "errors.log"),
        rotation="1 week",
        retention="8 weeks",
        level="ERROR",
        enqueue=True,
    )


def get_logger(log_type: str | None = None):
    if log_type:
        return logger.bind(log_type=log_type)
    return logger
