import os
import sys

from loguru import logger

LOG_DIR = os.getenv("LOG_DIR")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Remove default handler
logger.remove()
logger.configure(extra={"log_type": "app"})

logger.add(
    sys.stderr,
    level=LOG_LEVEL,
    format="{time} | {level} | {extra[log_type]} | {message}",
)

if LOG_DIR:
    os.makedirs(LOG_DIR, exist_ok=True)

    # General application log
    logger.add(
        f"{LOG_DIR}/app.log",
        rotation="1 week",
        retention="4 weeks",
        level=LOG_LEVEL,
        enqueue=True,
        format="{time} | {level} | {message}",
    )

    # Booking lifecycle logs
    logger.add(
        f"{LOG_DIR}/bookings.log",
        rotation="1 week",
        retention="4 weeks",
        level="INFO",
        enqueue=True,
        filter=lambda record: record["extra"].get("log_type") == "booking",
        format="{time} | {level} | {message}",
    )

    # Admin activity logs
    logger.add(
        f"{LOG_DIR}/admin.log",
        rotation="1 week",
        retention="4 weeks",
        level="INFO",
        enqueue=True,
        filter=lambda record: record["extra"].get("log_type") == "admin",
        format="{time} | {level} | {message}",
    )

    # Error logs
    logger.add(
        f"{LOG_DIR}/errors.log",
        rotation="1 week",
        retention="8 weeks",
        level="ERROR",
        enqueue=True,
    )


def get_logger(log_type: str = "app"):
    return logger.bind(log_type=log_type)
