import os
from logging.config import dictConfig

from app.utils.env_helper import env_list

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Supabase's HTTP and realtime transports log every request and heartbeat
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "realtime", "websockets")


def setup_logging():
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    quiet_level = os.getenv("LOG_LEVEL_LIBRARIES", "WARNING").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                },
                "json": {  # structured logs for the deployed service
                    "format": '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": os.getenv("LOG_FORMATTER", "default"),
                },
            },
            "loggers": {
                name: {"level": quiet_level}
                for name in env_list("LOG_QUIET_LOGGERS", list(NOISY_LOGGERS))
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
        }
    )
