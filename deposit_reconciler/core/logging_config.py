"""dictConfig mapping for third-party loggers.

Application loggers are configured by ``setup_logging``; this mapping only
quiets the libraries that are chatty at INFO.
"""

LOGGING_CONFIG: dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "httpx": {"level": "WARNING"},
        "httpcore": {"level": "WARNING"},
        "sqlalchemy.engine": {"level": "WARNING"},
    },
    "root": {"level": "WARNING", "handlers": ["console"]},
}
