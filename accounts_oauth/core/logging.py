import logging
import logging.config


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for the service's own modules.

    Every ``logging.getLogger(__name__)`` under ``accounts_oauth`` writes to a
    single console handler. Uvicorn's loggers are left alone so access logs
    keep their format.
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "accounts_oauth": {
                    "handlers": ["console"],
                    "level": level.upper(),
                    "propagate": False,
                },
            },
        }
    )
