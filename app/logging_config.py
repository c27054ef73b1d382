"""Console logging setup shared by the API and the stage workers."""

import logging

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single console handler to the ``app`` logger.

    Safe to call more than once (uvicorn reloads, tests); only the level
    is updated on later calls.
    """
    global _configured

    app_logger = logging.getLogger("app")
    app_logger.setLevel(level.upper())

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        app_logger.addHandler(handler)
        app_logger.propagate = False
        _configured = True

    return app_logger
