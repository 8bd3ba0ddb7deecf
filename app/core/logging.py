import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once for the API process."""
    level_name = (level or settings.log_level or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
