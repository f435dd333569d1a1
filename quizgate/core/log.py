import logging
from typing import Optional

from quizgate.core.config import Settings, settings as default_settings


def configure_logging(cfg: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    cfg = cfg or default_settings
    handlers = [logging.StreamHandler()]
    if cfg.LOG_FILE:
        handlers.append(logging.FileHandler(cfg.LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL, logging.INFO),
        format=cfg.LOG_FORMAT,
        handlers=handlers,
    )
    if cfg.DATABASE_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
