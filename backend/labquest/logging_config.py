from __future__ import annotations
import logging
from typing import Optional

from .settings import settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
	logger = logging.getLogger("labquest")
	logger.setLevel((level or settings.log_level).upper())
	if not any(getattr(h, "_labquest", False) for h in logger.handlers):
		handler = logging.StreamHandler()
		handler.setFormatter(logging.Formatter(LOG_FORMAT))
		handler._labquest = True  # type: ignore[attr-defined]
		logger.addHandler(handler)
	# Request lines from every oracle call drown out the engine's own messages
	logging.getLogger("httpx").setLevel(logging.WARNING)
	return logger
