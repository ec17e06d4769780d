"""Logging setup shared by the API process and the alembic CLI."""

import logging

from maturamate.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once, from ``LOG_LEVEL`` unless overridden."""
    resolved = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("maturamate").setLevel(resolved)
    # stripe logs every request at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)
