import logging

from backend.src.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level_name: str | None = None) -> None:
    level_name = (level_name or settings.LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # urllib3 logs full request URLs, which include account and site ids
    logging.getLogger("urllib3").setLevel(logging.WARNING)
