import logging
from pythonjsonlogger.json import JsonFormatter
from certexam.core.config import Settings

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    handler = logging.StreamHandler()
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(JsonFormatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
