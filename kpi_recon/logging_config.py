import logging, sys
from typing import Optional
from pythonjsonlogger import jsonlogger


def configure_logging(level: Optional[str] = None):
    logger = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.setLevel(level or logging.INFO)
    logger.handlers = [handler]
