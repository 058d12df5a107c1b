import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    # no-op when the root logger already has handlers, e.g. under pytest
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)
