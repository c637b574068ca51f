import logging
import sys

from config import settings

LOG_LEVEL = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# httpx logs every storage call and apscheduler every job run at INFO.
for noisy in ("httpx", "apscheduler.executors.default"):
    logging.getLogger(noisy).setLevel(max(LOG_LEVEL, logging.WARNING))

def get_logger(name: str):
    return logging.getLogger(name)
