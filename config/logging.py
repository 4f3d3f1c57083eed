import logging
import os
from datetime import datetime

# Monitoring workers and tests may point this elsewhere
LOG_DIR = os.getenv("LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True)

LOG_FILE = os.path.join(LOG_DIR, f"aqi_monitor_{datetime.now().date()}.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler()
    ]
)

# scheduler and driver chatter drowns out sweep logs at INFO
for noisy in ("apscheduler", "pymongo"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

logger = logging.getLogger("AQI_PIPELINE")
