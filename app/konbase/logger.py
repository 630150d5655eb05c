import logging
import os
import sys
from logging.handlers import RotatingFileHandler

# Pfade und Basis-Konfiguration
LOG_DIR = os.getenv("KONBASE_LOG_DIR", "./logs")
LOG_FILE = os.path.join(LOG_DIR, "konbase.log")

# KONBASE_DEBUG=true -> Volles Rohr (DEBUG)
# KONBASE_DEBUG=false -> Sauberer Betrieb (INFO)
IS_DEBUG = os.getenv("KONBASE_DEBUG", "false").lower() == "true"
LOG_LEVEL = logging.DEBUG if IS_DEBUG else logging.INFO

FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)-7s | %(name)-15s | %(message)s",
    datefmt="%H:%M:%S"
)

class LogNoiseFilter(logging.Filter):
    """Filtert Health-Checks und Polling-Requests aus der Konsole, außer im Debug-Modus."""
    noise_keywords = ["GET /health", "GET /extensions/", "connection open", "connection closed"]

    def filter(self, record):
        if IS_DEBUG:
            return True
        return not any(keyword in record.getMessage() for keyword in self.noise_keywords)

def setup_logging(log_dir: str = None):
    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)

    # 1. Root-Logger immer auf DEBUG, die Handler filtern dann
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # 2. Konsole
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(FORMATTER)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.addFilter(LogNoiseFilter())
    root_logger.addHandler(console_handler)

    # 3. Datei: hier landet IMMER alles (DEBUG)
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "konbase.log"), maxBytes=10*1024*1024, backupCount=5
    )
    file_handler.setFormatter(FORMATTER)
    file_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)

    # 4. Drittanbieter leiser stellen
    third_party_level = logging.DEBUG if IS_DEBUG else logging.WARNING
    for l_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine"]:
        l = logging.getLogger(l_name)
        l.setLevel(third_party_level)
        l.handlers = root_logger.handlers
        l.propagate = False

    logging.info(f"✨ Konbase Logging initialisiert (Level: {'DEBUG' if IS_DEBUG else 'INFO'})")

def get_logger(name: str):
    return logging.getLogger(name)
