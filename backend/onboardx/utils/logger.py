"""
Service Logger — console + append-only log file.
"""
import os
from datetime import datetime

from onboardx.config import get_settings

LOG_FILE_NAME = "onboardx.log"


def log_event(component: str, message: str) -> None:
    """Write ``<ts> - COMPONENT: message`` to stdout and the service log file."""
    ts = datetime.now().isoformat()
    line = f"{ts} - {component.upper()}: {message}"
    print(line)
    try:
        log_dir = get_settings().LOG_DIR
        os.makedirs(log_dir, exist_ok=True)
        with open(os.path.join(log_dir, LOG_FILE_NAME), "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        pass
