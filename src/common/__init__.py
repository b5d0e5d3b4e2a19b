# === MODULE PURPOSE ===
# Common utilities shared across all modules.

from .config import Config
from .scheduler import DailyScheduler, ScheduledTask

__all__ = [
    "Config",
    "DailyScheduler",
    "ScheduledTask",
]
