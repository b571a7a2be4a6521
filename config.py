"""
Configuration Management
Loads and validates environment variables
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Application Settings
    TIMEZONE = os.getenv("TIMEZONE", "Europe/Copenhagen")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Work Schedule Configuration (gap analysis)
    WORK_START_HOUR = int(os.getenv("WORK_START_HOUR", 6))
    WORK_END_HOUR = int(os.getenv("WORK_END_HOUR", 22))
    INCLUDE_WEEKENDS = _env_bool("INCLUDE_WEEKENDS")
    MIN_GAP_MINUTES = float(os.getenv("MIN_GAP_MINUTES", 30))

    # Weekly productivity
    STANDARD_WORK_WEEK_HOURS = float(os.getenv("STANDARD_WORK_WEEK_HOURS", 40))

    # Cost recalculation sweep
    RECALC_MAX_WORKERS = int(os.getenv("RECALC_MAX_WORKERS", 4))

    @classmethod
    def validate(cls):
        """Validate configuration values"""
        problems = []

        if not (0 <= cls.WORK_START_HOUR < cls.WORK_END_HOUR <= 24):
            problems.append(
                f"WORK_START_HOUR/WORK_END_HOUR must satisfy 0 <= start < end <= 24 "
                f"(got {cls.WORK_START_HOUR}-{cls.WORK_END_HOUR})"
            )
        if cls.MIN_GAP_MINUTES < 0:
            problems.append("MIN_GAP_MINUTES cannot be negative")
        if cls.STANDARD_WORK_WEEK_HOURS <= 0:
            problems.append("STANDARD_WORK_WEEK_HOURS must be positive")
        if cls.RECALC_MAX_WORKERS < 1:
            problems.append("RECALC_MAX_WORKERS must be at least 1")

        if problems:
            raise ValueError(f"Invalid configuration: {'; '.join(problems)}")

        return True

# Validate on import
Config.validate()
