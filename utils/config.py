"""
Configuration Management

Simple utility for loading and validating environment configuration.
"""

import os
from typing import Optional
from dotenv import load_dotenv


def load_config(env_path: Optional[str] = None, override: bool = False) -> bool:
    """
    Load environment configuration from .env file.

    Args:
        env_path: Optional path to .env file. If None, searches in current directory.
        override: Let the file replace variables that are already set

    Returns:
        bool: True if .env file was found and loaded, False otherwise
    """
    if env_path:
        return load_dotenv(env_path, override=override)
    return load_dotenv(override=override)


def get_work_schedule_config() -> dict:
    """
    Get the working calendar used by gap analysis.

    Returns:
        dict: work_start_hour, work_end_hour, include_weekends, min_gap_minutes

    Raises:
        ValueError: If a value cannot be parsed or the hours are out of range
    """
    try:
        config = {
            "work_start_hour": int(os.getenv("WORK_START_HOUR", "6")),
            "work_end_hour": int(os.getenv("WORK_END_HOUR", "22")),
            "include_weekends": os.getenv("INCLUDE_WEEKENDS", "false").strip().lower()
            in ("1", "true", "yes", "on"),
            "min_gap_minutes": float(os.getenv("MIN_GAP_MINUTES", "30")),
        }
    except ValueError as e:
        raise ValueError(
            f"Invalid work schedule configuration: {e}. "
            f"Please check your .env file."
        )

    if not (0 <= config["work_start_hour"] < config["work_end_hour"] <= 24):
        raise ValueError(
            f"Invalid work hours {config['work_start_hour']}-{config['work_end_hour']}: "
            f"expected 0 <= start < end <= 24"
        )
    if config["min_gap_minutes"] < 0:
        raise ValueError("MIN_GAP_MINUTES cannot be negative")

    return config


def get_app_config() -> dict:
    """
    Get application configuration settings.

    Returns:
        dict: Application settings
    """
    return {
        "timezone": os.getenv("TIMEZONE", "Europe/Copenhagen"),
        "standard_work_week_hours": float(os.getenv("STANDARD_WORK_WEEK_HOURS", "40")),
        "recalc_max_workers": int(os.getenv("RECALC_MAX_WORKERS", "4")),
    }


def validate_config() -> list:
    """
    Validate all required configuration is present.

    Returns:
        list: List of configuration problems (empty if all valid)
    """
    missing = []

    try:
        get_work_schedule_config()
    except ValueError as e:
        missing.append(f"WORK SCHEDULE: {str(e)}")

    try:
        app_config = get_app_config()
        if app_config["standard_work_week_hours"] <= 0:
            missing.append("APP: STANDARD_WORK_WEEK_HOURS must be positive")
        if app_config["recalc_max_workers"] < 1:
            missing.append("APP: RECALC_MAX_WORKERS must be at least 1")
    except ValueError as e:
        missing.append(f"APP: {str(e)}")

    return missing
