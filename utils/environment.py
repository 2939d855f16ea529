# Environment configuration and logging utilities
import os
import json
import logging
from typing import Dict, Any, Optional
from dotenv import load_dotenv

load_dotenv()

SCRIPT_URL_PLACEHOLDER = "YOUR_GOOGLE_APPS_SCRIPT_URL_HERE"


def mask_secret(value: Optional[str], show_last: int = 6) -> Optional[str]:
    """
    Mask sensitive values for logging purposes.

    Args:
        value: The value to mask
        show_last: Number of characters to show at the end

    Returns:
        Masked string or None if value is empty
    """
    if not value:
        return None
    if len(value) <= show_last:
        return "*" * len(value)
    return "*" * (len(value) - show_last) + value[-show_last:]


def get_environment_config() -> Dict[str, Any]:
    """
    Load and return environment configuration with masked sensitive values for logging.

    The Apps Script deployment id is part of the URL path and grants write
    access to the sheet, so only its tail is logged.
    """
    return {
        "SHEETS_SCRIPT_URL": mask_secret(os.environ.get("SHEETS_SCRIPT_URL"), 12),
        "TOOL_NAME": get_tool_name(),
        "DEBUG": os.environ.get("DEBUG", False),
        "GATEWAY_TIMEOUT": get_gateway_timeout(),
        "DEFAULT_TOTAL_LEAVE": get_default_total_leave(),
    }


def log_environment_config(logger: logging.Logger) -> None:
    """
    Log environment configuration with masked sensitive values.

    Args:
        logger: Logger instance to use for logging
    """
    env_vars = get_environment_config()
    logger.debug("Loaded environment variables:\n%s", json.dumps(env_vars, indent=2))


def is_script_url_configured(url: Optional[str]) -> bool:
    return bool(url) and SCRIPT_URL_PLACEHOLDER not in url


# Environment variable getters
def get_tool_name() -> str:
    return os.environ.get("TOOL_NAME", "VACATION-DESK")


def get_script_url() -> str:
    return os.environ.get("SHEETS_SCRIPT_URL", "")


def get_debug_mode() -> bool:
    return os.environ.get("DEBUG", "").lower() in ("1", "true", "yes", "on")


def get_gateway_timeout() -> float:
    return float(os.environ.get("GATEWAY_TIMEOUT", 60))


def get_default_total_leave() -> int:
    return int(os.environ.get("DEFAULT_TOTAL_LEAVE", 22))
