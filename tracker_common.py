#!/usr/bin/env python3
"""
RumbleOn Tracker - Common Module

Shared code for rumbleon_tracker.py and check_search.py.
Handles paths, logging, log rotation and configuration loading.
"""

import os
import json
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List, Tuple

from dotenv import load_dotenv

# Version

VERSION = "1.2.0"
__version__ = VERSION
# v1.2.0: Unreadable config file yields {} (no cached fallback); validate_config() tolerates non-string values
# v1.1.0: Config file is optional - environment variables (and .env) take precedence
# v1.0.1: validate_config() checks MAILGUN_DOMAIN is a bare name, not a full hostname
# v1.0.0: Initial release - log(), rotate_logs(), load_config()

# Paths

SCRIPT_DIR = Path(__file__).parent
CONFIG_FILE = SCRIPT_DIR / "tracker_config.json"
ENV_FILE = SCRIPT_DIR / ".env"
LOG_FILE = SCRIPT_DIR / "rumbleon_tracker.log"

# Constants

# RumbleOn consumer search (Elasticsearch-style index)
RUMBLEON_SEARCH_URL = "https://consumersearchservice.rumbleon.com/v2-consumerweb-prod/inventory/_search"
RUMBLEON_BUY_URL = "https://www.rumbleon.com/buy"

# Mailgun
MAILGUN_API_BASE = "https://api.mailgun.net/v3"
MAILGUN_SENDER_NAME = "RumbleOn Tracker"

# Log rotation
LOG_MAX_SIZE_MB = 10

# Config key -> environment variable
ENV_KEYS = {
    "mailgun_api_key": "MAILGUN_API_KEY",
    "mailgun_domain": "MAILGUN_DOMAIN",
    "destination_email": "DESTINATION_EMAIL",
    "rumbleon_token": "RUMBLEON_TOKEN",
}

# Errors

class TrackerError(Exception):
    """Base class for failures that end a tracker run."""


class SearchFailure(TrackerError):
    """RumbleOn search request failed (transport, HTTP status or response shape)."""


class RenderFailure(TrackerError):
    """A listing could not be formatted (malformed price, mileage or end time)."""


class SendFailure(TrackerError):
    """Mailgun rejected the message or could not be reached."""


# Logging

def log(message: str, log_file: Path = None, verbose: bool = True) -> None:
    """
    Logging with timestamp.

    Args:
        message: Message to log
        log_file: Optional log file path (defaults to LOG_FILE)
        verbose: Whether to print to console
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    line = f"[{timestamp}] {message}"

    if log_file is None:
        log_file = LOG_FILE

    try:
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except (IOError, OSError):
        pass

    if verbose:
        try:
            print(line, flush=True)
        except (UnicodeEncodeError, OSError):
            try:
                safe_line = line.encode('ascii', errors='replace').decode('ascii')
                print(safe_line, flush=True)
            except (UnicodeEncodeError, OSError):
                pass


def rotate_logs(log_file: Path = None, max_size_mb: int = LOG_MAX_SIZE_MB) -> bool:
    """
    Simple log rotation: if > max_size_mb, rename to .log.old and start fresh.

    Returns:
        True if rotation occurred, False otherwise
    """
    if log_file is None:
        log_file = LOG_FILE
    try:
        if log_file.exists() and log_file.stat().st_size > max_size_mb * 1024 * 1024:
            old_log = log_file.with_suffix(".log.old")
            if old_log.exists():
                old_log.unlink()
            log_file.rename(old_log)
            log("Active log rotated (exceeded size limit)", log_file=log_file)
            return True
    except (IOError, OSError):
        pass
    return False


def format_duration(seconds: float) -> str:
    """Format a run duration like "850ms", "12.4s" or "2m 5s"."""
    if seconds < 0:
        return "?"
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if secs else f"{minutes}m"


# Config

def _load_config_file(config_file: Path) -> Dict[str, Any]:
    """Load the optional JSON config file. A missing or unreadable file yields {}."""
    if not config_file.exists():
        return {}
    try:
        with open(config_file, 'r', encoding='utf-8-sig') as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError(f"expected a JSON object, got {type(config).__name__}")
        return config
    except (IOError, ValueError) as e:
        log(f"ERROR loading {config_file.name}: {e}")
        return {}


def load_config(config_file: Path = None, env_file: Path = None) -> Dict[str, Any]:
    """
    Load tracker configuration.

    Order (later wins):
        1. tracker_config.json beside the scripts (optional)
        2. .env file beside the scripts (optional, never overrides real env vars)
        3. Process environment variables (see ENV_KEYS)

    Returns:
        Flat dict with the keys of ENV_KEYS (missing values are simply absent)
    """
    if config_file is None:
        config_file = CONFIG_FILE
    if env_file is None:
        env_file = ENV_FILE

    load_dotenv(env_file)
    config = _load_config_file(config_file)

    for key, env_name in ENV_KEYS.items():
        value = os.environ.get(env_name, "").strip()
        if value:
            config[key] = value

    return config


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate config has required fields with proper values.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, env_name in ENV_KEYS.items():
        if not config.get(key):
            errors.append(f"Missing or empty '{key}' (set {env_name})")

    destination = str(config.get("destination_email") or "")
    if destination and "@" not in destination:
        errors.append(f"Invalid destination_email '{destination}' - must be valid email address")

    domain = str(config.get("mailgun_domain") or "")
    if domain.endswith(".mailgun.org"):
        errors.append("mailgun_domain should be the bare sandbox name (without '.mailgun.org')")

    return (len(errors) == 0, errors)


# Mailgun

def get_mailgun_config(config: Dict[str, Any]) -> Dict[str, str]:
    """
    Get Mailgun settings derived from config.

    The sending domain is the configured name under mailgun.org, e.g.
    MAILGUN_DOMAIN=sandbox123 sends as mailgun@sandbox123.mailgun.org.
    """
    domain = f"{config.get('mailgun_domain', '')}.mailgun.org"
    return {
        'api_key': config.get('mailgun_api_key', ''),
        'domain': domain,
        'messages_url': f"{MAILGUN_API_BASE}/{domain}/messages",
        'sender': f"{MAILGUN_SENDER_NAME} <mailgun@{domain}>",
        'recipient': config.get('destination_email', ''),
    }
