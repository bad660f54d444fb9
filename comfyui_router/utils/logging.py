"""
Shared logging utilities for ComfyUI-Router.
"""
import os
import json

from .constants import get_config_file

def is_debug_enabled():
    """Check if debug is enabled."""
    config_file = get_config_file()
    if os.path.exists(config_file):
        try:
            with open(config_file, 'r') as f:
                config = json.load(f)
                return bool(config.get("settings", {}).get("debug", False))
        except (OSError, ValueError, AttributeError):
            pass
    return False

def debug_log(message):
    """Log debug messages only if debug is enabled in config."""
    if is_debug_enabled():
        print(f"[Router] {message}")

def log(message):
    """Always log important messages."""
    print(f"[Router] {message}")
