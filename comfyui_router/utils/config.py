"""
Configuration management for ComfyUI-Router.
"""
import os
import json
from .logging import log

# Import defaults for timeout fallbacks
from .constants import (
    DEFAULT_LISTEN_PORT,
    DEFAULT_WORKER_PORT,
    TRANSPORT_TIMEOUT,
    UPLOAD_MAX_ATTEMPTS,
    get_config_file,
)

def get_default_config():
    """Returns the default configuration dictionary. Single source of truth."""
    return {
        "primary": {"host": "", "port": DEFAULT_WORKER_PORT},
        "workers": [],
        "listen": {"host": "127.0.0.1", "port": DEFAULT_LISTEN_PORT},
        "settings": {
            "debug": False,
            "transport_timeout_seconds": TRANSPORT_TIMEOUT,
            "upload_max_attempts": UPLOAD_MAX_ATTEMPTS,
        }
    }

def load_config():
    """Loads the config, falling back to defaults if the file is missing or invalid."""
    config_file = get_config_file()
    if os.path.exists(config_file):
        try:
            with open(config_file, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            log(f"Error loading config, using defaults: {e}")
    return get_default_config()

def save_config(config):
    """Saves the configuration to file."""
    try:
        with open(get_config_file(), 'w') as f:
            json.dump(config, f, indent=2)
        return True
    except (OSError, TypeError) as e:
        log(f"Error saving config: {e}")
        return False

def ensure_config_exists():
    """Creates default config file if it doesn't exist. Used by the entry point."""
    if not os.path.exists(get_config_file()):
        default_config = get_default_config()
        if save_config(default_config):
            from .logging import debug_log
            debug_log("Created default config file")
        else:
            log("Could not create default config file")

def get_transport_timeout_seconds(default: float = TRANSPORT_TIMEOUT) -> float:
    """Return the hard per-call timeout (seconds) for worker requests.

    Priority:
    1) Configured setting `settings.transport_timeout_seconds`
    2) Fallback to provided `default` (defaults to TRANSPORT_TIMEOUT which itself
       can be overridden via the COMFYUI_ROUTER_TRANSPORT_TIMEOUT env var)
    """
    try:
        cfg = load_config()
        val = float(cfg.get('settings', {}).get('transport_timeout_seconds', default))
        return max(1.0, val)
    except (TypeError, ValueError, AttributeError):
        return max(1.0, float(default))


def get_upload_max_attempts(default: int = UPLOAD_MAX_ATTEMPTS) -> int:
    """Returns the configured number of upload attempts (at least 1)."""
    try:
        cfg = load_config()
        return max(1, int(cfg.get('settings', {}).get('upload_max_attempts', default)))
    except (TypeError, ValueError, AttributeError):
        return max(1, int(default))


def get_listen_address(config=None):
    """Returns (host, port) the HTTP front should bind to."""
    cfg = config if config is not None else load_config()
    listen = cfg.get("listen", {}) or {}
    host = (listen.get("host") or "127.0.0.1").strip()
    port = int(listen.get("port") or DEFAULT_LISTEN_PORT)
    return host, port
